import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from skorbot.config import Settings, settings
from skorbot.logging_config import get_logger, setup_logging
from skorbot.routers import chat_history, chat_socket, whatsapp_webhook
from skorbot.runtime import ChatRuntime, build_runtime

worker_logger = get_logger("background")


def _background_workers_enabled() -> bool:
    return not os.environ.get("PYTEST_CURRENT_TEST")


async def _session_sweep_loop(runtime: ChatRuntime) -> None:
    max_idle = timedelta(minutes=runtime.settings.whatsapp_session_idle_minutes)
    interval_seconds = max(runtime.settings.session_sweep_interval_seconds, 1.0)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            swept = await runtime.conversations.sweep_idle_sessions(max_idle)
            if swept:
                worker_logger.info(
                    f"Cleaned up {len(swept)} inactive WhatsApp sessions",
                    extra={"context": {"channel_keys": swept}},
                )
        except asyncio.CancelledError:
            break
        except Exception as exc:
            worker_logger.error("Session sweep failed", extra={"context": {"error": str(exc)}})


async def _transcript_cleanup_loop(runtime: ChatRuntime) -> None:
    interval_seconds = max(runtime.settings.cleanup_interval_hours * 3600, 60.0)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            deleted = await asyncio.to_thread(
                runtime.transcript_store.cleanup_old_sessions,
                runtime.settings.cleanup_old_sessions_days,
            )
            worker_logger.info("Transcript cleanup finished", extra={"context": {"deleted_sessions": deleted}})
        except asyncio.CancelledError:
            break
        except Exception as exc:
            worker_logger.error("Transcript cleanup failed", extra={"context": {"error": str(exc)}})


def create_app(runtime: Optional[ChatRuntime] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or (runtime.settings if runtime else settings)
    setup_logging(app_settings.log_level)

    app = FastAPI(
        title="SkorBot API",
        description="Credit assistant chatbot for web chat and WhatsApp",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_socket.router)
    app.include_router(chat_history.router)
    app.include_router(whatsapp_webhook.router)

    app.state.runtime = runtime or build_runtime(app_settings)
    app.state.worker_tasks = []

    @app.on_event("startup")
    async def start_background_workers() -> None:
        if not _background_workers_enabled():
            return
        current = app.state.runtime
        app.state.worker_tasks.append(asyncio.create_task(_session_sweep_loop(current)))
        worker_logger.info("Session sweep worker started")
        if current.settings.cleanup_enabled and current.transcript_store.is_enabled():
            app.state.worker_tasks.append(asyncio.create_task(_transcript_cleanup_loop(current)))
            worker_logger.info("Transcript cleanup worker started")

    @app.on_event("shutdown")
    async def stop_background_workers() -> None:
        tasks, app.state.worker_tasks = app.state.worker_tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await app.state.runtime.aclose()

    @app.get("/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("skorbot.main:app", host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", "3000")))
