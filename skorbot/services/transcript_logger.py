"""Transcript Store adapter (chat_sessions / chat_messages / chat_analytics).

`TranscriptLogger` is the blocking SQLAlchemy side: every method is a no-op
returning a neutral value when no logging database is configured, and raises on
database errors. `TranscriptWriter` is what the conversation path talks to: it
moves writes off the event loop through one background worker and swallows
failures with a log line.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session, sessionmaker

from skorbot.logging_config import get_logger
from skorbot.models import ChatAnalytics, ChatMessage, ChatSession

logger = get_logger("transcript")

AI_SENDER = "AI"
SYSTEM_SENDER = "SYSTEM"

MESSAGE_TYPE_TEXT = "text"
MESSAGE_TYPE_SYSTEM = "system"
MESSAGE_TYPE_ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_dict(row: Any) -> dict:
    return {column.key: getattr(row, column.key) for column in row.__table__.columns}


def empty_user_stats() -> dict:
    return {
        "total_sessions": 0,
        "total_messages": 0,
        "user_messages": 0,
        "ai_messages": 0,
        "avg_response_time_ms": None,
        "total_tokens_used": 0,
    }


class TranscriptLogger:
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def is_enabled(self) -> bool:
        return self._session_factory is not None

    def _session(self) -> Session:
        return self._session_factory()

    # --- sessions ---

    def create_session(
        self,
        user_id: str,
        channel_ref: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[str]:
        """Open a chat session row and return its id."""
        if not self.is_enabled():
            logger.warning("Chat logging is disabled, session not created")
            return None

        with self._session() as db:
            row = ChatSession(
                user_id=user_id,
                socket_id=channel_ref,
                user_agent=user_agent,
                ip_address=ip_address,
                session_start_time=_utcnow(),
                is_active=True,
            )
            db.add(row)
            db.commit()
            session_id = row.session_id

        logger.info(
            "Chat session created",
            extra={"context": {"session_id": session_id, "user_id": user_id, "channel_ref": channel_ref}},
        )
        return session_id

    def end_session(self, session_id: Optional[str]) -> bool:
        """Close an active session. False if it was missing or already closed."""
        if not self.is_enabled() or not session_id:
            return False

        with self._session() as db:
            row = (
                db.query(ChatSession)
                .filter(ChatSession.session_id == session_id, ChatSession.is_active.is_(True))
                .first()
            )
            if row is None:
                logger.info(f"Session not found or already ended: {session_id}")
                return False
            row.is_active = False
            row.session_end_time = _utcnow()
            db.commit()

        logger.info(f"Chat session ended: {session_id}")
        return True

    def get_session_by_channel_ref(self, channel_ref: str) -> Optional[dict]:
        if not self.is_enabled():
            return None

        with self._session() as db:
            row = (
                db.query(ChatSession)
                .filter(ChatSession.socket_id == channel_ref, ChatSession.is_active.is_(True))
                .order_by(ChatSession.session_start_time.desc())
                .first()
            )
            return _row_to_dict(row) if row else None

    # --- messages ---

    def log_message(
        self,
        session_id: Optional[str],
        chat_by: str,
        chat_script: str,
        message_type: str = MESSAGE_TYPE_TEXT,
        ai_model: Optional[str] = None,
        response_time_ms: Optional[int] = None,
        token_count: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[str]:
        if not self.is_enabled() or not session_id:
            return None

        with self._session() as db:
            row = ChatMessage(
                session_id=session_id,
                chat_by=chat_by,
                chat_script=chat_script,
                message_type=message_type,
                ai_model=ai_model,
                response_time_ms=response_time_ms,
                token_count=token_count,
                message_timestamp=timestamp or _utcnow(),
            )
            db.add(row)
            db.commit()
            message_id = row.message_id

        logger.debug(f"Message logged: {message_id} from {chat_by} in session {session_id}")
        return message_id

    def log_user_message(
        self, session_id: Optional[str], user_id: str, message: str, timestamp: Optional[datetime] = None
    ) -> Optional[str]:
        return self.log_message(session_id, user_id, message, MESSAGE_TYPE_TEXT, timestamp=timestamp)

    def log_assistant_message(
        self,
        session_id: Optional[str],
        response: str,
        ai_model: Optional[str] = None,
        response_time_ms: Optional[int] = None,
        token_count: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[str]:
        return self.log_message(
            session_id,
            AI_SENDER,
            response,
            MESSAGE_TYPE_TEXT,
            ai_model=ai_model,
            response_time_ms=response_time_ms,
            token_count=token_count,
            timestamp=timestamp,
        )

    def log_system_message(
        self, session_id: Optional[str], message: str, timestamp: Optional[datetime] = None
    ) -> Optional[str]:
        return self.log_message(session_id, SYSTEM_SENDER, message, MESSAGE_TYPE_SYSTEM, timestamp=timestamp)

    def log_error_message(
        self, session_id: Optional[str], error_message: str, timestamp: Optional[datetime] = None
    ) -> Optional[str]:
        return self.log_message(session_id, SYSTEM_SENDER, error_message, MESSAGE_TYPE_ERROR, timestamp=timestamp)

    # --- queries ---

    def get_session_messages(self, session_id: str, limit: int = 100) -> list[dict]:
        if not self.is_enabled():
            return []

        with self._session() as db:
            rows = (
                db.query(ChatMessage)
                .filter(ChatMessage.session_id == session_id)
                .order_by(ChatMessage.message_timestamp.asc())
                .limit(limit)
                .all()
            )
            return [_row_to_dict(row) for row in rows]

    def get_user_sessions(self, user_id: str, limit: int = 10) -> list[dict]:
        """Most recent sessions of a user with their message counts."""
        if not self.is_enabled():
            return []

        with self._session() as db:
            rows = (
                db.query(
                    ChatSession,
                    func.count(ChatMessage.message_id).label("message_count"),
                    func.max(ChatMessage.message_timestamp).label("last_message_time"),
                )
                .outerjoin(ChatMessage, ChatMessage.session_id == ChatSession.session_id)
                .filter(ChatSession.user_id == user_id)
                .group_by(ChatSession.session_id)
                .order_by(ChatSession.session_start_time.desc())
                .limit(limit)
                .all()
            )
            sessions = []
            for chat_session, message_count, last_message_time in rows:
                item = _row_to_dict(chat_session)
                item["message_count"] = int(message_count or 0)
                item["last_message_time"] = last_message_time
                sessions.append(item)
            return sessions

    def get_session_analytics(self, session_id: str) -> Optional[dict]:
        if not self.is_enabled():
            return None

        with self._session() as db:
            row = db.query(ChatAnalytics).filter(ChatAnalytics.session_id == session_id).first()
            return _row_to_dict(row) if row else None

    def get_user_stats(self, user_id: str, days: int = 7) -> dict:
        if not self.is_enabled():
            return empty_user_stats()

        cutoff = _utcnow() - timedelta(days=days)
        with self._session() as db:
            session_ids = (
                db.query(ChatSession.session_id)
                .filter(ChatSession.user_id == user_id, ChatSession.session_start_time >= cutoff)
                .subquery()
            )
            total_sessions = db.query(func.count()).select_from(session_ids).scalar() or 0
            totals = (
                db.query(
                    func.count(ChatMessage.message_id),
                    func.sum(case((ChatMessage.chat_by.notin_([AI_SENDER, SYSTEM_SENDER]), 1), else_=0)),
                    func.sum(case((ChatMessage.chat_by == AI_SENDER, 1), else_=0)),
                    func.avg(ChatMessage.response_time_ms),
                    func.sum(ChatMessage.token_count),
                )
                .filter(ChatMessage.session_id.in_(select(session_ids.c.session_id)))
                .one()
            )

        total_messages, user_messages, ai_messages, avg_response, total_tokens = totals
        return {
            "total_sessions": int(total_sessions),
            "total_messages": int(total_messages or 0),
            "user_messages": int(user_messages or 0),
            "ai_messages": int(ai_messages or 0),
            "avg_response_time_ms": float(avg_response) if avg_response is not None else None,
            "total_tokens_used": int(total_tokens or 0),
        }

    # --- maintenance ---

    def update_session_analytics(self, session_id: Optional[str]) -> bool:
        """Recompute duration, average latency and token usage for one session."""
        if not self.is_enabled() or not session_id:
            return False

        with self._session() as db:
            chat_session = db.query(ChatSession).filter(ChatSession.session_id == session_id).first()
            if chat_session is None:
                return False

            total_messages, avg_response, total_tokens = (
                db.query(
                    func.count(ChatMessage.message_id),
                    func.avg(ChatMessage.response_time_ms),
                    func.sum(ChatMessage.token_count),
                )
                .filter(ChatMessage.session_id == session_id)
                .one()
            )
            started = _as_aware(chat_session.session_start_time)
            ended = _as_aware(chat_session.session_end_time) or _utcnow()

            analytics = db.query(ChatAnalytics).filter(ChatAnalytics.session_id == session_id).first()
            if analytics is None:
                analytics = ChatAnalytics(session_id=session_id)
                db.add(analytics)
            analytics.total_messages = int(total_messages or 0)
            analytics.session_duration_seconds = round((ended - started).total_seconds(), 3)
            analytics.avg_response_time_ms = round(float(avg_response), 3) if avg_response is not None else None
            analytics.total_tokens_used = int(total_tokens) if total_tokens is not None else None
            db.commit()
        return True

    def cleanup_old_sessions(self, max_age_days: int = 30) -> int:
        """Delete closed sessions started more than max_age_days ago."""
        if not self.is_enabled():
            return 0

        cutoff = _utcnow() - timedelta(days=max_age_days)
        with self._session() as db:
            stale_ids = [
                session_id
                for (session_id,) in db.query(ChatSession.session_id)
                .filter(ChatSession.session_start_time < cutoff, ChatSession.is_active.is_(False))
                .all()
            ]
            if not stale_ids:
                return 0
            db.query(ChatMessage).filter(ChatMessage.session_id.in_(stale_ids)).delete(synchronize_session=False)
            db.query(ChatAnalytics).filter(ChatAnalytics.session_id.in_(stale_ids)).delete(
                synchronize_session=False
            )
            deleted = (
                db.query(ChatSession).filter(ChatSession.session_id.in_(stale_ids)).delete(synchronize_session=False)
            )
            db.commit()

        logger.info(f"Cleaned up {deleted} old sessions")
        return deleted


class TranscriptWriter:
    """Non-blocking front of TranscriptLogger for the conversation path."""

    def __init__(self, store: TranscriptLogger):
        self.store = store
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    def is_enabled(self) -> bool:
        return self.store.is_enabled()

    def _ensure_worker(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._worker_loop())
        return self._queue

    async def _worker_loop(self) -> None:
        queue = self._queue
        while True:
            operation, args, kwargs = await queue.get()
            try:
                await asyncio.to_thread(operation, *args, **kwargs)
            except Exception as exc:
                logger.warning(
                    "Transcript write failed",
                    extra={"context": {"operation": getattr(operation, "__name__", str(operation)), "error": str(exc)}},
                )
            finally:
                queue.task_done()

    def submit(self, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Queue a blocking store call; never raises, never waits."""
        if not self.is_enabled():
            return
        self._ensure_worker().put_nowait((operation, args, kwargs))

    async def create_session(
        self,
        user_id: str,
        channel_ref: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[str]:
        """Allocate a session id; None when logging is disabled or the store failed."""
        if not self.is_enabled():
            return None
        try:
            return await asyncio.to_thread(self.store.create_session, user_id, channel_ref, user_agent, ip_address)
        except Exception as exc:
            logger.error(
                "Error creating chat session, continuing without transcript",
                extra={"context": {"user_id": user_id, "channel_ref": channel_ref, "error": str(exc)}},
            )
            return None

    async def end_session(self, session_id: Optional[str]) -> bool:
        """Close the session after its queued writes have landed. Best-effort."""
        if not self.is_enabled() or not session_id:
            return False
        await self.flush()
        try:
            return await asyncio.to_thread(self.store.end_session, session_id)
        except Exception as exc:
            logger.error(
                "Error ending chat session",
                extra={"context": {"session_id": session_id, "error": str(exc)}},
            )
            return False

    def log_user_message(self, session_id: Optional[str], user_id: str, message: str) -> None:
        if session_id:
            self.submit(self.store.log_user_message, session_id, user_id, message, timestamp=_utcnow())

    def log_assistant_message(
        self,
        session_id: Optional[str],
        response: str,
        ai_model: Optional[str] = None,
        response_time_ms: Optional[int] = None,
        token_count: Optional[int] = None,
    ) -> None:
        if session_id:
            self.submit(
                self.store.log_assistant_message,
                session_id,
                response,
                ai_model=ai_model,
                response_time_ms=response_time_ms,
                token_count=token_count,
                timestamp=_utcnow(),
            )

    def log_system_message(self, session_id: Optional[str], message: str) -> None:
        if session_id:
            self.submit(self.store.log_system_message, session_id, message, timestamp=_utcnow())

    def log_error_message(self, session_id: Optional[str], error_message: str) -> None:
        if session_id:
            self.submit(self.store.log_error_message, session_id, error_message, timestamp=_utcnow())

    def update_session_analytics(self, session_id: Optional[str]) -> None:
        if session_id:
            self.submit(self.store.update_session_analytics, session_id)

    async def flush(self) -> None:
        """Wait until every queued write has been attempted."""
        if self._queue is not None and self._worker is not None and not self._worker.done():
            await self._queue.join()

    async def aclose(self) -> None:
        await self.flush()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        self._queue = None
