from fastapi import APIRouter, Depends, HTTPException, Query

from skorbot.dependencies import get_runtime, require_user
from skorbot.logging_config import get_logger
from skorbot.runtime import ChatRuntime
from skorbot.schemas.chat import AuthenticatedUser, ChatMessageRecord, ChatSessionSummary, ChatStats

logger = get_logger("chat_history")

router = APIRouter(prefix="/api/chat")


@router.get("/sessions", response_model=list[ChatSessionSummary])
def list_sessions(
    limit: int = Query(default=10, ge=1, le=100),
    user: AuthenticatedUser = Depends(require_user),
    runtime: ChatRuntime = Depends(get_runtime),
):
    try:
        return runtime.transcript_store.get_user_sessions(user.user_id, limit)
    except Exception as e:
        logger.error(f"Error fetching user sessions: {e}")
        raise HTTPException(status_code=503, detail="Failed to fetch chat sessions")


@router.get("/sessions/{session_id}/messages", response_model=list[ChatMessageRecord])
def list_session_messages(
    session_id: str,
    limit: int = Query(default=100, ge=1, le=1000),
    user: AuthenticatedUser = Depends(require_user),
    runtime: ChatRuntime = Depends(get_runtime),
):
    store = runtime.transcript_store
    if not store.is_enabled():
        return []
    try:
        owned = {item["session_id"] for item in store.get_user_sessions(user.user_id, limit=1000)}
        if session_id not in owned:
            raise HTTPException(status_code=404, detail="Session not found")
        return store.get_session_messages(session_id, limit)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching session messages: {e}")
        raise HTTPException(status_code=503, detail="Failed to fetch session messages")


@router.get("/stats", response_model=ChatStats)
def chat_stats(
    days: int = Query(default=7, ge=1, le=365),
    user: AuthenticatedUser = Depends(require_user),
    runtime: ChatRuntime = Depends(get_runtime),
):
    try:
        return runtime.transcript_store.get_user_stats(user.user_id, days)
    except Exception as e:
        logger.error(f"Error fetching chat stats: {e}")
        raise HTTPException(status_code=503, detail="Failed to fetch chat statistics")
