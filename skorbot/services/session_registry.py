"""Live conversation sessions keyed by channel (socket id or normalized phone)."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from skorbot.logging_config import get_logger
from skorbot.services.knowledge_base import KnowledgeBase
from skorbot.services.transcript_logger import TranscriptWriter

logger = get_logger("session_registry")

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

GREETING_NEW_USER = (
    "Selamat datang! Saya adalah asisten kredit AI Anda. Tanyakan apa saja tentang data kredit simulasi Anda."
)
GREETING_RETURNING_USER = "Hai! Selamat datang kembali. Ada yang bisa saya bantu?"

DEFAULT_HISTORY_CAP = 20


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionMeta:
    channel: str = "web"
    channel_ref: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    display_name: Optional[str] = None
    is_new_user: bool = True


@dataclass
class Session:
    channel_key: str
    user_id: str
    session_id: Optional[str]
    channel: str
    history: list[dict] = field(default_factory=list)
    display_name: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)

    @property
    def message_count(self) -> int:
        return len(self.history)


def trim_history(history: list[dict], cap: int) -> list[dict]:
    """Drop the oldest user/assistant turns until len(history) <= cap. System entries stay."""
    excess = len(history) - cap
    if excess <= 0:
        return history
    trimmed = []
    for turn in history:
        if excess > 0 and turn["role"] != ROLE_SYSTEM:
            excess -= 1
            continue
        trimmed.append(turn)
    return trimmed


def greeting_for(is_new_user: bool) -> str:
    return GREETING_NEW_USER if is_new_user else GREETING_RETURNING_USER


class SessionRegistry:
    def __init__(
        self,
        transcripts: TranscriptWriter,
        knowledge_base: KnowledgeBase,
        history_cap: int = DEFAULT_HISTORY_CAP,
    ):
        if history_cap < 2:
            raise ValueError("history_cap must leave room for the system prompt and one turn")
        self.transcripts = transcripts
        self.knowledge_base = knowledge_base
        self.history_cap = history_cap
        self._sessions: dict[str, Session] = {}
        self._creating: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, channel_key: str) -> bool:
        return channel_key in self._sessions

    def get(self, channel_key: str) -> Optional[Session]:
        return self._sessions.get(channel_key)

    async def get_or_create(self, channel_key: str, user_id: str, meta: Optional[SessionMeta] = None) -> Session:
        """Existing session for the key, or a new one with a transcript session allocated.

        Concurrent callers for the same key share one creation, so the transcript
        store never gets two session rows for one channel.
        """
        existing = self._sessions.get(channel_key)
        if existing is not None:
            return existing

        creating = self._creating.get(channel_key)
        if creating is None:
            creating = asyncio.get_running_loop().create_task(
                self._create(channel_key, user_id, meta or SessionMeta())
            )
            self._creating[channel_key] = creating
            creating.add_done_callback(lambda _task, key=channel_key: self._creating.pop(key, None))
        return await asyncio.shield(creating)

    async def _create(self, channel_key: str, user_id: str, meta: SessionMeta) -> Session:
        channel_ref = meta.channel_ref or channel_key
        session_id = await self.transcripts.create_session(user_id, channel_ref, meta.user_agent, meta.ip_address)

        greeting = greeting_for(meta.is_new_user)
        if session_id:
            self.transcripts.log_system_message(session_id, greeting)

        session = Session(
            channel_key=channel_key,
            user_id=user_id,
            session_id=session_id,
            channel=meta.channel,
            display_name=meta.display_name,
            history=[
                {"role": ROLE_SYSTEM, "content": self.knowledge_base.content},
                {"role": ROLE_ASSISTANT, "content": greeting},
            ],
        )
        self._sessions[channel_key] = session
        logger.info(
            "Session created",
            extra={
                "context": {
                    "channel_key": channel_key,
                    "channel": meta.channel,
                    "user_id": user_id,
                    "session_id": session_id,
                }
            },
        )
        return session

    def append_turn(self, channel_key: str, role: str, content: str) -> Optional[Session]:
        """Append to the session history and trim it. None if the channel has no session."""
        if role not in (ROLE_SYSTEM, ROLE_USER, ROLE_ASSISTANT):
            raise ValueError(f"Unknown role: {role}")
        session = self._sessions.get(channel_key)
        if session is None:
            return None
        session.history.append({"role": role, "content": content})
        session.history = trim_history(session.history, self.history_cap)
        session.last_activity = _utcnow()
        return session

    def touch(self, channel_key: str) -> None:
        session = self._sessions.get(channel_key)
        if session is not None:
            session.last_activity = _utcnow()

    async def end(self, channel_key: str) -> bool:
        """Remove the session and close its transcript. Store failures are logged, not raised."""
        creating = self._creating.get(channel_key)
        if creating is not None:
            await asyncio.shield(creating)
        session = self._sessions.pop(channel_key, None)
        if session is None:
            return False
        await self.transcripts.end_session(session.session_id)
        logger.info(
            "Session ended",
            extra={"context": {"channel_key": channel_key, "session_id": session.session_id}},
        )
        return True

    async def sweep_idle(self, max_idle: timedelta, channel: Optional[str] = None) -> list[str]:
        """End sessions whose last activity is older than max_idle. Returns the swept keys."""
        cutoff = _utcnow() - max_idle
        stale = [
            key
            for key, session in list(self._sessions.items())
            if session.last_activity < cutoff and (channel is None or session.channel == channel)
        ]
        swept = []
        for key in stale:
            session = self._sessions.get(key)
            # Activity may have landed while an earlier end() was awaiting the store.
            if session is None or session.last_activity >= cutoff:
                continue
            if await self.end(key):
                swept.append(key)
        if swept:
            logger.info(f"Cleaned up {len(swept)} inactive sessions")
        return swept

    def stats(self) -> dict:
        return {
            "active_sessions": len(self._sessions),
            "sessions": [
                {
                    "channel_key": key,
                    "channel": session.channel,
                    "user_id": session.user_id,
                    "created_at": session.created_at.isoformat(),
                    "last_activity": session.last_activity.isoformat(),
                    "message_count": session.message_count,
                }
                for key, session in self._sessions.items()
            ],
        }
