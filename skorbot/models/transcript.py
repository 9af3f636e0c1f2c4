import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from skorbot.database import TranscriptBase


def _new_id() -> str:
    return str(uuid.uuid4())


class ChatSession(TranscriptBase):
    __tablename__ = "chat_sessions"

    session_id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False)
    socket_id = Column(Text)  # socket id (web) or whatsapp_<phone>
    user_agent = Column(Text)
    ip_address = Column(Text)
    session_start_time = Column(DateTime(timezone=True), nullable=False)
    session_end_time = Column(DateTime(timezone=True))
    is_active = Column(Boolean, nullable=False, default=True)

    messages = relationship("ChatMessage", back_populates="session")


class ChatMessage(TranscriptBase):
    __tablename__ = "chat_messages"

    message_id = Column(String(36), primary_key=True, default=_new_id)
    session_id = Column(String(36), ForeignKey("chat_sessions.session_id"), nullable=False)
    chat_by = Column(Text, nullable=False)  # user id, AI, SYSTEM
    chat_script = Column(Text, nullable=False)
    message_type = Column(Text, nullable=False, default="text")  # text, system, error
    ai_model = Column(Text)
    response_time_ms = Column(Integer)
    token_count = Column(Integer)
    message_timestamp = Column(DateTime(timezone=True), nullable=False)

    session = relationship("ChatSession", back_populates="messages")


class ChatAnalytics(TranscriptBase):
    __tablename__ = "chat_analytics"

    session_id = Column(String(36), ForeignKey("chat_sessions.session_id"), primary_key=True)
    total_messages = Column(Integer, default=0)
    session_duration_seconds = Column(Numeric(12, 3))
    avg_response_time_ms = Column(Numeric(12, 3))
    total_tokens_used = Column(Integer)
