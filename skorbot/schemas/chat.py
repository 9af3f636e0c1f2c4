from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

BOT_SENDER = "Admin"
SYSTEM_SENDER = "System"


class SendMessage(BaseModel):
    event: Literal["sendMessage"] = "sendMessage"
    text: str = ""


class ReceiveMessageData(BaseModel):
    sender: str = BOT_SENDER
    text: str
    timestamp: datetime


class ReceiveMessage(BaseModel):
    event: Literal["receiveMessage"] = "receiveMessage"
    data: ReceiveMessageData


class AiStatusData(BaseModel):
    status: str  # thinking, idle
    message: Optional[str] = None


class AiStatus(BaseModel):
    event: Literal["aiStatus"] = "aiStatus"
    data: AiStatusData


class ChatSessionSummary(BaseModel):
    session_id: str
    user_id: str
    socket_id: Optional[str] = None
    session_start_time: datetime
    session_end_time: Optional[datetime] = None
    is_active: bool
    message_count: int = 0
    last_message_time: Optional[datetime] = None


class ChatMessageRecord(BaseModel):
    message_id: str
    session_id: str
    chat_by: str
    chat_script: str
    message_type: str
    ai_model: Optional[str] = None
    response_time_ms: Optional[int] = None
    token_count: Optional[int] = None
    message_timestamp: datetime


class ChatStats(BaseModel):
    total_sessions: int = 0
    total_messages: int = 0
    user_messages: int = 0
    ai_messages: int = 0
    avg_response_time_ms: Optional[float] = None
    total_tokens_used: int = 0


class AuthenticatedUser(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
