import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from skorbot.dependencies import user_from_headers
from skorbot.logging_config import get_logger
from skorbot.runtime import ChatRuntime
from skorbot.schemas.chat import (
    BOT_SENDER,
    SYSTEM_SENDER,
    AiStatus,
    AiStatusData,
    ReceiveMessage,
    ReceiveMessageData,
    SendMessage,
)
from skorbot.services.conversation_service import CHANNEL_WEB
from skorbot.services.session_registry import SessionMeta

logger = get_logger("chat_socket")

router = APIRouter()

MSG_LOGIN_REQUIRED = "Anda harus login terlebih dahulu."


def receive_frame(text: str, sender: Optional[str] = None) -> dict:
    data = ReceiveMessageData(sender=sender or BOT_SENDER, text=text, timestamp=datetime.now(timezone.utc))
    return ReceiveMessage(data=data).model_dump(mode="json")


def parse_send_message(text: Optional[str]) -> Optional[SendMessage]:
    """sendMessage frame, or None when the frame is not JSON or not a sendMessage event."""
    if text is None:
        return None
    try:
        return SendMessage.model_validate_json(text)
    except ValidationError:
        return None


def status_frame(status: str, message: Optional[str]) -> dict:
    return AiStatus(data=AiStatusData(status=status, message=message)).model_dump(mode="json")


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket):
    await websocket.accept()
    runtime: ChatRuntime = websocket.app.state.runtime
    user = user_from_headers(websocket.headers)
    socket_id = str(uuid.uuid4())

    if user is None:
        logger.info(f"Unauthenticated socket connected: {socket_id}")
        await _serve_unauthenticated(websocket)
        return

    async def deliver(channel_key: str, text: str) -> bool:
        try:
            await websocket.send_json(receive_frame(text))
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.warning(f"Could not send to socket {channel_key}: {exc}")
            return False
        return True

    async def notify_status(channel_key: str, status: str, message: Optional[str]) -> None:
        await websocket.send_json(status_frame(status, message))

    conversations = runtime.conversations
    client_host = websocket.client.host if websocket.client else None
    meta = SessionMeta(
        channel=CHANNEL_WEB,
        channel_ref=socket_id,
        user_agent=websocket.headers.get("user-agent"),
        ip_address=client_host,
        display_name=user.display_name,
    )

    try:
        session = await conversations.open_channel(socket_id, user.user_id, meta, deliver, notify_status)
        logger.info(
            "Chat socket connected",
            extra={"context": {"socket_id": socket_id, "user_id": user.user_id, "session_id": session.session_id}},
        )
        greeting = session.history[1]["content"] if len(session.history) > 1 else None
        if greeting:
            await deliver(socket_id, greeting)

        while True:
            frame = parse_send_message(await _next_text_frame(websocket))
            if frame is None:
                logger.debug(f"Ignoring unreadable frame on socket {socket_id}")
                continue
            conversations.handle_inbound(socket_id, frame.text)
    except WebSocketDisconnect:
        logger.info(f"Client disconnected: {socket_id}")
    finally:
        await conversations.close_channel(socket_id)


async def _next_text_frame(websocket: WebSocket) -> Optional[str]:
    """Text of the next frame, None for a binary frame. Raises WebSocketDisconnect on close."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    return message.get("text")


async def _serve_unauthenticated(websocket: WebSocket) -> None:
    try:
        while True:
            if parse_send_message(await _next_text_frame(websocket)) is not None:
                await websocket.send_json(receive_frame(MSG_LOGIN_REQUIRED, sender=SYSTEM_SENDER))
    except WebSocketDisconnect:
        pass
