"""Channel coordination: inbound text -> debounce -> session -> completion -> delivery."""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Optional

from skorbot.logging_config import bind_logger, get_logger
from skorbot.services.completion_orchestrator import CompletionOrchestrator
from skorbot.services.credit_context import CreditDataStore
from skorbot.services.message_buffer import MessageBuffer
from skorbot.services.session_registry import Session, SessionMeta, SessionRegistry
from skorbot.services.transcript_logger import TranscriptWriter
from skorbot.services.whatsapp_service import (
    MetaWhatsAppClient,
    channel_ref_for_phone,
    normalize_phone_number,
    user_id_for_phone,
)

logger = get_logger("conversation")

CHANNEL_WEB = "web"
CHANNEL_WHATSAPP = "whatsapp"

STATUS_THINKING = "thinking"
STATUS_IDLE = "idle"

MSG_THINKING = "AI sedang mengetik..."
MSG_PROCESSING_FAILURE = "Maaf, terjadi kesalahan saat memproses pesan Anda. Silakan coba lagi."
MSG_SESSION_ENDED = "Chat session ended"

Deliver = Callable[[str, str], Awaitable[bool]]
StatusNotifier = Callable[[str, str, Optional[str]], Awaitable[None]]


@dataclass
class ChannelBinding:
    channel: str
    user_id: str
    meta: SessionMeta
    deliver: Deliver
    notify_status: Optional[StatusNotifier] = None


class ConversationService:
    def __init__(
        self,
        registry: SessionRegistry,
        orchestrator: CompletionOrchestrator,
        credit_store: CreditDataStore,
        transcripts: TranscriptWriter,
        whatsapp: MetaWhatsAppClient,
        *,
        web_debounce_seconds: float = 3.5,
        whatsapp_debounce_seconds: float = 8.0,
        whatsapp_country_code: str = "62",
    ):
        self.registry = registry
        self.orchestrator = orchestrator
        self.credit_store = credit_store
        self.transcripts = transcripts
        self.whatsapp = whatsapp
        self.whatsapp_country_code = whatsapp_country_code
        self.buffers = {
            CHANNEL_WEB: MessageBuffer(web_debounce_seconds, self._process_turn, name=CHANNEL_WEB),
            CHANNEL_WHATSAPP: MessageBuffer(whatsapp_debounce_seconds, self._process_turn, name=CHANNEL_WHATSAPP),
        }
        self._bindings: dict[str, ChannelBinding] = {}

    def binding(self, channel_key: str) -> Optional[ChannelBinding]:
        return self._bindings.get(channel_key)

    async def _is_new_user(self, user_id: str) -> bool:
        if not self.credit_store.is_configured():
            return True
        try:
            return not await asyncio.to_thread(self.credit_store.has_profile, user_id)
        except Exception as exc:
            logger.warning(f"Could not check credit profile for {user_id}: {exc}")
            return True

    # --- channel lifecycle ---

    async def open_channel(
        self,
        channel_key: str,
        user_id: str,
        meta: SessionMeta,
        deliver: Deliver,
        notify_status: Optional[StatusNotifier] = None,
    ) -> Session:
        """Bind a live connection (web socket) and create its session right away."""
        self._bindings[channel_key] = ChannelBinding(
            channel=meta.channel,
            user_id=user_id,
            meta=meta,
            deliver=deliver,
            notify_status=notify_status,
        )
        meta.is_new_user = await self._is_new_user(user_id)
        return await self.registry.get_or_create(channel_key, user_id, meta)

    def _bind_whatsapp(self, phone: str) -> ChannelBinding:
        binding = self._bindings.get(phone)
        if binding is None:
            binding = ChannelBinding(
                channel=CHANNEL_WHATSAPP,
                user_id=user_id_for_phone(phone),
                meta=SessionMeta(
                    channel=CHANNEL_WHATSAPP,
                    channel_ref=channel_ref_for_phone(phone),
                    user_agent="WhatsApp",
                    display_name=f"WhatsApp User {phone}",
                ),
                deliver=self.whatsapp.send_text,
            )
            self._bindings[phone] = binding
        return binding

    async def close_channel(self, channel_key: str) -> bool:
        """Disconnect/logout: drop pending text, close the session and its transcript."""
        binding = self._bindings.pop(channel_key, None)
        for buffer in self.buffers.values():
            buffer.cancel(channel_key)

        session = self.registry.get(channel_key)
        if session is not None:
            self.transcripts.log_system_message(session.session_id, MSG_SESSION_ENDED)
        ended = await self.registry.end(channel_key)
        if session is not None:
            self.transcripts.update_session_analytics(session.session_id)
        if binding is not None or ended:
            logger.info(
                "Channel closed",
                extra={"context": {"channel_key": channel_key, "session_ended": ended}},
            )
        return ended

    # --- inbound ---

    def handle_inbound(self, channel_key: str, text: Optional[str]) -> bool:
        """Queue text for a bound channel. Blank text and unknown channels are ignored."""
        message = (text or "").strip()
        if not message:
            return False
        binding = self._bindings.get(channel_key)
        if binding is None:
            logger.warning("Inbound message for unbound channel", extra={"context": {"channel_key": channel_key}})
            return False
        self.registry.touch(channel_key)
        self.buffers[binding.channel].enqueue(channel_key, message)
        return True

    def handle_whatsapp_message(self, phone_number: str, text: str) -> Optional[str]:
        """Queue an inbound WhatsApp text under its normalized phone. Returns the channel key."""
        try:
            phone = normalize_phone_number(phone_number, self.whatsapp_country_code)
        except ValueError:
            logger.warning(f"Ignoring WhatsApp message from invalid number {phone_number!r}")
            return None
        self._bind_whatsapp(phone)
        return phone if self.handle_inbound(phone, text) else None

    # --- turn processing ---

    async def _process_turn(self, channel_key: str, messages: list[str]) -> None:
        binding = self._bindings.get(channel_key)
        log = bind_logger("conversation", channel_key=channel_key)
        if binding is None:
            log.info(f"Channel gone before flush, dropping {len(messages)} messages")
            return

        try:
            session = self.registry.get(channel_key)
            if session is None:
                binding.meta.is_new_user = await self._is_new_user(binding.user_id)
                session = await self.registry.get_or_create(channel_key, binding.user_id, binding.meta)

            log.info(f"Processing {len(messages)} messages", context={"session_id": session.session_id})
            await self._notify(binding, channel_key, STATUS_THINKING, MSG_THINKING)
            reply = await self.orchestrator.complete(session, messages)
        except Exception:
            log.exception("Turn processing failed")
            if self._bindings.get(channel_key) is binding:
                await self.deliver(channel_key, MSG_PROCESSING_FAILURE)
            return

        if self._bindings.get(channel_key) is not binding or self.registry.get(channel_key) is not session:
            log.info("Channel closed while the reply was generated, dropping it")
            return

        await self._notify(binding, channel_key, STATUS_IDLE, None)
        await self.deliver(channel_key, reply)

    async def _notify(self, binding: ChannelBinding, channel_key: str, status: str, message: Optional[str]) -> None:
        if binding.notify_status is None:
            return
        try:
            await binding.notify_status(channel_key, status, message)
        except Exception as exc:
            logger.warning(f"Status notification failed for {channel_key}: {exc}")

    async def deliver(self, channel_key: str, text: str) -> bool:
        """Send text to the channel. Failures are logged; calling again with the same text is a plain retry."""
        binding = self._bindings.get(channel_key)
        if binding is None:
            return False
        try:
            ok = await binding.deliver(channel_key, text)
        except Exception as exc:
            logger.error(f"Error delivering reply to {channel_key}: {exc}")
            return False
        if not ok:
            logger.error("Failed to deliver reply", extra={"context": {"channel_key": channel_key}})
        return ok

    # --- maintenance ---

    async def sweep_idle_sessions(self, max_idle: timedelta) -> list[str]:
        """End WhatsApp sessions without activity for max_idle."""
        swept = await self.registry.sweep_idle(max_idle, channel=CHANNEL_WHATSAPP)
        for channel_key in swept:
            binding = self._bindings.get(channel_key)
            if binding is not None and not self.buffers[binding.channel].pending(channel_key):
                del self._bindings[channel_key]
        return swept

    async def aclose(self) -> None:
        for buffer in self.buffers.values():
            await buffer.aclose()
