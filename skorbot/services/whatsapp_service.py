"""WhatsApp Cloud API: phone identity, webhook parsing and signature checks, outbound sends."""

import hashlib
import hmac
import re
from typing import Any, Optional

import httpx

from skorbot.logging_config import get_logger
from skorbot.schemas.whatsapp import InboundWhatsAppMessage, WhatsAppWebhookPayload

logger = get_logger("whatsapp_service")

USER_ID_PREFIX = "whatsapp_"
DEFAULT_COUNTRY_CODE = "62"
SIGNATURE_PREFIX = "sha256="


def digits_only(phone_number: str) -> str:
    return re.sub(r"\D", "", phone_number or "")


def normalize_phone_number(phone_number: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """08123... -> 628123..., 8123... -> 628123..., 628123... unchanged."""
    digits = digits_only(phone_number)
    if not digits:
        raise ValueError(f"Not a phone number: {phone_number!r}")
    if digits.startswith(country_code):
        return digits
    if digits.startswith("0"):
        return country_code + digits[1:]
    return country_code + digits


def user_id_for_phone(phone_number: str) -> str:
    return f"{USER_ID_PREFIX}{digits_only(phone_number)}"


def channel_ref_for_phone(normalized_phone: str) -> str:
    return f"{USER_ID_PREFIX}{normalized_phone}"


def verify_signature(raw_body: bytes, signature_header: Optional[str], app_secret: str) -> bool:
    """Validate X-Hub-Signature-256 (HMAC-SHA256 of the raw body, hex, "sha256=" prefix)."""
    if not app_secret or not signature_header:
        return False
    received = signature_header.strip()
    if received.startswith(SIGNATURE_PREFIX):
        received = received[len(SIGNATURE_PREFIX) :]
    expected = hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode("ascii"), received.lower().encode("utf-8"))


def extract_text_messages(payload: WhatsAppWebhookPayload) -> list[InboundWhatsAppMessage]:
    """Inbound text messages in delivery order. Statuses and non-text types are skipped."""
    messages: list[InboundWhatsAppMessage] = []
    for entry in payload.entry:
        for change in entry.changes:
            for message in change.value.messages:
                if message.type != "text" or message.text is None:
                    logger.debug(f"Skipping WhatsApp message type={message.type} id={message.id}")
                    continue
                body = (message.text.body or "").strip()
                if not body or not message.from_:
                    continue
                messages.append(
                    InboundWhatsAppMessage(
                        from_=message.from_,
                        text=body,
                        message_id=message.id,
                        timestamp=message.timestamp,
                    )
                )
    return messages


class MetaWhatsAppClient:
    """Graph API client: https://graph.facebook.com/{version}/{phone_number_id}/messages"""

    def __init__(
        self,
        access_token: Optional[str],
        phone_number_id: Optional[str],
        api_version: str = "v21.0",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self.base_url = (
            f"https://graph.facebook.com/{api_version}/{phone_number_id}/messages" if phone_number_id else None
        )

    @property
    def enabled(self) -> bool:
        return bool(self.access_token and self.base_url)

    async def _post(self, payload: dict[str, Any]) -> bool:
        if not self.enabled:
            logger.info("WhatsApp client not configured, dry-run", extra={"context": {"payload": payload}})
            return False
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.access_token}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(f"Error sending WhatsApp request: {e}")
            return False

        if response.status_code >= 300:
            logger.error(f"WhatsApp send failed - status={response.status_code} body={response.text[:200]}")
            return False
        return True

    async def send_text(self, to: str, body: str) -> bool:
        """Send a text message. Same (to, body) can be retried safely."""
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"preview_url": False, "body": body},
        }
        ok = await self._post(payload)
        if ok:
            logger.info(f"Delivered via WhatsApp: to={to}")
        return ok

    async def mark_as_read(self, message_id: str) -> bool:
        """Read receipt for an inbound message (shows blue ticks while the reply is prepared)."""
        if not message_id:
            return False
        payload = {"messaging_product": "whatsapp", "status": "read", "message_id": message_id}
        return await self._post(payload)
