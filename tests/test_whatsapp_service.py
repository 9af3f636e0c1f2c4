import hashlib
import hmac
import json

import httpx
import pytest

from skorbot.schemas.whatsapp import WhatsAppWebhookPayload
from skorbot.services.whatsapp_service import (
    MetaWhatsAppClient,
    channel_ref_for_phone,
    extract_text_messages,
    normalize_phone_number,
    user_id_for_phone,
    verify_signature,
)


def webhook_payload(*messages) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA_ID",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": "123"},
                            "messages": list(messages),
                        },
                    }
                ],
            }
        ],
    }


class TestPhoneNumbers:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("08123456789", "628123456789"),
            ("8123456789", "628123456789"),
            ("628123456789", "628123456789"),
            ("+62 812-3456-789", "628123456789"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_phone_number(raw) == expected

    def test_empty_number_rejected(self):
        with pytest.raises(ValueError):
            normalize_phone_number("+-")

    def test_identity(self):
        assert user_id_for_phone("628123456789") == "whatsapp_628123456789"
        assert channel_ref_for_phone("628123456789") == "whatsapp_628123456789"


class TestSignature:
    def test_valid_signature(self):
        body = b'{"object":"whatsapp_business_account"}'
        digest = hmac.new(b"app-secret", body, hashlib.sha256).hexdigest()
        assert verify_signature(body, f"sha256={digest}", "app-secret") is True

    def test_tampered_body(self):
        digest = hmac.new(b"app-secret", b"original", hashlib.sha256).hexdigest()
        assert verify_signature(b"tampered", f"sha256={digest}", "app-secret") is False

    def test_non_ascii_header_is_rejected(self):
        assert verify_signature(b"{}", "sha256=\u00e9\u00e9", "app-secret") is False

    def test_missing_header(self):
        assert verify_signature(b"{}", None, "app-secret") is False


class TestExtractTextMessages:
    def test_only_text_messages_in_order(self):
        payload = WhatsAppWebhookPayload.model_validate(
            webhook_payload(
                {"from": "628111", "id": "wamid.1", "timestamp": "1700000000", "type": "text", "text": {"body": "halo"}},
                {"from": "628111", "id": "wamid.2", "type": "image", "image": {"id": "media"}},
                {"from": "628111", "id": "wamid.3", "type": "text", "text": {"body": "   "}},
                {"from": "628222", "id": "wamid.4", "type": "text", "text": {"body": " skor saya? "}},
            )
        )

        messages = extract_text_messages(payload)

        assert [(m.from_, m.text, m.message_id) for m in messages] == [
            ("628111", "halo", "wamid.1"),
            ("628222", "skor saya?", "wamid.4"),
        ]
        assert messages[0].timestamp == "1700000000"

    def test_status_updates_have_no_messages(self):
        raw = webhook_payload()
        raw["entry"][0]["changes"][0]["value"]["statuses"] = [{"id": "wamid.1", "status": "delivered"}]
        assert extract_text_messages(WhatsAppWebhookPayload.model_validate(raw)) == []


class TestMetaWhatsAppClient:
    @pytest.mark.asyncio
    async def test_send_text(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.out"}]})

        client = MetaWhatsAppClient("token", "123", api_version="v21.0", transport=httpx.MockTransport(handler))

        assert await client.send_text("628111", "Halo!") is True
        assert seen["url"] == "https://graph.facebook.com/v21.0/123/messages"
        assert seen["auth"] == "Bearer token"
        assert seen["body"]["to"] == "628111"
        assert seen["body"]["text"]["body"] == "Halo!"

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self):
        client = MetaWhatsAppClient(
            "token", "123", transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"error": {}}))
        )
        assert await client.send_text("628111", "Halo!") is False

    @pytest.mark.asyncio
    async def test_network_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = MetaWhatsAppClient("token", "123", transport=httpx.MockTransport(handler))
        assert await client.send_text("628111", "Halo!") is False

    @pytest.mark.asyncio
    async def test_unconfigured_client_is_dry_run(self):
        client = MetaWhatsAppClient(None, None)
        assert client.enabled is False
        assert await client.send_text("628111", "Halo!") is False

    @pytest.mark.asyncio
    async def test_mark_as_read(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        client = MetaWhatsAppClient("token", "123", transport=httpx.MockTransport(handler))

        assert await client.mark_as_read("wamid.1") is True
        assert seen["body"] == {"messaging_product": "whatsapp", "status": "read", "message_id": "wamid.1"}
        assert await client.mark_as_read("") is False
