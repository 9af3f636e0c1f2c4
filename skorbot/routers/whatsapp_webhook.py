import json

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from skorbot.dependencies import get_runtime
from skorbot.logging_config import get_logger
from skorbot.runtime import ChatRuntime
from skorbot.schemas.whatsapp import WhatsAppStatusResponse, WhatsAppWebhookPayload
from skorbot.services.whatsapp_service import extract_text_messages, verify_signature

logger = get_logger("whatsapp_webhook")

router = APIRouter()

WHATSAPP_BUSINESS_OBJECT = "whatsapp_business_account"


@router.get("/webhook/whatsapp")
def verify_webhook(
    hub_mode: str | None = Query(default=None, alias="hub.mode"),
    hub_verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(default=None, alias="hub.challenge"),
    runtime: ChatRuntime = Depends(get_runtime),
):
    """Meta subscription handshake."""
    if hub_mode != "subscribe":
        raise HTTPException(status_code=400, detail="Invalid mode")
    expected = runtime.settings.meta_webhook_verify_token
    if not expected or hub_verify_token != expected:
        logger.warning("WhatsApp webhook verification failed: token mismatch")
        raise HTTPException(status_code=403, detail="Verification token mismatch")
    logger.info("WhatsApp webhook verified")
    return PlainTextResponse(hub_challenge or "")


@router.post("/webhook/whatsapp")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    runtime: ChatRuntime = Depends(get_runtime),
):
    raw_body = await request.body()

    app_secret = runtime.settings.meta_app_secret
    if app_secret and not verify_signature(raw_body, request.headers.get("x-hub-signature-256"), app_secret):
        logger.error("Invalid WhatsApp webhook signature")
        raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        payload = WhatsAppWebhookPayload.model_validate(json.loads(raw_body or b"{}"))
    except (ValueError, ValidationError) as exc:
        logger.warning("WhatsApp webhook payload validation failed", extra={"context": {"error": str(exc)}})
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    if payload.object != WHATSAPP_BUSINESS_OBJECT:
        return {"status": "ignored"}

    messages = extract_text_messages(payload)
    queued = 0
    for message in messages:
        channel_key = runtime.conversations.handle_whatsapp_message(message.from_, message.text)
        if channel_key is None:
            continue
        queued += 1
        if message.message_id:
            background_tasks.add_task(runtime.whatsapp.mark_as_read, message.message_id)

    if queued:
        logger.info(f"Received {queued} WhatsApp messages", extra={"context": {"count": queued}})
    return {"status": "processed" if queued else "ignored", "queued": queued}


@router.get("/api/whatsapp/status", response_model=WhatsAppStatusResponse)
def whatsapp_status(runtime: ChatRuntime = Depends(get_runtime)):
    return runtime.config_status()
