from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class WhatsAppText(BaseModel):
    body: Optional[str] = None


class WhatsAppMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    from_: Optional[str] = Field(default=None, alias="from")
    id: Optional[str] = None
    timestamp: Optional[str] = None
    type: Optional[str] = "text"
    text: Optional[WhatsAppText] = None


class WhatsAppChangeValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    messaging_product: Optional[str] = None
    messages: list[WhatsAppMessage] = Field(default_factory=list)


class WhatsAppChange(BaseModel):
    field: Optional[str] = None
    value: WhatsAppChangeValue = Field(default_factory=WhatsAppChangeValue)


class WhatsAppEntry(BaseModel):
    id: Optional[str] = None
    changes: list[WhatsAppChange] = Field(default_factory=list)


class WhatsAppWebhookPayload(BaseModel):
    object: Optional[str] = None
    entry: list[WhatsAppEntry] = Field(default_factory=list)


class InboundWhatsAppMessage(BaseModel):
    """One inbound text delivery: {from, text, messageId, timestamp}."""

    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    text: str
    message_id: Optional[str] = Field(default=None, alias="messageId")
    timestamp: Optional[str] = None


class WhatsAppStatusResponse(BaseModel):
    webhook: dict
    ai: dict
    sessions: dict
    is_fully_configured: bool
