from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict


class ZapiText(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: Optional[str] = None


class ZapiContact(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    displayName: Optional[str] = None
    phone: Optional[str] = None
    phones: Optional[List[str]] = None
    vCard: Optional[str] = None


class ZapiWebhookPayload(BaseModel):
    """Inbound Z-API ``ReceivedCallback``; legacy UltraMsg fields pass through as extras."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    messageId: Optional[str] = None
    phone: Optional[str] = None
    fromMe: Optional[bool] = None
    isStatusReply: Optional[bool] = None
    isEdit: Optional[bool] = None
    isGroup: Optional[bool] = None
    status: Optional[str] = None
    senderName: Optional[str] = None
    text: Optional[Union[ZapiText, str]] = None
    contact: Optional[Union[ZapiContact, str]] = None
    contacts: Optional[List[ZapiContact]] = None
    momment: Optional[Any] = None


class WebhookResponse(BaseModel):
    success: bool
    message: str


class HealthResponse(BaseModel):
    status: str
    configured: bool
    pending_turns: int = 0
    active_turns: int = 0
