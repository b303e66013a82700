from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

SENDER_KEYS = ("phone", "from", "sender")
EVENT_ID_KEYS = ("messageId", "message_id", "id")


def _first_legacy_message(payload: dict) -> dict:
    messages = payload.get("messages")
    if isinstance(messages, list) and messages and isinstance(messages[0], dict):
        return messages[0]
    return {}


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return value is True


@dataclass(frozen=True)
class InboundEvent:
    """One webhook delivery from the messaging gateway, as received."""

    sender: Optional[str]
    raw_payload: dict
    event_id: Optional[str] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    from_me: bool = False
    is_status_reply: bool = False
    is_edit: bool = False
    status: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict, *, received_at: Optional[datetime] = None) -> "InboundEvent":
        """Build an event from Z-API or legacy UltraMsg webhook JSON."""
        legacy = _first_legacy_message(payload)

        sender = None
        for key in SENDER_KEYS:
            value = payload.get(key)
            if isinstance(value, (str, int)) and str(value).strip():
                sender = str(value)
                break
        if sender is None and legacy.get("from"):
            sender = str(legacy["from"])

        event_id = None
        for key in EVENT_ID_KEYS:
            value = payload.get(key)
            if isinstance(value, (str, int)) and str(value).strip():
                event_id = str(value).strip()
                break
        if event_id is None and legacy.get("id"):
            event_id = str(legacy["id"]).strip()

        status = payload.get("status")
        return cls(
            sender=sender,
            raw_payload=payload,
            event_id=event_id,
            received_at=received_at or datetime.now(timezone.utc),
            from_me=_coerce_flag(payload.get("fromMe")),
            is_status_reply=_coerce_flag(payload.get("isStatusReply")),
            is_edit=_coerce_flag(payload.get("isEdit")),
            status=str(status) if status is not None else None,
        )


@dataclass(frozen=True)
class Turn:
    """Messages coalesced from one debounce window, ready for completion."""

    sender_key: str
    messages: tuple[str, ...]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)
