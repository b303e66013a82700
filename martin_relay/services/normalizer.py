import re
from dataclasses import dataclass
from typing import Optional

from martin_relay.errors import NormalizationDiscard
from martin_relay.models import InboundEvent

NOT_PROVIDED = "not provided"
CONTACT_TEMPLATE = "Contact shared:\nName: {name}\nPhone: {phone}"


@dataclass(frozen=True)
class NormalizedMessage:
    sender_key: str
    text: str


def normalize_sender_key(raw: Optional[str]) -> Optional[str]:
    """Strip everything but digits (``+55 (11) 99999-0000`` -> ``5511999990000``)."""
    if raw is None:
        return None
    digits = re.sub(r"\D", "", str(raw))
    return digits or None


def _clean(value) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, tuple)):
        return None
    text = str(value).strip()
    return text or None


def _extract_text(payload: dict) -> Optional[str]:
    text_obj = payload.get("text")
    if isinstance(text_obj, dict):
        text = _clean(text_obj.get("message"))
        if text:
            return text
    elif isinstance(text_obj, str) and text_obj.strip():
        return text_obj.strip()

    for key in ("body", "message"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    messages = payload.get("messages")
    if isinstance(messages, list) and messages and isinstance(messages[0], dict):
        value = messages[0].get("body")
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_vcard(blob: str) -> tuple[Optional[str], Optional[str]]:
    """Return (full name, first phone) from a vCard 3.0/4.0 blob."""
    name = None
    phone = None
    for raw_line in blob.replace("\r\n", "\n").split("\n"):
        line = raw_line.strip()
        if ":" not in line:
            continue
        prop, _, value = line.partition(":")
        prop_name = prop.split(";", 1)[0].split(".")[-1].upper()
        if prop_name == "FN" and not name:
            name = _clean(value)
        elif prop_name == "TEL" and not phone:
            phone = _clean(value)
    return name, phone


def _contact_fields(contact: dict) -> tuple[Optional[str], Optional[str]]:
    name = _clean(contact.get("name")) or _clean(contact.get("displayName"))
    phone = _clean(contact.get("phone"))
    if not phone:
        phones = contact.get("phones")
        if isinstance(phones, list) and phones:
            phone = _clean(phones[0])

    vcard = contact.get("vCard") or contact.get("vcard")
    if isinstance(vcard, str) and (not name or not phone):
        vcard_name, vcard_phone = parse_vcard(vcard)
        name = name or vcard_name
        phone = phone or vcard_phone
    return name, phone


def describe_contact(name: Optional[str], phone: Optional[str]) -> str:
    return CONTACT_TEMPLATE.format(name=name or NOT_PROVIDED, phone=phone or NOT_PROVIDED)


def _extract_contact(payload: dict) -> Optional[str]:
    contact = payload.get("contact")
    if isinstance(contact, dict) and contact:
        return describe_contact(*_contact_fields(contact))
    if isinstance(contact, str) and contact.strip().upper().startswith("BEGIN:VCARD"):
        return describe_contact(*parse_vcard(contact))

    contacts = payload.get("contacts")
    if isinstance(contacts, list) and contacts and isinstance(contacts[0], dict):
        return describe_contact(*_contact_fields(contacts[0]))
    return None


def normalize_event(event: InboundEvent) -> NormalizedMessage:
    """Resolve the sender key and message text, or raise NormalizationDiscard."""
    sender_key = normalize_sender_key(event.sender)
    if not sender_key:
        raise NormalizationDiscard("no_sender")

    payload = event.raw_payload if isinstance(event.raw_payload, dict) else {}
    text = _extract_text(payload) or _extract_contact(payload)
    if not text:
        raise NormalizationDiscard("unrecognized_payload")
    return NormalizedMessage(sender_key=sender_key, text=text)
