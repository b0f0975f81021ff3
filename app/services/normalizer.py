"""Gateway payload adapters producing canonical inbound events.

Gateway-specific field names stop here. Each adapter returns the list of
message events found in a payload (delivery receipts and other non-message
notifications yield an empty list) and raises EventValidationError for
payloads that claim to be messages but cannot be parsed.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from app.errors import EventValidationError
from app.logging_config import get_logger
from app.schemas.events import InboundEvent

logger = get_logger("normalizer")

Adapter = Callable[[dict], List[InboundEvent]]


def _first(source: dict, *keys: str):
    for key in keys:
        value = source.get(key)
        if value not in (None, ""):
            return value
    return None


def _coerce_user_id(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    # WhatsApp JIDs carry the number before the "@".
    text = text.split("@", 1)[0]
    text = re.sub(r"[\s\-()]", "", text)
    return text or None


def _coerce_timestamp(value) -> datetime:
    if value in (None, ""):
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.strip().isdigit()):
        seconds = float(value)
        # Millisecond epochs are 13 digits.
        if seconds > 1e11:
            seconds /= 1000
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as e:
        raise EventValidationError(f"Unparseable timestamp: {value!r}") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _build_event(**fields) -> InboundEvent:
    if not fields.get("user_id"):
        raise EventValidationError("Message without sender")
    fields["id"] = str(fields.get("id") or uuid.uuid4())
    try:
        return InboundEvent(**fields)
    except ValidationError as e:
        raise EventValidationError(f"Invalid event: {e.errors()[0].get('msg')}") from e


def normalize_aisensy(payload: dict) -> List[InboundEvent]:
    """Aisensy flat message webhook."""
    if not isinstance(payload, dict):
        raise EventValidationError("Payload must be an object")
    if payload.get("type") != "message" and payload.get("event") != "message":
        return []

    message_type = _first(payload, "messageType") or payload.get("type")
    fields = {
        "id": _first(payload, "id", "messageId"),
        "user_id": _coerce_user_id(_first(payload, "from", "sender")),
        "timestamp": _coerce_timestamp(payload.get("timestamp")),
        "profile_name": _first(payload, "senderName", "userName"),
    }

    if message_type == "image":
        return [_build_event(kind="image", image_ref=_first(payload, "mediaUrl", "mediaId"), **fields)]
    if message_type == "interactive":
        return [_build_event(kind="interactive", reply_id=_first(payload, "buttonReply", "listReply"), **fields)]
    if message_type == "text":
        return [_build_event(kind="text", text=str(_first(payload, "text", "message") or ""), **fields)]

    # Unsupported media: an empty text gets the state's fallback reply.
    logger.info(f"Unsupported Aisensy message type: {message_type}")
    return [_build_event(kind="text", text="", **fields)]


def _meta_message(message: dict, names: Dict[str, str]) -> InboundEvent:
    sender = _coerce_user_id(message.get("from"))
    fields = {
        "id": message.get("id"),
        "user_id": sender,
        "timestamp": _coerce_timestamp(message.get("timestamp")),
        "profile_name": names.get(sender or ""),
    }
    message_type = message.get("type")

    if message_type == "text":
        return _build_event(kind="text", text=(message.get("text") or {}).get("body", ""), **fields)
    if message_type == "image":
        return _build_event(kind="image", image_ref=(message.get("image") or {}).get("id"), **fields)
    if message_type == "interactive":
        interactive = message.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return _build_event(kind="interactive", reply_id=reply.get("id"), **fields)
    if message_type == "button":
        return _build_event(kind="text", text=(message.get("button") or {}).get("text", ""), **fields)

    logger.info(f"Unsupported Meta message type: {message_type}")
    return _build_event(kind="text", text="", **fields)


def normalize_meta(payload: dict) -> List[InboundEvent]:
    """WhatsApp Cloud API webhook (entry/changes/value envelope)."""
    if not isinstance(payload, dict) or not isinstance(payload.get("entry"), list):
        raise EventValidationError("Payload is not a WhatsApp Cloud notification")

    events = []
    for entry in payload["entry"]:
        for change in (entry or {}).get("changes") or []:
            value = (change or {}).get("value") or {}
            names = {
                _coerce_user_id(contact.get("wa_id")) or "": (contact.get("profile") or {}).get("name")
                for contact in value.get("contacts") or []
            }
            for message in value.get("messages") or []:
                events.append(_meta_message(message, names))
    return events


ADAPTERS: Dict[str, Adapter] = {
    "aisensy": normalize_aisensy,
    "meta": normalize_meta,
}


def normalize(provider: str, payload: dict) -> List[InboundEvent]:
    adapter = ADAPTERS.get(provider)
    if adapter is None:
        raise EventValidationError(f"Unknown messaging provider: {provider}")
    return adapter(payload)
