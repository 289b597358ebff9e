"""Meta Cloud API adapter - verify and decode webhook payloads.

Handles Meta WhatsApp Business API webhook payloads: signature
verification and decoding into message and status events.

Payload structure:
{
  "object": "whatsapp_business_account",
  "entry": [{
    "changes": [{
      "field": "messages",
      "value": {
        "contacts": [{"wa_id": "PHONE", "profile": {"name": "..."}}],
        "messages": [{"from": "PHONE", "id": "MSG_ID", "timestamp": "...",
                      "type": "text", "text": {"body": "..."}}],
        "statuses": [{"id": "MSG_ID", "status": "delivered",
                      "recipient_id": "PHONE", "timestamp": "..."}]
      }
    }]
  }]
}

Every level is optional: a missing or wrongly typed node yields no events
for that branch instead of raising.
"""

import hashlib
import hmac
from datetime import datetime
from typing import Any, Iterator

from tourdesk.infra.time import from_unix_seconds, utc_now

from .models import InboundMessageEvent, StatusEvent

SIGNATURE_PREFIX = "sha256="


def verify_signature(payload_bytes: bytes, signature_header: str | None, app_secret: str) -> bool:
    """Verify Meta webhook signature (HMAC-SHA256).

    Meta signs webhooks with sha256=<hex_signature> format.

    Args:
        payload_bytes: Raw request body bytes.
        signature_header: X-Hub-Signature-256 header value (sha256=...).
        app_secret: Meta App Secret for HMAC verification.

    Returns:
        True only if the header carries the HMAC of the body. Malformed
        headers and an empty secret return False.
    """
    if not signature_header or not app_secret:
        return False

    if not signature_header.startswith(SIGNATURE_PREFIX):
        return False

    try:
        expected = bytes.fromhex(signature_header[len(SIGNATURE_PREFIX):])
    except ValueError:
        return False

    computed = hmac.new(
        key=app_secret.encode("utf-8"),
        msg=payload_bytes,
        digestmod=hashlib.sha256,
    ).digest()

    return hmac.compare_digest(computed, expected)


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _non_empty_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _parse_timestamp(value: Any) -> datetime:
    """Provider timestamps are unix seconds, usually sent as strings."""
    try:
        return from_unix_seconds(int(value))
    except (TypeError, ValueError, OverflowError, OSError):
        return utc_now()


def _iter_change_values(payload: Any) -> Iterator[dict[str, Any]]:
    for entry in _as_list(_as_dict(payload).get("entry")):
        for change in _as_list(_as_dict(entry).get("changes")):
            change = _as_dict(change)
            if change.get("field") != "messages":
                continue
            yield _as_dict(change.get("value"))


def _message_events(value: dict[str, Any]) -> Iterator[InboundMessageEvent]:
    for message in _as_list(value.get("messages")):
        message = _as_dict(message)
        message_id = _non_empty_str(message.get("id"))
        sender_id = _non_empty_str(message.get("from"))
        if not message_id or not sender_id:
            continue

        kind = _non_empty_str(message.get("type")) or "unknown"
        body = None
        if kind == "text":
            text = _as_dict(message.get("text")).get("body")
            body = text if isinstance(text, str) else None

        yield InboundMessageEvent(
            sender_id=sender_id,
            body=body,
            message_id=message_id,
            timestamp=_parse_timestamp(message.get("timestamp")),
            kind=kind,
        )


def _status_events(value: dict[str, Any]) -> Iterator[StatusEvent]:
    for status in _as_list(value.get("statuses")):
        status = _as_dict(status)
        message_id = _non_empty_str(status.get("id"))
        status_value = _non_empty_str(status.get("status"))
        if not message_id or not status_value:
            continue

        yield StatusEvent(
            message_id=message_id,
            status=status_value,
            recipient_id=_non_empty_str(status.get("recipient_id")),
            timestamp=_parse_timestamp(status.get("timestamp")),
        )


def iter_change_events(
    payload: Any,
) -> Iterator[tuple[list[InboundMessageEvent], list[StatusEvent]]]:
    """Yield (messages, statuses) for each "messages" change, in payload order."""
    for value in _iter_change_values(payload):
        yield list(_message_events(value)), list(_status_events(value))


def iter_message_events(payload: Any) -> Iterator[InboundMessageEvent]:
    """Yield inbound messages in provider order.

    Messages without an id or a sender are skipped. body is set for text
    messages only. The contacts block (profile names) is not read.
    """
    for value in _iter_change_values(payload):
        yield from _message_events(value)


def iter_status_events(payload: Any) -> Iterator[StatusEvent]:
    """Yield delivery status callbacks in provider order."""
    for value in _iter_change_values(payload):
        yield from _status_events(value)
