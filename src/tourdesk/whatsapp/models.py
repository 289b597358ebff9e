"""WhatsApp webhook event models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class InboundMessageEvent:
    """One inbound message from the provider webhook.

    sender_id (the wa_id) and body are PII: keep them in memory, never log them.
    """

    sender_id: str
    body: str | None
    message_id: str
    timestamp: datetime
    kind: str  # e.g., "text", "image", "audio", etc.
    display_name: str | None = None  # set by the simulate route only

    @property
    def is_text(self) -> bool:
        return self.kind == "text" and self.body is not None


@dataclass(frozen=True)
class StatusEvent:
    """Delivery status callback for a message we sent."""

    message_id: str
    status: str
    recipient_id: str | None
    timestamp: datetime
