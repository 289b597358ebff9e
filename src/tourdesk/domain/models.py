"""Domain records for the tour-desk response pipeline."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Literal

NOT_AVAILABLE = "N/A"

MessageStatus = Literal["received", "sent", "delivered", "read", "failed"]

MESSAGE_STATUSES: frozenset[str] = frozenset(
    {"received", "sent", "delivered", "read", "failed"}
)

ResponseStatus = Literal["Sent", "Failed"]


@dataclass
class Contact:
    """One WhatsApp user, keyed by wa_id (phone-based id)."""

    id: int
    wa_id: str
    display_name: str | None = None
    extracted_user_name: str | None = None
    last_extracted_tour_type: str | None = None
    last_extracted_tour_date: str | None = None
    last_extracted_tour_time: str | None = None
    last_message_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Message:
    """Inbound or outbound WhatsApp message.

    wa_message_id is the provider id and the idempotency key for saves.
    """

    wa_message_id: str
    contact_id: int
    body: str
    is_from_me: bool
    timestamp: datetime
    status: MessageStatus
    message_type: str = "text"
    id: int | None = None


@dataclass(frozen=True)
class TourPreset:
    """A bookable tour offering. Read-only for the pipeline."""

    id: int
    tour_type: str
    date: str | None
    time_slot: str | None
    guide_name: str
    guide_phone: str
    meeting_location: str
    identifiable_object: str
    is_active: bool = True
    max_capacity: int = 10
    price: Decimal | None = None
    description: str | None = None


@dataclass(frozen=True)
class ExtractedIntent:
    """Structured guess produced by the AI extraction call.

    Every field is a concrete string or the "N/A" sentinel.
    """

    user_name: str = NOT_AVAILABLE
    tour_type: str = NOT_AVAILABLE
    tour_date: str = NOT_AVAILABLE
    tour_time: str = NOT_AVAILABLE

    @classmethod
    def unknown(cls) -> "ExtractedIntent":
        """All-"N/A" intent used when extraction is not configured."""
        return cls()

    def to_json(self) -> str:
        """Serialize for the audit log (provider field names)."""
        return json.dumps(
            {
                "UserName": self.user_name,
                "TourType": self.tour_type,
                "TourDate": self.tour_date,
                "TourTime": self.tour_time,
            }
        )


@dataclass
class AutomatedResponseLog:
    """Audit row: one per pipeline execution, written on every exit path."""

    contact_wa_id: str
    request_received_at: datetime
    response_sent_at: datetime
    processing_duration_ms: int
    full_response_text: str
    status: ResponseStatus
    incoming_message_id: int | None = None
    ai_call_duration_ms: int | None = None
    template_used: str = NOT_AVAILABLE
    company_name_used: str = NOT_AVAILABLE
    guide_name_used: str = NOT_AVAILABLE
    tour_location_used: str = NOT_AVAILABLE
    tour_time_used: str = NOT_AVAILABLE
    identifiable_object_used: str = NOT_AVAILABLE
    guide_number_used: str = NOT_AVAILABLE
    error_message: str | None = None
    ai_extracted_data: str | None = None
    id: int | None = None
    created_at: datetime | None = field(default=None, compare=False)
