"""Collaborator contracts consumed by the automated-response pipeline.

The pipeline depends only on these protocols. PostgreSQL implementations
live in tourdesk.infra.stores; tests use in-memory fakes.
"""

from typing import Iterable, Protocol

from .models import (
    AutomatedResponseLog,
    Contact,
    ExtractedIntent,
    Message,
    TourPreset,
)


class StoreError(Exception):
    """Raised when a store operation fails at the driver level."""

    pass


class ContactStore(Protocol):
    async def get_or_create(self, wa_id: str, display_name: str) -> Contact: ...

    async def update(self, contact: Contact) -> None: ...


class MessageStore(Protocol):
    async def upsert_by_provider_id(self, message: Message) -> int:
        """Insert, or update status/body/timestamp of the row with the same provider id."""
        ...

    async def update_status_by_provider_id(
        self, wa_message_id: str, status: str
    ) -> bool:
        """Return False when no message has that provider id."""
        ...


class TourPresetStore(Protocol):
    async def find_best_match(
        self,
        tour_type: str | None,
        date: str | None,
        time_slot: str | None,
    ) -> TourPreset | None: ...

    async def list_active(self) -> Iterable[TourPreset]: ...

    async def get_by_id(self, preset_id: int) -> TourPreset | None: ...


class ResponseLogStore(Protocol):
    async def append(self, log: AutomatedResponseLog) -> int: ...


class IntentExtractor(Protocol):
    async def extract(self, text: str) -> ExtractedIntent | None:
        """None means extraction failed; never raises for transport errors."""
        ...


class MessageSender(Protocol):
    async def send_text(self, to_wa_id: str, body: str) -> bool: ...

    async def mark_as_read(self, wa_message_id: str) -> bool: ...
