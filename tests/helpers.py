"""Shared test helpers for TourDesk tests.

In-memory stores and fake collaborators for the automated response
pipeline. These are NOT fixtures - they are regular classes and functions.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import itertools
from dataclasses import replace
from datetime import datetime, timezone

from tourdesk.domain.models import (
    AutomatedResponseLog,
    Contact,
    ExtractedIntent,
    Message,
    TourPreset,
)
from tourdesk.domain.tour_matching import TourMatcher, applicable_tiers
from tourdesk.infra.time import utc_now
from tourdesk.services.automated_response import AutomatedResponsePipeline
from tourdesk.whatsapp.models import InboundMessageEvent


class InMemoryContactStore:
    def __init__(self):
        self.by_wa_id: dict[str, Contact] = {}
        self.updates = 0
        self._ids = itertools.count(1)

    async def get_or_create(self, wa_id: str, display_name: str) -> Contact:
        contact = self.by_wa_id.get(wa_id)
        if contact is None:
            now = utc_now()
            contact = Contact(
                id=next(self._ids),
                wa_id=wa_id,
                display_name=display_name,
                created_at=now,
                updated_at=now,
            )
            self.by_wa_id[wa_id] = contact
        return replace(contact)

    async def update(self, contact: Contact) -> None:
        self.updates += 1
        self.by_wa_id[contact.wa_id] = replace(contact, updated_at=utc_now())


class InMemoryMessageStore:
    def __init__(self):
        self.by_provider_id: dict[str, Message] = {}
        self._ids = itertools.count(1)

    async def upsert_by_provider_id(self, message: Message) -> int:
        existing = self.by_provider_id.get(message.wa_message_id)
        if existing is not None:
            existing.status = message.status
            existing.body = message.body
            existing.timestamp = message.timestamp
            return existing.id
        stored = replace(message, id=next(self._ids))
        self.by_provider_id[message.wa_message_id] = stored
        return stored.id

    async def update_status_by_provider_id(self, wa_message_id: str, status: str) -> bool:
        existing = self.by_provider_id.get(wa_message_id)
        if existing is None:
            return False
        existing.status = status
        return True

    def outbound(self) -> list[Message]:
        return [m for m in self.by_provider_id.values() if m.is_from_me]

    def inbound(self) -> list[Message]:
        return [m for m in self.by_provider_id.values() if not m.is_from_me]


def select_best_match(presets, tour_type, date, time_slot):
    """In-memory version of the tiered ILIKE lookup in tour_presets_repository."""
    active = sorted((p for p in presets if p.is_active), key=lambda p: p.id)
    criteria = {"tour_type": tour_type, "date": date, "time_slot": time_slot}

    for tier in applicable_tiers(criteria):
        for preset in active:
            if all(
                criteria[attr].strip().lower() in (getattr(preset, attr) or "").lower()
                for attr in tier
            ):
                return preset
    return None


class InMemoryTourPresetStore:
    def __init__(self, presets: list[TourPreset] | None = None, fail: bool = False):
        self.presets = list(presets or [])
        self.fail = fail
        self.calls: list[tuple] = []

    async def find_best_match(self, tour_type, date, time_slot):
        self.calls.append((tour_type, date, time_slot))
        if self.fail:
            raise RuntimeError("catalog unavailable")
        return select_best_match(self.presets, tour_type, date, time_slot)

    async def list_active(self):
        return [p for p in self.presets if p.is_active]

    async def get_by_id(self, preset_id: int):
        return next((p for p in self.presets if p.id == preset_id), None)


class InMemoryResponseLogStore:
    def __init__(self, fail: bool = False):
        self.rows: list[AutomatedResponseLog] = []
        self.fail = fail

    async def append(self, log: AutomatedResponseLog) -> int:
        if self.fail:
            raise RuntimeError("log table unavailable")
        stored = replace(log, id=len(self.rows) + 1)
        self.rows.append(stored)
        return stored.id


class FakeExtractor:
    """Returns a fixed intent after a short delay, or raises."""

    def __init__(self, intent: ExtractedIntent | None = None, error: Exception | None = None):
        self.intent = intent
        self.error = error
        self.texts: list[str] = []

    async def extract(self, text: str) -> ExtractedIntent | None:
        self.texts.append(text)
        await asyncio.sleep(0.01)
        if self.error is not None:
            raise self.error
        return self.intent


class FakeSender:
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent: list[tuple[str, str]] = []
        self.read: list[str] = []

    async def send_text(self, to_wa_id: str, body: str) -> bool:
        self.sent.append((to_wa_id, body))
        return self.ok

    async def mark_as_read(self, wa_message_id: str) -> bool:
        self.read.append(wa_message_id)
        return True


WALKING_TOUR = TourPreset(
    id=1,
    tour_type="Walking Tour",
    date="tomorrow",
    time_slot="9 AM",
    guide_name="Maria Rodriguez",
    guide_phone="+1-555-0101",
    meeting_location="Central Park South entrance",
    identifiable_object="a bright orange umbrella",
    description="Explore Midtown on foot.",
)

FOOD_TOUR = TourPreset(
    id=2,
    tour_type="Food Tour",
    date="today",
    time_slot="12 PM",
    guide_name="Sofia Esposito",
    guide_phone="+1-555-0103",
    meeting_location="Chelsea Market main entrance",
    identifiable_object="a red tote bag",
)

INACTIVE_FOOD_TOUR = TourPreset(
    id=3,
    tour_type="Food Tour",
    date="tomorrow",
    time_slot="9 AM",
    guide_name="Retired Guide",
    guide_phone="+1-555-0199",
    meeting_location="Nowhere",
    identifiable_object="nothing",
    is_active=False,
)


class Harness:
    """Pipeline wired to in-memory collaborators."""

    def __init__(
        self,
        *,
        intent: ExtractedIntent | None = None,
        extractor_error: Exception | None = None,
        send_ok: bool = True,
        presets: list[TourPreset] | None = None,
        presets_fail: bool = False,
        logs_fail: bool = False,
        company_name: str = "Test Tours",
    ):
        self.contacts = InMemoryContactStore()
        self.messages = InMemoryMessageStore()
        self.presets = InMemoryTourPresetStore(
            [WALKING_TOUR, FOOD_TOUR] if presets is None else presets,
            fail=presets_fail,
        )
        self.logs = InMemoryResponseLogStore(fail=logs_fail)
        self.extractor = FakeExtractor(intent, extractor_error)
        self.sender = FakeSender(ok=send_ok)
        self.pipeline = AutomatedResponsePipeline(
            contacts=self.contacts,
            messages=self.messages,
            matcher=TourMatcher(self.presets),
            logs=self.logs,
            extractor=self.extractor,
            sender=self.sender,
            company_name=company_name,
        )


def text_event(
    body: str = "Hi, I'm Ana. Walking tour tomorrow morning please",
    *,
    sender_id: str = "15551234567",
    message_id: str = "wamid.TEST_001",
    display_name: str | None = None,
) -> InboundMessageEvent:
    return InboundMessageEvent(
        sender_id=sender_id,
        body=body,
        message_id=message_id,
        timestamp=datetime(2026, 7, 1, 12, 0, tzinfo=timezone.utc),
        kind="text",
        display_name=display_name,
    )


def text_payload(
    body: str = "Walking tour tomorrow morning",
    *,
    sender_id: str = "15551234567",
    message_id: str = "wamid.TEST_001",
    name: str = "Ana",
) -> dict:
    """Minimal webhook payload with one text message."""
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA_ID",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "contacts": [{"wa_id": sender_id, "profile": {"name": name}}],
                            "messages": [
                                {
                                    "from": sender_id,
                                    "id": message_id,
                                    "timestamp": "1782907200",
                                    "type": "text",
                                    "text": {"body": body},
                                }
                            ],
                        },
                    }
                ],
            }
        ],
    }


def status_payload(message_id: str, status: str) -> dict:
    return {
        "entry": [
            {
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "statuses": [
                                {
                                    "id": message_id,
                                    "status": status,
                                    "recipient_id": "15551234567",
                                    "timestamp": "1782907260",
                                }
                            ]
                        },
                    }
                ]
            }
        ]
    }


def sign(body: bytes, secret: str) -> str:
    """X-Hub-Signature-256 header value for body."""
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class LogRecorder:
    """Simple recorder to capture log calls deterministically."""

    def __init__(self):
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, level: str, *args, **kwargs):
        self.calls.append((level, args, kwargs))

    def info(self, *args, **kwargs):
        self._record("info", *args, **kwargs)

    def warning(self, *args, **kwargs):
        self._record("warning", *args, **kwargs)

    def error(self, *args, **kwargs):
        self._record("error", *args, **kwargs)

    def exception(self, *args, **kwargs):
        self._record("exception", *args, **kwargs)

    def debug(self, *args, **kwargs):
        self._record("debug", *args, **kwargs)

    def get_all_logged_content(self) -> str:
        parts = []
        for _, args, kwargs in self.calls:
            parts.append(str(args))
            parts.append(str(kwargs))
        return " ".join(parts)
