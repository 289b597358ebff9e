"""PostgreSQL-backed stores for the automated-response pipeline.

Each method is one short transaction (txn()) over the raw-SQL repositories,
dispatched to the threadpool so psycopg2 never blocks the event loop.
Driver errors are re-raised as StoreError.
"""

from typing import Callable, TypeVar

import psycopg2
from fastapi.concurrency import run_in_threadpool
from psycopg2.extensions import cursor as PgCursor

from tourdesk.domain.contracts import StoreError
from tourdesk.domain.models import AutomatedResponseLog, Contact, Message, TourPreset
from tourdesk.infra.db import txn
from tourdesk.infra.repositories import (
    contacts_repository,
    messages_repository,
    response_logs_repository,
    tour_presets_repository,
)

T = TypeVar("T")


def _run_txn(work: Callable[[PgCursor], T]) -> T:
    try:
        with txn() as cur:
            return work(cur)
    except psycopg2.Error as exc:
        raise StoreError(str(exc)) from exc


async def _in_txn(work: Callable[[PgCursor], T]) -> T:
    return await run_in_threadpool(_run_txn, work)


class PgContactStore:
    async def get_or_create(self, wa_id: str, display_name: str) -> Contact:
        contact, _created = await _in_txn(
            lambda cur: contacts_repository.get_or_create_contact(
                cur, wa_id=wa_id, display_name=display_name
            )
        )
        return contact

    async def update(self, contact: Contact) -> None:
        await _in_txn(lambda cur: contacts_repository.update_contact(cur, contact))


class PgMessageStore:
    async def upsert_by_provider_id(self, message: Message) -> int:
        return await _in_txn(lambda cur: messages_repository.upsert_message(cur, message))

    async def update_status_by_provider_id(self, wa_message_id: str, status: str) -> bool:
        return await _in_txn(
            lambda cur: messages_repository.update_message_status(
                cur, wa_message_id=wa_message_id, status=status
            )
        )


class PgTourPresetStore:
    async def find_best_match(
        self,
        tour_type: str | None,
        date: str | None,
        time_slot: str | None,
    ) -> TourPreset | None:
        return await _in_txn(
            lambda cur: tour_presets_repository.find_best_match(
                cur, tour_type=tour_type, date=date, time_slot=time_slot
            )
        )

    async def list_active(self) -> list[TourPreset]:
        return await _in_txn(tour_presets_repository.list_active_presets)

    async def get_by_id(self, preset_id: int) -> TourPreset | None:
        return await _in_txn(lambda cur: tour_presets_repository.get_preset(cur, preset_id))


class PgResponseLogStore:
    async def append(self, log: AutomatedResponseLog) -> int:
        return await _in_txn(
            lambda cur: response_logs_repository.insert_response_log(cur, log)
        )
