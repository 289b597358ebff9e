"""Contacts repository - one row per WhatsApp user.

Uses raw SQL with psycopg2 (no ORM). Callers run these inside txn().

get_or_create_contact relies on the unique index on wa_id: the
INSERT ... ON CONFLICT DO UPDATE form returns the existing row (locked until
commit) instead of racing a separate SELECT against a concurrent insert.
"""

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from tourdesk.domain.models import Contact

_CONTACT_COLUMNS = """
    id, wa_id, display_name, extracted_user_name,
    last_extracted_tour_type, last_extracted_tour_date, last_extracted_tour_time,
    last_message_at, created_at, updated_at
"""


def _row_to_contact(row: tuple[Any, ...]) -> Contact:
    return Contact(
        id=row[0],
        wa_id=row[1],
        display_name=row[2],
        extracted_user_name=row[3],
        last_extracted_tour_type=row[4],
        last_extracted_tour_date=row[5],
        last_extracted_tour_time=row[6],
        last_message_at=row[7],
        created_at=row[8],
        updated_at=row[9],
    )


def get_or_create_contact(
    cur: PgCursor,
    *,
    wa_id: str,
    display_name: str,
) -> tuple[Contact, bool]:
    """Return the contact for wa_id, creating it on first contact.

    Args:
        cur: Database cursor (inside a transaction).
        wa_id: WhatsApp id of the user (unique key).
        display_name: Name stored only when the contact is created.

    Returns:
        Tuple of (contact, created).
    """
    cur.execute(
        f"""
        INSERT INTO contacts (wa_id, display_name, last_message_at)
        VALUES (%s, %s, now())
        ON CONFLICT (wa_id) DO UPDATE SET wa_id = EXCLUDED.wa_id
        RETURNING {_CONTACT_COLUMNS}, (xmax = 0) AS created
        """,
        (wa_id, display_name),
    )
    row = cur.fetchone()
    return (_row_to_contact(row[:10]), bool(row[10]))


def update_contact(cur: PgCursor, contact: Contact) -> None:
    """Persist display name, extraction fields and last_message_at."""
    cur.execute(
        """
        UPDATE contacts
        SET display_name             = %s,
            extracted_user_name      = %s,
            last_extracted_tour_type = %s,
            last_extracted_tour_date = %s,
            last_extracted_tour_time = %s,
            last_message_at          = COALESCE(%s::TIMESTAMPTZ, last_message_at),
            updated_at               = now()
        WHERE id = %s
        """,
        (
            contact.display_name,
            contact.extracted_user_name,
            contact.last_extracted_tour_type,
            contact.last_extracted_tour_date,
            contact.last_extracted_tour_time,
            contact.last_message_at,
            contact.id,
        ),
    )
