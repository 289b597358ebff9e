"""Messages repository - inbound and outbound WhatsApp messages.

Uses raw SQL with psycopg2 (no ORM).

wa_message_id is unique: saving the same provider message twice updates
status, body and timestamp of the existing row instead of duplicating it.
"""

from psycopg2.extensions import cursor as PgCursor

from tourdesk.domain.models import Message


def upsert_message(cur: PgCursor, message: Message) -> int:
    """Insert a message or refresh the row with the same provider id.

    Returns:
        Database id of the stored row.
    """
    cur.execute(
        """
        INSERT INTO messages (
            wa_message_id, contact_id, body, is_from_me,
            timestamp, status, message_type
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (wa_message_id) DO UPDATE
        SET status    = EXCLUDED.status,
            timestamp = EXCLUDED.timestamp,
            body      = EXCLUDED.body
        RETURNING id
        """,
        (
            message.wa_message_id,
            message.contact_id,
            message.body,
            message.is_from_me,
            message.timestamp,
            message.status,
            message.message_type,
        ),
    )
    return cur.fetchone()[0]


def update_message_status(cur: PgCursor, *, wa_message_id: str, status: str) -> bool:
    """Set delivery status by provider id.

    Returns:
        True if a row was updated, False if no message has that id.
    """
    cur.execute(
        "UPDATE messages SET status = %s WHERE wa_message_id = %s",
        (status, wa_message_id),
    )
    return cur.rowcount > 0
