"""Automated response log repository - append-only audit trail.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor

from tourdesk.domain.models import AutomatedResponseLog


def insert_response_log(cur: PgCursor, log: AutomatedResponseLog) -> int:
    """Append one audit row and return its id."""
    cur.execute(
        """
        INSERT INTO automated_response_logs (
            incoming_message_id, contact_wa_id,
            request_received_at, response_sent_at,
            processing_duration_ms, ai_call_duration_ms,
            template_used, company_name_used, guide_name_used,
            tour_location_used, tour_time_used, identifiable_object_used,
            guide_number_used, full_response_text, status,
            error_message, ai_extracted_data
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            log.incoming_message_id,
            log.contact_wa_id,
            log.request_received_at,
            log.response_sent_at,
            log.processing_duration_ms,
            log.ai_call_duration_ms,
            log.template_used,
            log.company_name_used,
            log.guide_name_used,
            log.tour_location_used,
            log.tour_time_used,
            log.identifiable_object_used,
            log.guide_number_used,
            log.full_response_text,
            log.status,
            log.error_message,
            log.ai_extracted_data,
        ),
    )
    return cur.fetchone()[0]
