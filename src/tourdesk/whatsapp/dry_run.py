"""Sender that records replies instead of calling the provider.

Used by the simulate-message route so a full pipeline run never reaches
a real WhatsApp number.
"""

from tourdesk.observability.logging import get_logger
from tourdesk.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)


class DryRunSender:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.read: list[str] = []

    async def send_text(self, to_wa_id: str, body: str) -> bool:
        self.sent.append((to_wa_id, body))
        logger.info(
            "dry-run send_text",
            extra={
                "extra_fields": safe_log_context(
                    to_hash=hash_identifier(to_wa_id), text_len=len(body)
                )
            },
        )
        return True

    async def mark_as_read(self, wa_message_id: str) -> bool:
        self.read.append(wa_message_id)
        return True
