"""Automated response pipeline for inbound WhatsApp text messages.

One run per inbound message:

    contact upsert -> inbound message persist -> intent extraction ->
    tour match -> compose reply -> send -> outbound message persist ->
    mark read -> audit log

Stages share one mutable PipelineOutcome. Any exception raised by a stage
is caught at run(), logged and recorded on the outcome; the audit row is
appended from the finally block so every run writes exactly one
AutomatedResponseLog, whatever the exit path.

Security: wa_id and message text are never logged raw.
"""

import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from tourdesk.domain.contracts import (
    ContactStore,
    IntentExtractor,
    MessageSender,
    MessageStore,
    ResponseLogStore,
)
from tourdesk.domain.models import (
    MESSAGE_STATUSES,
    NOT_AVAILABLE,
    AutomatedResponseLog,
    Contact,
    ExtractedIntent,
    Message,
    TourPreset,
)
from tourdesk.domain.tour_matching import TourMatcher
from tourdesk.infra.time import elapsed_ms, perf_elapsed_ms, utc_now
from tourdesk.observability.logging import get_logger
from tourdesk.observability.redaction import hash_identifier, safe_log_context
from tourdesk.whatsapp.models import InboundMessageEvent, StatusEvent
from tourdesk.whatsapp.templates import (
    TOUR_CONFIRMATION,
    compose_generic_response,
    compose_tour_response,
)

logger = get_logger(__name__)

DEFAULT_COMPANY_NAME = "NYC Adventure Tours"
GENERIC_TEMPLATE = "generic_ack"
DEFAULT_RESPONSE_TEXT = "Automated response generation failed."
SEND_FAILED_ERROR = "Failed to send WhatsApp message"


def get_company_name() -> str:
    return os.environ.get("TOURDESK_COMPANY_NAME") or DEFAULT_COMPANY_NAME


@dataclass
class PipelineOutcome:
    """Everything one run learns; becomes the audit row at the end."""

    contact_wa_id: str
    request_received_at: datetime
    company_name: str
    incoming_message_id: int | None = None
    ai_call_duration_ms: int | None = None
    intent: ExtractedIntent | None = None
    preset: TourPreset | None = None
    template_used: str = TOUR_CONFIRMATION
    response_text: str = DEFAULT_RESPONSE_TEXT
    sent: bool = False
    error_message: str | None = None
    log_id: int | None = None
    contact: Contact | None = field(default=None, repr=False)

    @property
    def status(self) -> str:
        return "Sent" if self.sent else "Failed"

    def to_log(self, response_sent_at: datetime) -> AutomatedResponseLog:
        preset = self.preset
        return AutomatedResponseLog(
            incoming_message_id=self.incoming_message_id,
            contact_wa_id=self.contact_wa_id,
            request_received_at=self.request_received_at,
            response_sent_at=response_sent_at,
            processing_duration_ms=elapsed_ms(self.request_received_at, response_sent_at),
            ai_call_duration_ms=self.ai_call_duration_ms,
            template_used=self.template_used,
            company_name_used=self.company_name or NOT_AVAILABLE,
            guide_name_used=preset.guide_name if preset else NOT_AVAILABLE,
            tour_location_used=preset.meeting_location if preset else NOT_AVAILABLE,
            tour_time_used=(preset.time_slot or NOT_AVAILABLE) if preset else NOT_AVAILABLE,
            identifiable_object_used=preset.identifiable_object if preset else NOT_AVAILABLE,
            guide_number_used=preset.guide_phone if preset else NOT_AVAILABLE,
            full_response_text=self.response_text,
            status=self.status,
            error_message=self.error_message,
            ai_extracted_data=self.intent.to_json() if self.intent else None,
        )


class AutomatedResponsePipeline:
    def __init__(
        self,
        *,
        contacts: ContactStore,
        messages: MessageStore,
        matcher: TourMatcher,
        logs: ResponseLogStore,
        extractor: IntentExtractor,
        sender: MessageSender,
        company_name: str | None = None,
    ) -> None:
        self.contacts = contacts
        self.messages = messages
        self.matcher = matcher
        self.logs = logs
        self.extractor = extractor
        self.sender = sender
        self.company_name = company_name

    async def run(
        self,
        event: InboundMessageEvent,
        *,
        received_at: datetime | None = None,
    ) -> PipelineOutcome:
        """Process one inbound text message. Never raises."""
        outcome = PipelineOutcome(
            contact_wa_id=event.sender_id or NOT_AVAILABLE,
            request_received_at=received_at or utc_now(),
            company_name=self.company_name or get_company_name(),
        )
        log_ctx = safe_log_context(
            contact_hash=hash_identifier(event.sender_id),
            message_id=event.message_id,
        )

        try:
            await self._persist_inbound(event, outcome)
            await self._extract_intent(event, outcome)
            await self._match_preset(outcome)
            self._compose(outcome)
            await self._send_reply(event, outcome)
        except Exception as e:
            outcome.error_message = str(e) or type(e).__name__
            logger.exception(
                "automated response failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
        finally:
            await self._append_log(outcome, log_ctx)

        return outcome

    async def _persist_inbound(self, event: InboundMessageEvent, outcome: PipelineOutcome) -> None:
        contact = await self.contacts.get_or_create(
            event.sender_id, event.display_name or event.sender_id
        )
        contact.last_message_at = event.timestamp
        outcome.contact = contact

        outcome.incoming_message_id = await self.messages.upsert_by_provider_id(
            Message(
                wa_message_id=event.message_id,
                contact_id=contact.id,
                body=event.body or "",
                is_from_me=False,
                timestamp=event.timestamp,
                status="received",
                message_type=event.kind,
            )
        )

    async def _extract_intent(self, event: InboundMessageEvent, outcome: PipelineOutcome) -> None:
        started = time.perf_counter()
        try:
            intent = await self.extractor.extract(event.body or "")
        except Exception:
            logger.exception("intent extractor raised, continuing without intent")
            intent = None
        outcome.ai_call_duration_ms = perf_elapsed_ms(started, time.perf_counter())

        contact = outcome.contact
        if intent is not None:
            outcome.intent = intent
            contact.extracted_user_name = (
                intent.user_name
                if intent.user_name != NOT_AVAILABLE
                else contact.display_name
            )
            contact.last_extracted_tour_type = intent.tour_type
            contact.last_extracted_tour_date = intent.tour_date
            contact.last_extracted_tour_time = intent.tour_time

        await self.contacts.update(contact)

    async def _match_preset(self, outcome: PipelineOutcome) -> None:
        intent = outcome.intent
        outcome.preset = await self.matcher.find_best_match(
            intent.tour_type if intent else None,
            intent.tour_date if intent else None,
            intent.tour_time if intent else None,
        )

    def _compose(self, outcome: PipelineOutcome) -> None:
        if outcome.preset is not None:
            outcome.template_used = TOUR_CONFIRMATION
            outcome.response_text = compose_tour_response(outcome.preset, outcome.company_name)
        else:
            outcome.template_used = GENERIC_TEMPLATE
            outcome.response_text = compose_generic_response(outcome.company_name)

    async def _send_reply(self, event: InboundMessageEvent, outcome: PipelineOutcome) -> None:
        outcome.sent = await self.sender.send_text(event.sender_id, outcome.response_text)
        if not outcome.sent:
            outcome.error_message = SEND_FAILED_ERROR

        await self.messages.upsert_by_provider_id(
            Message(
                wa_message_id=f"auto-reply-{uuid.uuid4()}",
                contact_id=outcome.contact.id,
                body=outcome.response_text,
                is_from_me=True,
                timestamp=utc_now(),
                status="sent" if outcome.sent else "failed",
            )
        )

        if outcome.sent:
            await self.sender.mark_as_read(event.message_id)

    async def _append_log(self, outcome: PipelineOutcome, log_ctx: dict[str, str]) -> None:
        log = outcome.to_log(utc_now())
        try:
            outcome.log_id = await self.logs.append(log)
        except Exception:
            logger.exception(
                "automated response log append failed",
                extra={"extra_fields": log_ctx},
            )
            return

        logger.info(
            "automated response finished",
            extra={
                "extra_fields": {
                    **log_ctx,
                    **safe_log_context(
                        status=log.status,
                        template=log.template_used,
                        processing_ms=log.processing_duration_ms,
                        ai_ms=log.ai_call_duration_ms,
                    ),
                }
            },
        )


async def apply_status_event(messages: MessageStore, event: StatusEvent) -> bool:
    """Apply a provider delivery status to the stored message.

    Unknown status values and unknown message ids are ignored.

    Returns:
        True if a message row was updated.
    """
    status = event.status.lower()
    if status not in MESSAGE_STATUSES:
        logger.info(
            "ignoring unsupported message status",
            extra={"extra_fields": safe_log_context(status=status)},
        )
        return False

    updated = await messages.update_status_by_provider_id(event.message_id, status)
    if not updated:
        logger.info(
            "status for unknown message ignored",
            extra={"extra_fields": safe_log_context(message_id=event.message_id, status=status)},
        )
    return updated


def build_default_pipeline(sender: MessageSender | None = None) -> AutomatedResponsePipeline:
    """Wire the pipeline to PostgreSQL, Gemini and the Meta Cloud API."""
    # Imported here so the domain pipeline stays importable without a driver.
    from tourdesk.gemini.client import GeminiIntentExtractor
    from tourdesk.infra.stores import (
        PgContactStore,
        PgMessageStore,
        PgResponseLogStore,
        PgTourPresetStore,
    )
    from tourdesk.whatsapp.meta_sender import MetaSender

    return AutomatedResponsePipeline(
        contacts=PgContactStore(),
        messages=PgMessageStore(),
        matcher=TourMatcher(PgTourPresetStore()),
        logs=PgResponseLogStore(),
        extractor=GeminiIntentExtractor(),
        sender=sender or MetaSender(),
    )
