"""Message simulation route (APP_ROLE=dev only).

Runs a fake inbound text message through the full automated response
pipeline against the real stores and extractor, with a dry-run sender so
nothing is delivered to WhatsApp.
"""

import uuid

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict

from tourdesk.infra.time import utc_now
from tourdesk.observability.logging import get_logger
from tourdesk.observability.redaction import hash_identifier, safe_log_context
from tourdesk.services.automated_response import (
    AutomatedResponsePipeline,
    build_default_pipeline,
)
from tourdesk.whatsapp.dry_run import DryRunSender
from tourdesk.whatsapp.models import InboundMessageEvent

router = APIRouter(prefix="/api/test", tags=["test"])

logger = get_logger(__name__)


class SimulateMessageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    contact_id: str
    contact_name: str | None = None
    message: str


class ExtractedIntentResponse(BaseModel):
    user_name: str
    tour_type: str
    tour_date: str
    tour_time: str


class SimulateMessageResponse(BaseModel):
    status: str
    response_text: str
    message_id: str
    extracted_intent: ExtractedIntentResponse | None = None
    guide_name: str | None = None
    meeting_location: str | None = None
    ai_call_duration_ms: int | None = None
    error_message: str | None = None
    log_id: int | None = None


def _build_simulation_pipeline() -> AutomatedResponsePipeline:
    """Pipeline for simulations (allows test injection)."""
    return build_default_pipeline(sender=DryRunSender())


@router.post("/simulate-message", response_model=SimulateMessageResponse)
async def simulate_message(body: SimulateMessageRequest) -> SimulateMessageResponse:
    """Process a simulated inbound message and return the outcome."""
    event = InboundMessageEvent(
        sender_id=body.contact_id,
        body=body.message,
        message_id=f"sim-{uuid.uuid4()}",
        timestamp=utc_now(),
        kind="text",
        display_name=body.contact_name,
    )

    logger.info(
        "simulating inbound message",
        extra={
            "extra_fields": safe_log_context(
                contact_hash=hash_identifier(body.contact_id),
                text_len=len(body.message),
            )
        },
    )

    outcome = await _build_simulation_pipeline().run(event)

    intent = outcome.intent
    preset = outcome.preset
    return SimulateMessageResponse(
        status=outcome.status,
        response_text=outcome.response_text,
        message_id=event.message_id,
        extracted_intent=ExtractedIntentResponse(
            user_name=intent.user_name,
            tour_type=intent.tour_type,
            tour_date=intent.tour_date,
            tour_time=intent.tour_time,
        )
        if intent
        else None,
        guide_name=preset.guide_name if preset else None,
        meeting_location=preset.meeting_location if preset else None,
        ai_call_duration_ms=outcome.ai_call_duration_ms,
        error_message=outcome.error_message,
        log_id=outcome.log_id,
    )
