"""WhatsApp webhook routes - Meta Cloud API integration.

GET  /api/whatsapp/webhook  subscription handshake
POST /api/whatsapp/webhook  inbound messages and delivery statuses

Inbound text messages run through the automated response pipeline inline,
one after another in payload order. Each change's messages are handled
before its statuses; statuses update stored messages.

Response codes:
- 403: signature present but invalid (only when META_APP_SECRET is set)
- 500: body is not JSON (nothing is processed)
- 200 "ok": everything else, including per-message failures, which are
  recorded in the automated response log instead
"""

import json
import os
from typing import Any

from fastapi import APIRouter, Header, Query, Request, Response

from tourdesk.domain.contracts import MessageStore
from tourdesk.infra.time import utc_now
from tourdesk.observability.correlation import get_correlation_id
from tourdesk.observability.logging import get_logger
from tourdesk.observability.redaction import safe_log_context
from tourdesk.services.automated_response import (
    AutomatedResponsePipeline,
    apply_status_event,
    build_default_pipeline,
)
from tourdesk.whatsapp.meta_adapter import iter_change_events, verify_signature

router = APIRouter(prefix="/api/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)

_pipeline: AutomatedResponsePipeline | None = None


def _get_pipeline() -> AutomatedResponsePipeline:
    """Get pipeline instance (allows test injection)."""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_default_pipeline()
    return _pipeline


def _set_pipeline(pipeline: AutomatedResponsePipeline | None) -> None:
    """Set pipeline instance (for testing)."""
    global _pipeline
    _pipeline = pipeline


def _get_message_store() -> MessageStore:
    """Store used for delivery status updates."""
    return _get_pipeline().messages


@router.get("/webhook")
async def whatsapp_webhook_verify(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
) -> Response:
    """Meta webhook verification endpoint.

    Meta sends GET request during webhook setup to verify ownership.
    We must return hub.challenge if hub.verify_token matches.

    Returns:
        200 text/plain with hub.challenge if valid.
        403 if invalid or META_VERIFY_TOKEN is not configured.
    """
    expected_token = os.environ.get("META_VERIFY_TOKEN", "")

    if expected_token and hub_mode == "subscribe" and hub_verify_token == expected_token:
        logger.info(
            "whatsapp webhook verification successful",
            extra={"extra_fields": safe_log_context(hub_mode=hub_mode)},
        )
        return Response(status_code=200, content=hub_challenge or "", media_type="text/plain")

    logger.warning(
        "whatsapp webhook verification failed",
        extra={
            "extra_fields": safe_log_context(
                hub_mode=hub_mode or "missing",
                token_match=hub_verify_token == expected_token
                if expected_token
                else "no_token_configured",
            )
        },
    )
    return Response(status_code=403, content="verification failed", media_type="text/plain")


@router.post("/webhook")
async def whatsapp_webhook(
    request: Request,
    x_hub_signature_256: str | None = Header(None, alias="X-Hub-Signature-256"),
) -> Response:
    """Receive Meta Cloud API webhook.

    Args:
        request: FastAPI request object.
        x_hub_signature_256: HMAC signature from Meta.
    """
    received_at = utc_now()
    correlation_id = get_correlation_id()
    body_bytes = await request.body()

    # 1. Verify signature (if META_APP_SECRET configured)
    app_secret = os.environ.get("META_APP_SECRET", "")
    if app_secret:
        if not x_hub_signature_256:
            logger.warning(
                "unsigned webhook accepted",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
        elif not verify_signature(body_bytes, x_hub_signature_256, app_secret):
            logger.warning(
                "whatsapp signature verification failed",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
            return Response(status_code=403, content="invalid signature", media_type="text/plain")

    # 2. Parse JSON
    try:
        payload: Any = json.loads(body_bytes)
    except ValueError:
        logger.error(
            "invalid json body",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id, body_len=len(body_bytes)
                )
            },
        )
        return Response(
            status_code=500,
            content="Internal server error processing webhook.",
            media_type="text/plain",
        )

    # 3. Each change: its messages, then its delivery statuses
    processed = 0
    statuses = 0
    for message_events, status_events in iter_change_events(payload):
        for event in message_events:
            if not event.is_text:
                logger.info(
                    "non-text message ignored",
                    extra={"extra_fields": safe_log_context(kind=event.kind)},
                )
                continue
            await _get_pipeline().run(event, received_at=received_at)
            processed += 1

        for status_event in status_events:
            statuses += 1
            try:
                await apply_status_event(_get_message_store(), status_event)
            except Exception:
                logger.exception(
                    "status update failed",
                    extra={"extra_fields": safe_log_context(status=status_event.status)},
                )

    logger.info(
        "whatsapp webhook handled",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                messages=processed,
                statuses=statuses,
            )
        },
    )
    return Response(status_code=200, content="ok", media_type="text/plain")
