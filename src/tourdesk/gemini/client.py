"""Gemini intent extraction for inbound tour requests.

Asks Gemini for a JSON object with UserName, TourType, TourDate and
TourTime using a response schema, then maps it onto ExtractedIntent.

Security: message text is sent to the model but NEVER logged. Only its
length is.

Failure contract:
- no GEMINI_API_KEY: ExtractedIntent.unknown() (all "N/A")
- transport error, timeout, non-2xx, malformed envelope or generated JSON: None
"""

import json
import os
from typing import Any

import httpx

from tourdesk.domain.models import NOT_AVAILABLE, ExtractedIntent
from tourdesk.observability.logging import get_logger
from tourdesk.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models/"
DEFAULT_TIMEOUT_SECONDS = 20.0

_FIELDS = {
    "username": "user_name",
    "tourtype": "tour_type",
    "tourdate": "tour_date",
    "tourtime": "tour_time",
}

PROMPT_TEMPLATE = """Extract the user's name, tour type, tour date, and tour time from this WhatsApp message.
If any information is not present or unclear, use 'N/A' for that field.

Tour types might include: Walking Tour, Food Tour, Historical Tour, Art Tour, Photography Tour, etc.
Tour dates might be: today, tomorrow, specific dates like 'July 1st', 'next Monday', etc.
Tour times might be: morning, afternoon, evening, or specific times like '9 AM', '2 PM', etc.

Message: '{message}'

Please extract:
- UserName: The person's name if mentioned
- TourType: What kind of tour they're interested in
- TourDate: When they want the tour
- TourTime: What time they prefer"""

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "UserName": {
            "type": "STRING",
            "description": "The user's name if mentioned, otherwise 'N/A'",
        },
        "TourType": {
            "type": "STRING",
            "description": "Type of tour requested (Walking, Food, Historical, etc.) or 'N/A'",
        },
        "TourDate": {
            "type": "STRING",
            "description": "When they want the tour (today, tomorrow, specific date) or 'N/A'",
        },
        "TourTime": {
            "type": "STRING",
            "description": "Preferred time (morning, afternoon, 9 AM, etc.) or 'N/A'",
        },
    },
    "required": ["UserName", "TourType", "TourDate", "TourTime"],
}


class GeminiResponseError(Exception):
    """Raised when a Gemini response cannot be mapped to an intent."""

    pass


def _default_timeout() -> float:
    raw = os.environ.get("GEMINI_TIMEOUT_SECONDS")
    try:
        return float(raw) if raw else DEFAULT_TIMEOUT_SECONDS
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS


def build_request_body(text: str) -> dict[str, Any]:
    """generateContent request for one message."""
    return {
        "contents": [
            {"role": "user", "parts": [{"text": PROMPT_TEMPLATE.format(message=text)}]}
        ],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
        },
    }


def parse_intent(envelope: Any) -> ExtractedIntent:
    """Map a generateContent response onto ExtractedIntent.

    Field names are matched case-insensitively; absent or non-string
    fields become "N/A".

    Raises:
        GeminiResponseError: If the envelope or the generated JSON is malformed.
    """
    try:
        generated = envelope["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise GeminiResponseError("unexpected response structure") from exc

    if not isinstance(generated, str) or not generated.strip():
        raise GeminiResponseError("empty generated text")

    try:
        data = json.loads(generated)
    except json.JSONDecodeError as exc:
        raise GeminiResponseError("generated text is not JSON") from exc

    if not isinstance(data, dict):
        raise GeminiResponseError("generated JSON is not an object")

    values: dict[str, str] = {}
    for key, value in data.items():
        attr = _FIELDS.get(str(key).lower())
        if attr and isinstance(value, str) and value.strip():
            values[attr] = value.strip()

    return ExtractedIntent(**{attr: values.get(attr, NOT_AVAILABLE) for attr in _FIELDS.values()})


class GeminiIntentExtractor:
    """IntentExtractor backed by the Gemini generateContent API.

    Constructor arguments override the GEMINI_* environment variables,
    which are otherwise read on every call.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._http_client = http_client
        self._timeout = timeout

    def _endpoint(self) -> str:
        base = self._base_url or os.environ.get("GEMINI_API_BASE", DEFAULT_API_BASE)
        model = self._model or os.environ.get("GEMINI_MODEL", DEFAULT_MODEL)
        if not base.endswith("/"):
            base += "/"
        return f"{base}{model}:generateContent"

    async def _post(self, api_key: str, body: dict[str, Any]) -> httpx.Response:
        timeout = self._timeout if self._timeout is not None else _default_timeout()
        params = {"key": api_key}

        if self._http_client is not None:
            return await self._http_client.post(
                self._endpoint(), params=params, json=body, timeout=timeout
            )
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(self._endpoint(), params=params, json=body)

    async def extract(self, text: str) -> ExtractedIntent | None:
        api_key = self._api_key or os.environ.get("GEMINI_API_KEY", "")
        if not api_key:
            logger.warning("GEMINI_API_KEY not configured, skipping intent extraction")
            return ExtractedIntent.unknown()

        log_ctx = safe_log_context(text_len=len(text), provider="gemini")

        try:
            response = await self._post(api_key, build_request_body(text))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(
                "intent extraction request failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
            return None

        if not response.is_success:
            logger.error(
                "intent extraction rejected",
                extra={"extra_fields": {**log_ctx, "status_code": str(response.status_code)}},
            )
            return None

        try:
            intent = parse_intent(response.json())
        except (GeminiResponseError, ValueError) as e:
            logger.error(
                "intent extraction response malformed",
                extra={"extra_fields": {**log_ctx, "error": str(e)}},
            )
            return None

        logger.info(
            "intent extracted",
            extra={
                "extra_fields": safe_log_context(
                    **log_ctx,
                    has_user_name=intent.user_name != NOT_AVAILABLE,
                    tour_type=intent.tour_type,
                    tour_date=intent.tour_date,
                    tour_time=intent.tour_time,
                )
            },
        )
        return intent
