"""Outbound WhatsApp messaging via Meta Cloud API.

Security: NEVER log to_wa_id or text. Only log hashes and lengths.

Both operations report success as a bool: missing credentials, transport
errors, timeouts and non-2xx responses all return False.
"""

import os
from typing import Any

import httpx

from tourdesk.observability.logging import get_logger
from tourdesk.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 15.0

DEFAULT_GRAPH_API_VERSION = "v19.0"
DEFAULT_GRAPH_BASE_URL = "https://graph.facebook.com"


class MetaSender:
    """WhatsApp Cloud API client for text replies and read receipts.

    Constructor arguments override the META_* environment variables, which
    are otherwise read on every call.
    """

    def __init__(
        self,
        phone_number_id: str | None = None,
        access_token: str | None = None,
        api_version: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self._phone_number_id = phone_number_id
        self._access_token = access_token
        self._api_version = api_version
        self._base_url = base_url
        self._http_client = http_client
        self._timeout = timeout

    def _get_config(self) -> dict[str, str] | None:
        """Resolve config, or None when credentials are missing."""
        phone_number_id = self._phone_number_id or os.environ.get("META_PHONE_NUMBER_ID", "")
        access_token = self._access_token or os.environ.get("META_ACCESS_TOKEN", "")
        if not phone_number_id or not access_token:
            return None

        return {
            "phone_number_id": phone_number_id,
            "access_token": access_token,
            "api_version": self._api_version
            or os.environ.get("META_GRAPH_API_VERSION", DEFAULT_GRAPH_API_VERSION),
            "base_url": (
                self._base_url
                or os.environ.get("META_GRAPH_BASE_URL", DEFAULT_GRAPH_BASE_URL)
            ).rstrip("/"),
        }

    async def _post(self, config: dict[str, str], payload: dict[str, Any]) -> httpx.Response:
        url = f"{config['base_url']}/{config['api_version']}/{config['phone_number_id']}/messages"
        headers = {"Authorization": f"Bearer {config['access_token']}"}

        if self._http_client is not None:
            return await self._http_client.post(
                url, json=payload, headers=headers, timeout=self._timeout
            )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, json=payload, headers=headers)

    async def _deliver(self, action: str, payload: dict[str, Any], log_ctx: dict[str, Any]) -> bool:
        config = self._get_config()
        if config is None:
            logger.warning(
                f"meta {action} skipped: META_PHONE_NUMBER_ID and META_ACCESS_TOKEN required",
                extra={"extra_fields": safe_log_context(**log_ctx)},
            )
            return False

        try:
            response = await self._post(config, payload)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(
                f"meta {action} failed",
                extra={
                    "extra_fields": safe_log_context(**log_ctx, error_type=type(e).__name__)
                },
            )
            return False

        if not response.is_success:
            logger.error(
                f"meta {action} rejected",
                extra={
                    "extra_fields": safe_log_context(**log_ctx, status_code=response.status_code)
                },
            )
            return False

        logger.info(
            f"meta {action} ok",
            extra={"extra_fields": safe_log_context(**log_ctx, status_code=response.status_code)},
        )
        return True

    async def send_text(self, to_wa_id: str, body: str) -> bool:
        """Send a text message. True only on HTTP 2xx."""
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to_wa_id,
            "type": "text",
            "text": {"body": body},
        }
        log_ctx = {"to_hash": hash_identifier(to_wa_id), "text_len": len(body), "provider": "meta"}
        return await self._deliver("send_text", payload, log_ctx)

    async def mark_as_read(self, wa_message_id: str) -> bool:
        """Send a read receipt for an inbound message."""
        payload = {
            "messaging_product": "whatsapp",
            "status": "read",
            "message_id": wa_message_id,
        }
        log_ctx = {"message_id": wa_message_id, "provider": "meta"}
        return await self._deliver("mark_as_read", payload, log_ctx)
