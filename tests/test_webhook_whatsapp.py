"""Tests for /api/whatsapp/webhook (pipeline injected, no DB or network)."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from helpers import Harness, status_payload, text_payload
from tourdesk.api.factory import create_app
from tourdesk.api.routes import webhooks_whatsapp
from tourdesk.domain.models import ExtractedIntent, Message
from tourdesk.infra.time import utc_now

WEBHOOK = "/api/whatsapp/webhook"


@pytest.fixture
def harness():
    h = Harness(intent=ExtractedIntent("Ana", "walking", "tomorrow", "morning"))
    webhooks_whatsapp._set_pipeline(h.pipeline)
    return h


@pytest.fixture
def client():
    return TestClient(create_app(role="public"))


class TestVerification:
    def test_valid_token_echoes_challenge(self, client, monkeypatch):
        monkeypatch.setenv("META_VERIFY_TOKEN", "verify-me")

        response = client.get(
            WEBHOOK,
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "12345"},
        )

        assert response.status_code == 200
        assert response.text == "12345"
        assert response.headers["content-type"].startswith("text/plain")

    def test_wrong_token_forbidden(self, client, monkeypatch):
        monkeypatch.setenv("META_VERIFY_TOKEN", "verify-me")

        response = client.get(
            WEBHOOK,
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "12345"},
        )

        assert response.status_code == 403

    def test_wrong_mode_forbidden(self, client, monkeypatch):
        monkeypatch.setenv("META_VERIFY_TOKEN", "verify-me")

        response = client.get(
            WEBHOOK,
            params={"hub.mode": "unsubscribe", "hub.verify_token": "verify-me", "hub.challenge": "1"},
        )

        assert response.status_code == 403

    def test_unconfigured_token_always_forbidden(self, client):
        response = client.get(WEBHOOK, params={"hub.mode": "subscribe", "hub.challenge": "1"})
        assert response.status_code == 403

        response = client.get(
            WEBHOOK,
            params={"hub.mode": "subscribe", "hub.verify_token": "", "hub.challenge": "1"},
        )
        assert response.status_code == 403


class TestInboundMessages:
    def test_text_message_runs_pipeline(self, client, harness):
        response = client.post(WEBHOOK, json=text_payload())

        assert response.status_code == 200
        assert response.text == "ok"
        (log,) = harness.logs.rows
        assert log.status == "Sent"
        assert harness.sender.sent[0][0] == "15551234567"
        contact = harness.contacts.by_wa_id["15551234567"]
        # profile name from the contacts block is not used
        assert contact.display_name == "15551234567"
        assert contact.extracted_user_name == "Ana"

    def test_each_message_logged_once(self, client, harness):
        payload = text_payload()
        messages = payload["entry"][0]["changes"][0]["value"]["messages"]
        messages.append({**messages[0], "id": "wamid.TEST_002"})

        client.post(WEBHOOK, json=payload)

        assert len(harness.logs.rows) == 2
        assert [m.wa_message_id for m in harness.messages.inbound()] == [
            "wamid.TEST_001",
            "wamid.TEST_002",
        ]

    def test_send_failure_still_200(self, client, harness):
        harness.sender.ok = False

        response = client.post(WEBHOOK, json=text_payload())

        assert response.status_code == 200
        assert harness.logs.rows[0].status == "Failed"

    def test_non_text_message_skipped(self, client, harness):
        payload = text_payload()
        message = payload["entry"][0]["changes"][0]["value"]["messages"][0]
        message["type"] = "sticker"
        message.pop("text")

        response = client.post(WEBHOOK, json=payload)

        assert response.status_code == 200
        assert harness.logs.rows == []
        assert harness.contacts.by_wa_id == {}

    def test_requests_share_received_at_across_messages(self, client, harness):
        payload = text_payload()
        messages = payload["entry"][0]["changes"][0]["value"]["messages"]
        messages.append({**messages[0], "id": "wamid.TEST_002"})

        client.post(WEBHOOK, json=payload)

        first, second = harness.logs.rows
        assert first.request_received_at == second.request_received_at


class TestMalformedBodies:
    def test_not_json_returns_500_and_touches_nothing(self, client, harness):
        response = client.post(
            WEBHOOK, content=b"not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 500
        assert harness.logs.rows == []
        assert harness.contacts.by_wa_id == {}
        assert harness.messages.by_provider_id == {}

    @pytest.mark.parametrize("payload", [{}, [], {"entry": "x"}, {"entry": [{"changes": None}]}, 42])
    def test_unexpected_shapes_are_ok(self, client, harness, payload):
        response = client.post(WEBHOOK, json=payload)

        assert response.status_code == 200
        assert harness.logs.rows == []


class TestStatusEvents:
    def _seed_outbound(self, harness: Harness) -> None:
        import asyncio

        asyncio.run(
            harness.messages.upsert_by_provider_id(
                Message(
                    wa_message_id="wamid.OUT_1",
                    contact_id=1,
                    body="hi",
                    is_from_me=True,
                    timestamp=utc_now(),
                    status="sent",
                )
            )
        )

    def test_status_updates_message(self, client, harness):
        self._seed_outbound(harness)

        response = client.post(WEBHOOK, json=status_payload("wamid.OUT_1", "delivered"))

        assert response.status_code == 200
        assert harness.messages.by_provider_id["wamid.OUT_1"].status == "delivered"
        assert harness.logs.rows == []

    def test_unknown_message_status_ignored(self, client, harness):
        response = client.post(WEBHOOK, json=status_payload("wamid.MISSING", "read"))

        assert response.status_code == 200
        assert harness.messages.by_provider_id == {}

    def test_status_store_error_still_200(self, client, harness):
        async def broken(*args, **kwargs):
            raise RuntimeError("db down")

        harness.messages.update_status_by_provider_id = broken

        response = client.post(WEBHOOK, json=status_payload("wamid.OUT_1", "read"))

        assert response.status_code == 200

    def test_changes_processed_in_turn(self, client, harness):
        seen = []
        run = harness.pipeline.run
        update_status = harness.messages.update_status_by_provider_id

        async def recording_run(event, **kwargs):
            seen.append(event.message_id)
            return await run(event, **kwargs)

        async def recording_update(wa_message_id, status):
            seen.append(wa_message_id)
            return await update_status(wa_message_id, status)

        harness.pipeline.run = recording_run
        harness.messages.update_status_by_provider_id = recording_update

        status_change = status_payload("wamid.OUT_1", "read")["entry"][0]["changes"][0]
        first = text_payload(message_id="wamid.IN_1")["entry"][0]["changes"][0]
        first["value"]["statuses"] = status_change["value"]["statuses"]
        second = text_payload(message_id="wamid.IN_2")["entry"][0]["changes"][0]
        payload = {"entry": [{"changes": [first]}, {"changes": [second]}]}

        response = client.post(WEBHOOK, json=payload)

        assert response.status_code == 200
        assert seen == ["wamid.IN_1", "wamid.OUT_1", "wamid.IN_2"]


def test_default_pipeline_built_lazily():
    sentinel = object()
    webhooks_whatsapp._set_pipeline(None)

    with patch(
        "tourdesk.api.routes.webhooks_whatsapp.build_default_pipeline",
        return_value=sentinel,
    ) as build:
        assert webhooks_whatsapp._get_pipeline() is sentinel
        assert webhooks_whatsapp._get_pipeline() is sentinel

    build.assert_called_once_with()
