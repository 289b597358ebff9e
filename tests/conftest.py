"""Shared pytest fixtures for TourDesk tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_webhook_pipeline():
    """Drop any pipeline injected into the webhook route by a test."""
    import tourdesk.api.routes.webhooks_whatsapp as webhook_module

    webhook_module._set_pipeline(None)
    yield
    webhook_module._set_pipeline(None)


@pytest.fixture(autouse=True)
def _clear_provider_env(monkeypatch):
    """Tests never talk to real providers."""
    for name in (
        "META_APP_SECRET",
        "META_VERIFY_TOKEN",
        "META_ACCESS_TOKEN",
        "META_PHONE_NUMBER_ID",
        "META_GRAPH_BASE_URL",
        "GEMINI_API_KEY",
        "GEMINI_API_BASE",
        "TOURDESK_COMPANY_NAME",
    ):
        monkeypatch.delenv(name, raising=False)
