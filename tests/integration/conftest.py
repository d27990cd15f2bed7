"""
Pytest configuration for integration tests.

Builds relay API apps around stub or Evolution-backed engines, with the
relay target and the Evolution gateway replaced by httpx mock transports.
"""

import json
import os

import httpx
import pytest

# Set environment variables for tests
os.environ.setdefault("SESSION_PROVIDER", "stub")
os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ.setdefault("RELAY_WEBHOOK_URL", "http://relay.test/webhook/whatsapp")

from basecore.settings import Settings  # noqa: E402
from whatsapp_relay.config import RelayConfig  # noqa: E402
from whatsapp_relay.delivery.client import WebhookDeliveryClient  # noqa: E402
from whatsapp_relay.delivery.dispatcher import RetryDispatcher, RetryPolicy  # noqa: E402
from whatsapp_relay.service.engine import RelayEngine  # noqa: E402

RELAY_URL = "http://relay.test/webhook/whatsapp"


class RecordingTarget:
    """Relay target that accepts everything and keeps the bodies."""

    def __init__(self):
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(200, json={"ok": True})

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def relay_config():
    """Engine config with a short message limit."""
    return RelayConfig(
        relay_url=RELAY_URL,
        max_message_length=50,
        reconnect_interval=0.0,
        max_reconnect_attempts=1,
        bulk_send_delay=0.0,
        shutdown_grace=2.0,
    )


@pytest.fixture
def target():
    """Recording relay target."""
    return RecordingTarget()


@pytest.fixture
def no_sleep():
    """Sleep function that only yields to the event loop."""

    async def _sleep(delay: float) -> None:
        return None

    return _sleep


@pytest.fixture
def build_engine(relay_config, target, no_sleep):
    """Factory for engines delivering to the recording target."""

    def _build_engine(client) -> RelayEngine:
        dispatcher = RetryDispatcher(
            WebhookDeliveryClient(transport=httpx.MockTransport(target.handler)),
            target_url=RELAY_URL,
            policy=RetryPolicy(max_attempts=3, base_delay=0.0),
            sleep=no_sleep,
        )
        return RelayEngine(client, relay_config, dispatcher=dispatcher, sleep=no_sleep)

    return _build_engine


@pytest.fixture
def stub_settings():
    """Settings for the stub provider."""
    return Settings(SESSION_PROVIDER="stub")


@pytest.fixture
def evolution_settings():
    """Settings for the Evolution provider."""
    return Settings(
        SESSION_PROVIDER="evolution",
        EVOLUTION_API_URL="http://evolution.test",
        EVOLUTION_API_KEY="secret",
        EVOLUTION_INSTANCE_NAME="relay",
    )
