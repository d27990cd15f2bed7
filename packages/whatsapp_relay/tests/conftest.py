"""
Pytest fixtures for WhatsApp Relay tests.
"""

import asyncio
import json
import time

import httpx
import pytest

from whatsapp_relay.config import RelayConfig
from whatsapp_relay.providers.base import InboundEvent, MediaInfo, MessageType
from whatsapp_relay.providers.stub import StubSessionClient
from whatsapp_relay.routing.identifiers import IdentifierNormalizer

RELAY_URL = "http://relay.test/webhook/whatsapp"


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class RelayTarget:
    """
    Scripted relay target.

    Answers with the given status codes in order (the last one repeats)
    and records every request.
    """

    def __init__(self, *status_codes: int):
        self.status_codes = list(status_codes) or [200]
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.status_codes)) - 1
        return httpx.Response(self.status_codes[index], json={"ok": True})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def normalizer():
    """Normalizer with Argentine defaults."""
    return IdentifierNormalizer(country_code="54", mobile_prefix="9")


@pytest.fixture
def relay_config():
    """Engine config with fast timings."""
    return RelayConfig(
        relay_url=RELAY_URL,
        delivery_timeout=5.0,
        max_delivery_attempts=3,
        delivery_base_delay=1.0,
        max_message_length=50,
        reconnect_interval=30.0,
        max_reconnect_attempts=3,
        bulk_send_delay=1.0,
        shutdown_grace=1.0,
    )


@pytest.fixture
def fake_sleep():
    """Sleep function that records delays."""
    return FakeSleep()


@pytest.fixture
def stub_client():
    """Stub session client that becomes ready on initialize()."""
    return StubSessionClient()


@pytest.fixture
def sample_phone():
    """Sample phone number (canonical)."""
    return "5491134083140"


@pytest.fixture
def make_event():
    """Factory for inbound events."""

    def _make_event(**overrides) -> InboundEvent:
        data = {
            "message_id": "msg_123",
            "sender": "5491134083140@c.us",
            "recipient": "5491100000000@c.us",
            "timestamp": 1704067200,
            "body": "Hola, quiero info",
            "message_type": MessageType.TEXT,
        }
        data.update(overrides)
        return InboundEvent(**data)

    return _make_event


@pytest.fixture
def media_event(make_event):
    """Image message without caption."""
    return make_event(
        message_id="msg_img",
        body="",
        message_type=MessageType.IMAGE,
        has_media=True,
        media=MediaInfo(mimetype="image/jpeg", filename="photo.jpg", size=2048),
        timestamp=time.time(),
    )


@pytest.fixture
def relay_url():
    """Relay target URL used across tests."""
    return RELAY_URL


@pytest.fixture
def relay_target():
    """Factory for scripted relay targets."""
    return RelayTarget


@pytest.fixture
def wait_for_reconnects():
    """Run a supervisor's scheduled reconnects until none is pending."""

    async def _wait(supervisor) -> None:
        while supervisor.pending_reconnect is not None:
            await supervisor.pending_reconnect

    return _wait
