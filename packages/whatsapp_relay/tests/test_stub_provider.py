"""
Tests for the stub session client and session event dispatch.
"""

import pytest

from whatsapp_relay.contracts.event_types import SessionEvent
from whatsapp_relay.providers.base import ChatInfo, ProviderError
from whatsapp_relay.providers.stub import StubSessionClient


class TestStubSessionClient:
    """Tests for StubSessionClient."""

    @pytest.mark.asyncio
    async def test_send_message(self, stub_client):
        """Test sending a message records it."""
        sent = await stub_client.send_message("5491134083140@c.us", "Hello!")

        assert sent.message_id.startswith("stub_msg_")
        assert sent.raw_response["stub"] is True

        messages = stub_client.get_sent_messages()
        assert len(messages) == 1
        assert messages[0]["to"] == "5491134083140@c.us"
        assert messages[0]["text"] == "Hello!"

    @pytest.mark.asyncio
    async def test_clear_sent_messages(self, stub_client):
        """Test clearing sent messages."""
        await stub_client.send_message("5491134083140@c.us", "Hello!")
        stub_client.clear_sent_messages()

        assert stub_client.get_sent_messages() == []

    @pytest.mark.asyncio
    async def test_simulated_failures(self):
        """Test simulated failure mode."""
        client = StubSessionClient(simulate_failures=True, failure_rate=1.0)

        with pytest.raises(ProviderError) as exc_info:
            await client.send_message("5491134083140@c.us", "Hello!")

        assert exc_info.value.code == "STUB_SIMULATED_FAILURE"

    @pytest.mark.asyncio
    async def test_initialize_failure_countdown(self):
        """Test fail_initialize fails exactly that many times."""
        client = StubSessionClient(fail_initialize=2)

        for _ in range(2):
            with pytest.raises(ProviderError):
                await client.initialize()
        await client.initialize()

        assert client.ready is True
        assert client.initialize_calls == 3

    @pytest.mark.asyncio
    async def test_lookup_defaults(self, stub_client):
        """Test unknown contacts and chats come back bare."""
        contact = await stub_client.get_contact_by_id("5491134083140@c.us")
        chat = await stub_client.get_chat_by_id("120363025555@g.us")

        assert contact.number == "5491134083140"
        assert contact.display_name is None
        assert chat.is_group is True

    @pytest.mark.asyncio
    async def test_list_chats(self):
        """Test registered chats are listed."""
        chat = ChatInfo(chat_id="120363025555@g.us", name="Ventas", is_group=True)
        client = StubSessionClient(chats={chat.chat_id: chat})

        assert await client.list_chats() == [chat]

    @pytest.mark.asyncio
    async def test_destroy_keeps_pairing(self):
        """Test destroy does not force a new pairing."""
        client = StubSessionClient()
        await client.initialize()

        await client.destroy()
        await client.initialize()

        assert client.ready is True
        assert client.logout_calls == 0

    @pytest.mark.asyncio
    async def test_logout_requires_new_pairing(self):
        """Test the next initialize after logout asks for pairing."""
        client = StubSessionClient()
        await client.initialize()

        await client.logout()
        await client.initialize()

        assert client.ready is False
        assert client.pairing_token.startswith("stub_qr_")
        assert client.destroy_calls == 1


class TestEventDispatch:
    """Tests for session event subscription."""

    @pytest.mark.asyncio
    async def test_ready_sequence(self, stub_client):
        """Test initialize emits authenticated then ready."""
        seen = []
        stub_client.on(SessionEvent.AUTHENTICATED, lambda: seen.append("authenticated"))
        stub_client.on(SessionEvent.READY, lambda: seen.append("ready"))

        await stub_client.initialize()

        assert seen == ["authenticated", "ready"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self, stub_client, caplog):
        """Test one broken handler is logged and the rest still run."""
        seen = []

        def broken(reason):
            raise RuntimeError("boom")

        async def recording(reason):
            seen.append(reason)

        stub_client.on(SessionEvent.DISCONNECTED, broken)
        stub_client.on(SessionEvent.DISCONNECTED, recording)

        await stub_client.disconnect("CONFLICT")

        assert seen == ["CONFLICT"]
        assert "Session event handler failed: boom" in caplog.text

    @pytest.mark.asyncio
    async def test_subscribe_by_value(self):
        """Test handlers can subscribe using the event's string value."""
        tokens = []
        client = StubSessionClient(pairing_required=True)
        client.on("pairing-token", tokens.append)

        await client.initialize()

        assert tokens == [client.pairing_token]
