"""
Tests for the connection supervisor (lifecycle and reconnection).
"""

import pytest

from whatsapp_relay.contracts.event_types import SessionStatus
from whatsapp_relay.providers.base import ProviderError
from whatsapp_relay.providers.stub import StubSessionClient
from whatsapp_relay.service.supervisor import ConnectionSupervisor


def make_supervisor(client, sleep, max_attempts: int = 3, on_message=None) -> ConnectionSupervisor:
    return ConnectionSupervisor(
        client,
        reconnect_interval=30.0,
        max_reconnect_attempts=max_attempts,
        on_message=on_message,
        sleep=sleep,
    )


class TestLifecycle:
    """Tests for start / stop / pairing."""

    @pytest.mark.asyncio
    async def test_start_connects(self, stub_client, fake_sleep):
        """Test a client that is ready immediately ends up connected."""
        supervisor = make_supervisor(stub_client, fake_sleep)

        await supervisor.start()

        assert supervisor.status == SessionStatus.CONNECTED
        assert supervisor.is_connected is True
        assert supervisor.pairing_token is None

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, stub_client, fake_sleep):
        """Test starting an active session does not re-initialize."""
        supervisor = make_supervisor(stub_client, fake_sleep)

        await supervisor.start()
        await supervisor.start()

        assert stub_client.initialize_calls == 1

    @pytest.mark.asyncio
    async def test_pairing_flow(self, fake_sleep):
        """Test pairing token is exposed until the session is ready."""
        client = StubSessionClient(pairing_required=True)
        supervisor = make_supervisor(client, fake_sleep)

        await supervisor.start()

        assert supervisor.status == SessionStatus.AWAITING_PAIRING
        assert supervisor.pairing_token.startswith("stub_qr_")

        await client.complete_pairing()

        assert supervisor.status == SessionStatus.CONNECTED
        assert supervisor.pairing_token is None

    @pytest.mark.asyncio
    async def test_start_failure_propagates(self, fake_sleep):
        """Test an initial initialize failure is raised, not retried."""
        client = StubSessionClient(fail_initialize=1)
        supervisor = make_supervisor(client, fake_sleep)

        with pytest.raises(ProviderError):
            await supervisor.start()

        assert supervisor.status == SessionStatus.DISCONNECTED
        assert supervisor.pending_reconnect is None

    @pytest.mark.asyncio
    async def test_stop_does_not_reconnect(self, stub_client, fake_sleep):
        """Test a disconnect during shutdown is ignored."""
        supervisor = make_supervisor(stub_client, fake_sleep)
        await supervisor.start()

        await supervisor.stop()
        await stub_client.disconnect()

        assert supervisor.status == SessionStatus.DISCONNECTED
        assert supervisor.pending_reconnect is None
        assert stub_client.destroy_calls == 1
        assert stub_client.logout_calls == 0

    @pytest.mark.asyncio
    async def test_auth_failure_is_logged(self, stub_client, fake_sleep, caplog):
        """Test auth failures do not change state by themselves."""
        supervisor = make_supervisor(stub_client, fake_sleep)
        await supervisor.start()

        await stub_client.fail_auth("bad credentials")

        assert supervisor.is_connected is True
        assert "authentication failed: bad credentials" in caplog.text

    @pytest.mark.asyncio
    async def test_inbound_messages_forwarded(self, stub_client, fake_sleep, make_event):
        """Test message events reach the callback."""
        received = []

        async def on_message(event):
            received.append(event)

        supervisor = make_supervisor(stub_client, fake_sleep, on_message=on_message)
        await supervisor.start()

        event = make_event()
        await stub_client.receive(event)

        assert received == [event]


class TestReconnection:
    """Tests for the bounded reconnection policy."""

    @pytest.mark.asyncio
    async def test_reconnects_after_disconnect(self, stub_client, fake_sleep, wait_for_reconnects):
        """Test one disconnect leads to one delayed reconnect."""
        supervisor = make_supervisor(stub_client, fake_sleep)
        await supervisor.start()

        await stub_client.disconnect("CONFLICT")
        assert supervisor.status == SessionStatus.DISCONNECTED
        assert supervisor.reconnect_attempts == 1

        await wait_for_reconnects(supervisor)

        assert supervisor.status == SessionStatus.CONNECTED
        assert supervisor.reconnect_attempts == 0
        assert fake_sleep.delays == [30.0]
        assert stub_client.initialize_calls == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, stub_client, fake_sleep, wait_for_reconnects, caplog):
        """Test exactly max reconnects, then exhaustion."""
        supervisor = make_supervisor(stub_client, fake_sleep, max_attempts=3)
        await supervisor.start()
        stub_client.fail_initialize = 10

        await stub_client.disconnect()
        await wait_for_reconnects(supervisor)

        assert supervisor.exhausted is True
        assert supervisor.status == SessionStatus.DISCONNECTED
        assert supervisor.pending_reconnect is None
        assert stub_client.initialize_calls == 4
        assert fake_sleep.delays == [30.0, 30.0, 30.0]
        assert "Reconnection attempts exhausted" in caplog.text

    @pytest.mark.asyncio
    async def test_recovers_mid_sequence(self, stub_client, fake_sleep, wait_for_reconnects):
        """Test a successful reconnect resets the counter."""
        supervisor = make_supervisor(stub_client, fake_sleep, max_attempts=3)
        await supervisor.start()
        stub_client.fail_initialize = 1

        await stub_client.disconnect()
        await wait_for_reconnects(supervisor)

        assert supervisor.is_connected is True
        assert supervisor.reconnect_attempts == 0
        assert supervisor.exhausted is False
        assert fake_sleep.delays == [30.0, 30.0]

    @pytest.mark.asyncio
    async def test_zero_attempts_gives_up_immediately(self, stub_client, fake_sleep):
        """Test max_reconnect_attempts=0 never schedules a reconnect."""
        supervisor = make_supervisor(stub_client, fake_sleep, max_attempts=0)
        await supervisor.start()

        await stub_client.disconnect()

        assert supervisor.exhausted is True
        assert supervisor.pending_reconnect is None

    @pytest.mark.asyncio
    async def test_duplicate_disconnect_ignored(self, stub_client, fake_sleep, wait_for_reconnects):
        """Test a second disconnect while disconnected schedules nothing more."""
        supervisor = make_supervisor(stub_client, fake_sleep)
        await supervisor.start()

        await stub_client.disconnect()
        await stub_client.disconnect()

        assert supervisor.reconnect_attempts == 1
        await wait_for_reconnects(supervisor)
        assert stub_client.initialize_calls == 2

    @pytest.mark.asyncio
    async def test_restart_clears_exhaustion(self, stub_client, fake_sleep, wait_for_reconnects):
        """Test restart() resets the counter and connects again."""
        supervisor = make_supervisor(stub_client, fake_sleep, max_attempts=1)
        await supervisor.start()
        stub_client.fail_initialize = 10

        await stub_client.disconnect()
        await wait_for_reconnects(supervisor)
        assert supervisor.exhausted is True

        stub_client.fail_initialize = 0
        await supervisor.restart()

        assert supervisor.is_connected is True
        assert supervisor.exhausted is False
        assert supervisor.reconnect_attempts == 0


class TestRegeneratePairing:
    """Tests for forced pairing token regeneration."""

    @pytest.mark.asyncio
    async def test_new_token(self, fake_sleep):
        """Test a fresh token replaces the old one."""
        client = StubSessionClient(pairing_required=True)
        supervisor = make_supervisor(client, fake_sleep)
        await supervisor.start()
        first = supervisor.pairing_token

        token = await supervisor.regenerate_pairing()

        assert token is not None
        assert token != first
        assert supervisor.status == SessionStatus.AWAITING_PAIRING
        assert client.logout_calls == 1
        assert client.destroy_calls == 1
        assert supervisor.pending_reconnect is None

    @pytest.mark.asyncio
    async def test_connected_session_is_left_alone(self, stub_client, fake_sleep):
        """Test regeneration is refused while connected."""
        supervisor = make_supervisor(stub_client, fake_sleep)
        await supervisor.start()

        assert await supervisor.regenerate_pairing() is None
        assert stub_client.destroy_calls == 0
        assert supervisor.is_connected is True

    @pytest.mark.asyncio
    async def test_failed_reinitialize_schedules_reconnect(self, fake_sleep, wait_for_reconnects):
        """Test a failed re-initialize is treated as a disconnect, not left dead."""
        client = StubSessionClient(pairing_required=True)
        supervisor = make_supervisor(client, fake_sleep)
        await supervisor.start()
        client.fail_initialize = 1

        token = await supervisor.regenerate_pairing()

        assert token is None
        assert supervisor.status == SessionStatus.DISCONNECTED
        assert supervisor.pending_reconnect is not None
        assert supervisor.reconnect_attempts == 1

        await wait_for_reconnects(supervisor)

        assert supervisor.status == SessionStatus.AWAITING_PAIRING
        assert supervisor.pairing_token is not None
        assert fake_sleep.delays == [30.0]

    @pytest.mark.asyncio
    async def test_failed_reinitialize_without_reconnects_exhausts(self, fake_sleep):
        """Test a failed re-initialize marks the supervisor exhausted when no reconnects are allowed."""
        client = StubSessionClient(pairing_required=True)
        supervisor = make_supervisor(client, fake_sleep, max_attempts=0)
        await supervisor.start()
        client.fail_initialize = 1

        assert await supervisor.regenerate_pairing() is None

        assert supervisor.status == SessionStatus.DISCONNECTED
        assert supervisor.exhausted is True
        assert supervisor.pending_reconnect is None
