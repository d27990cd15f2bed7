"""
Connection Supervisor

Owns the single SessionClient handle and tracks the session lifecycle:

    disconnected -> connecting -> awaiting-pairing -> connected
         ^                                               |
         +------------------ disconnected <--------------+

On a disconnect the supervisor schedules one reconnect attempt after
reconnect_interval, up to max_reconnect_attempts in a row. A successful
ready resets the counter. When a disconnect arrives with the counter
already at the maximum, the supervisor gives up (exhausted) until
restart() is called.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from whatsapp_relay.contracts.event_types import SessionEvent, SessionStatus
from whatsapp_relay.providers.base import (
    ChatInfo,
    ContactInfo,
    InboundEvent,
    SentMessage,
    SessionClient,
)

logger = logging.getLogger(__name__)

MessageCallback = Callable[[InboundEvent], Awaitable[Any]]
SleepFunc = Callable[[float], Awaitable[None]]


class ConnectionSupervisor:
    """Lifecycle state machine and reconnection policy for one session."""

    def __init__(
        self,
        client: SessionClient,
        reconnect_interval: float = 30.0,
        max_reconnect_attempts: int = 5,
        on_message: MessageCallback | None = None,
        sleep: SleepFunc | None = None,
    ):
        """
        Initialize supervisor.

        Args:
            client: Session client to supervise (subscribed to once, here)
            reconnect_interval: Seconds to wait before a reconnect attempt
            max_reconnect_attempts: Consecutive reconnects before giving up
            on_message: Callback for inbound message events
            sleep: Sleep function (tests inject a fake)
        """
        self.client = client
        self.reconnect_interval = reconnect_interval
        self.max_reconnect_attempts = max_reconnect_attempts
        self.on_message = on_message
        self._sleep = sleep or asyncio.sleep

        self._status = SessionStatus.DISCONNECTED
        self._pairing_token: str | None = None
        self._reconnect_attempts = 0
        self._exhausted = False
        self._stopping = False
        self._reconnect_task: asyncio.Task | None = None

        client.on(SessionEvent.PAIRING_TOKEN, self._handle_pairing_token)
        client.on(SessionEvent.AUTHENTICATED, self._handle_authenticated)
        client.on(SessionEvent.AUTH_FAILURE, self._handle_auth_failure)
        client.on(SessionEvent.READY, self._handle_ready)
        client.on(SessionEvent.DISCONNECTED, self._handle_disconnected)
        client.on(SessionEvent.MESSAGE, self._handle_message)

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == SessionStatus.CONNECTED

    @property
    def pairing_token(self) -> str | None:
        return self._pairing_token

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def pending_reconnect(self) -> asyncio.Task | None:
        """The scheduled reconnect task, if one has not finished yet."""
        task = self._reconnect_task
        if task is not None and not task.done():
            return task
        return None

    async def start(self) -> None:
        """
        Connect the session.

        Raises:
            ProviderError: If the client fails to initialize
        """
        if self._status != SessionStatus.DISCONNECTED:
            logger.debug(f"Session already {self._status}, ignoring start")
            return

        self._stopping = False
        self._set_status(SessionStatus.CONNECTING)
        try:
            await self.client.initialize()
        except Exception:
            self._set_status(SessionStatus.DISCONNECTED)
            raise

    async def stop(self) -> None:
        """Tear the session down without triggering a reconnect."""
        self._stopping = True
        await self._cancel_reconnect()

        try:
            await self.client.destroy()
        except Exception as e:
            logger.warning(f"Session client destroy failed: {e}", exc_info=True)

        self._pairing_token = None
        self._set_status(SessionStatus.DISCONNECTED)

    async def restart(self) -> None:
        """Clear exhaustion and the reconnect counter, then connect again."""
        await self.stop()
        self._reconnect_attempts = 0
        self._exhausted = False
        await self.start()

    async def regenerate_pairing(self) -> str | None:
        """
        Unpair the session and request a fresh pairing token.

        A failed re-initialize is handled like any other disconnect: a
        reconnect is scheduled, or the supervisor is marked exhausted.

        Returns:
            The new token, or None if the session is already connected,
            the re-initialize failed, or the client produced none
        """
        if self.is_connected:
            return None

        await self._cancel_reconnect()

        # logout() may emit a disconnect; that must not schedule a reconnect
        self._stopping = True
        try:
            await self.client.logout()
        except Exception as e:
            logger.warning(f"Session client logout failed: {e}", exc_info=True)
        finally:
            self._stopping = False

        self._pairing_token = None
        self._set_status(SessionStatus.CONNECTING)
        try:
            await self.client.initialize()
        except Exception as e:
            logger.error(f"Pairing regeneration failed: {e}", exc_info=True)
            await self._on_disconnect(f"pairing regeneration failed: {e}")
            return None

        return self._pairing_token

    async def send_text(self, address: str, text: str, reply_to: str | None = None) -> SentMessage:
        return await self.client.send_message(address, text, reply_to=reply_to)

    async def get_contact(self, address: str) -> ContactInfo:
        return await self.client.get_contact_by_id(address)

    async def get_chat(self, address: str) -> ChatInfo:
        return await self.client.get_chat_by_id(address)

    async def list_chats(self) -> list[ChatInfo]:
        return await self.client.list_chats()

    # Session event handlers

    async def _handle_pairing_token(self, token: str) -> None:
        self._pairing_token = token
        self._set_status(SessionStatus.AWAITING_PAIRING)
        logger.info("Pairing token received, waiting for scan")

    async def _handle_authenticated(self, *args: Any) -> None:
        logger.info("Session authenticated")

    async def _handle_auth_failure(self, message: Any = None) -> None:
        logger.error(f"Session authentication failed: {message}")

    async def _handle_ready(self, *args: Any) -> None:
        self._pairing_token = None
        self._reconnect_attempts = 0
        self._exhausted = False
        self._set_status(SessionStatus.CONNECTED)

    async def _handle_disconnected(self, reason: Any = None) -> None:
        await self._on_disconnect(str(reason) if reason is not None else "unknown")

    async def _handle_message(self, event: InboundEvent) -> None:
        if self.on_message is not None:
            await self.on_message(event)

    # Reconnection

    async def _on_disconnect(self, reason: str) -> None:
        if self._stopping:
            logger.debug(f"Ignoring disconnect while stopping: {reason}")
            return
        if self._status == SessionStatus.DISCONNECTED:
            logger.debug(f"Ignoring disconnect, already disconnected: {reason}")
            return

        self._pairing_token = None
        self._set_status(SessionStatus.DISCONNECTED)
        logger.warning(f"Session disconnected: {reason}", extra={"reason": reason})
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        current = self._reconnect_task
        if current is not None and not current.done() and current is not asyncio.current_task():
            logger.debug("Reconnect already scheduled")
            return

        if self._reconnect_attempts >= self.max_reconnect_attempts:
            self._exhausted = True
            logger.critical(
                f"Reconnection attempts exhausted after {self._reconnect_attempts} tries, giving up",
                extra={"max_attempts": self.max_reconnect_attempts},
            )
            return

        self._reconnect_attempts += 1
        logger.info(
            f"Scheduling reconnect {self._reconnect_attempts}/{self.max_reconnect_attempts} "
            f"in {self.reconnect_interval}s",
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect(self._reconnect_attempts),
            name=f"session-reconnect-{self._reconnect_attempts}",
        )

    async def _reconnect(self, attempt: int) -> None:
        await self._sleep(self.reconnect_interval)

        if self._stopping or self._status != SessionStatus.DISCONNECTED:
            logger.debug(f"Skipping reconnect {attempt}, status is {self._status}")
            return

        self._set_status(SessionStatus.CONNECTING)
        try:
            await self.client.initialize()
        except Exception as e:
            logger.error(f"Reconnect {attempt} failed: {e}", exc_info=True)
            await self._on_disconnect(f"reconnect failed: {e}")

    async def _cancel_reconnect(self) -> None:
        task = self.pending_reconnect
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _set_status(self, status: SessionStatus) -> None:
        if status != self._status:
            logger.info(f"Session status: {self._status} -> {status}")
        self._status = status
