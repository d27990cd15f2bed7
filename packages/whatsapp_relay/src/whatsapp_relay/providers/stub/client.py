"""
Stub Session Client

Development session client that logs all operations without a real
WhatsApp connection. Tests drive it through complete_pairing(),
disconnect() and receive() to simulate what the network would do.
"""

import logging
import random
import time
from typing import Any
from uuid import uuid4

from whatsapp_relay.contracts.event_types import SessionEvent
from whatsapp_relay.providers.base import (
    ChatInfo,
    ContactInfo,
    InboundEvent,
    ProviderError,
    SentMessage,
    SessionClient,
)

logger = logging.getLogger(__name__)


class StubSessionClient(SessionClient):
    """
    Stub session client for development and testing.

    - Logs all outbound messages
    - Generates fake message IDs and pairing tokens
    - Can require pairing, fail initialization, or fail sends
    """

    def __init__(
        self,
        pairing_required: bool = False,
        simulate_failures: bool = False,
        failure_rate: float = 0.1,
        fail_sends: bool = False,
        fail_initialize: int = 0,
        contacts: dict[str, ContactInfo] | None = None,
        chats: dict[str, ChatInfo] | None = None,
        fail_lookups: bool = False,
    ):
        """
        Initialize the stub.

        Args:
            pairing_required: Emit a pairing token instead of going straight to ready
            simulate_failures: Randomly fail sends at failure_rate
            failure_rate: Probability of a simulated failure
            fail_sends: Fail every send
            fail_initialize: Number of upcoming initialize() calls that fail
            contacts: Known contacts by network address
            chats: Known chats by network address
            fail_lookups: Make contact/chat lookups raise
        """
        super().__init__()
        self.pairing_required = pairing_required
        self.simulate_failures = simulate_failures
        self.failure_rate = failure_rate
        self.fail_sends = fail_sends
        self.fail_initialize = fail_initialize
        self.contacts = contacts or {}
        self.chats = chats or {}
        self.fail_lookups = fail_lookups

        self.sent_messages: list[dict[str, Any]] = []
        self.initialize_calls = 0
        self.destroy_calls = 0
        self.logout_calls = 0
        self.pairing_token: str | None = None
        self.ready = False

    async def initialize(self) -> None:
        """Start the fake session."""
        self.initialize_calls += 1
        self.ready = False

        if self.fail_initialize > 0:
            self.fail_initialize -= 1
            logger.warning("[STUB] Simulated initialize failure")
            raise ProviderError(
                "Simulated initialize failure",
                code="STUB_INIT_FAILURE",
                retryable=True,
            )

        if self.pairing_required:
            self.pairing_token = f"stub_qr_{uuid4().hex[:16]}"
            logger.info("[STUB] Pairing token issued")
            await self.emit(SessionEvent.PAIRING_TOKEN, self.pairing_token)
            return

        await self._become_ready()

    async def complete_pairing(self) -> None:
        """Simulate the user scanning the pairing token."""
        self.pairing_required = False
        await self._become_ready()

    async def disconnect(self, reason: str = "NAVIGATION") -> None:
        """Simulate the network dropping the session."""
        self.ready = False
        logger.info(f"[STUB] Session disconnected: {reason}")
        await self.emit(SessionEvent.DISCONNECTED, reason)

    async def fail_auth(self, message: str = "invalid session") -> None:
        """Simulate rejected credentials."""
        await self.emit(SessionEvent.AUTH_FAILURE, message)

    async def receive(self, event: InboundEvent) -> None:
        """Simulate an inbound message."""
        logger.debug(f"[STUB] Inbound message: {event.message_id}")
        await self.emit(SessionEvent.MESSAGE, event)

    async def _become_ready(self) -> None:
        self.pairing_token = None
        self.ready = True
        await self.emit(SessionEvent.AUTHENTICATED)
        await self.emit(SessionEvent.READY)

    async def get_contact_by_id(self, contact_id: str) -> ContactInfo:
        """Return a registered contact or a bare one."""
        if self.fail_lookups:
            raise ProviderError("Simulated contact lookup failure", code="STUB_LOOKUP_FAILURE")
        if contact_id in self.contacts:
            return self.contacts[contact_id]
        return ContactInfo(
            contact_id=contact_id,
            number=contact_id.split("@")[0],
        )

    async def get_chat_by_id(self, chat_id: str) -> ChatInfo:
        """Return a registered chat or a bare one."""
        if self.fail_lookups:
            raise ProviderError("Simulated chat lookup failure", code="STUB_LOOKUP_FAILURE")
        if chat_id in self.chats:
            return self.chats[chat_id]
        return ChatInfo(chat_id=chat_id, is_group=chat_id.endswith("@g.us"))

    async def list_chats(self) -> list[ChatInfo]:
        """Return the registered chats."""
        if self.fail_lookups:
            raise ProviderError("Simulated chat listing failure", code="STUB_LOOKUP_FAILURE")
        return list(self.chats.values())

    async def send_message(
        self,
        address: str,
        text: str,
        reply_to: str | None = None,
    ) -> SentMessage:
        """Log and record the message."""
        if self.fail_sends or self._should_fail():
            raise ProviderError(
                "Simulated failure for testing",
                code="STUB_SIMULATED_FAILURE",
            )

        message_id = f"stub_msg_{uuid4().hex[:16]}"
        timestamp = time.time()

        self.sent_messages.append({
            "to": address,
            "text": text,
            "reply_to": reply_to,
            "message_id": message_id,
            "timestamp": timestamp,
        })

        logger.info(
            "[STUB] Sending text message",
            extra={
                "to": address,
                "text": text[:100] + "..." if len(text) > 100 else text,
                "message_id": message_id,
            },
        )

        return SentMessage(
            message_id=message_id,
            timestamp=timestamp,
            raw_response={"stub": True, "message_id": message_id},
        )

    async def destroy(self) -> None:
        """Drop the fake connection, keeping the pairing."""
        self.destroy_calls += 1
        self.ready = False
        self.pairing_token = None
        logger.info("[STUB] Session destroyed")

    async def logout(self) -> None:
        """Forget the fake pairing."""
        self.logout_calls += 1
        self.pairing_required = True
        logger.info("[STUB] Session logged out")
        await self.destroy()

    def _should_fail(self) -> bool:
        """Check if we should simulate a failure."""
        if not self.simulate_failures:
            return False
        return random.random() < self.failure_rate

    def get_sent_messages(self) -> list[dict[str, Any]]:
        """Get all sent messages (for testing)."""
        return self.sent_messages.copy()

    def clear_sent_messages(self) -> None:
        """Clear sent messages history (for testing)."""
        self.sent_messages.clear()
