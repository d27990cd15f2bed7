"""
Session Client Base

Abstract interface for WhatsApp session clients.
Implementations: Evolution API (gateway over REST), Stub (for development
and tests).

A session client owns the actual connection to the network. The relay
engine never talks to it directly; the ConnectionSupervisor holds the only
handle and subscribes to its events with on().
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from whatsapp_relay.contracts.event_types import SessionEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Awaitable[None] | None]


class ProviderError(Exception):
    """Error from a session client."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.retryable = retryable


class MessageType(str, Enum):
    """Types of WhatsApp messages, as named on the wire."""

    TEXT = "chat"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    VOICE = "ptt"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACT_CARD = "vcard"
    UNKNOWN = "unknown"


@dataclass
class MediaInfo:
    """Media attachment details."""

    mimetype: str | None = None
    filename: str | None = None
    size: int | None = None


@dataclass
class QuotedMessage:
    """Message being replied to."""

    message_id: str
    body: str = ""


@dataclass
class InboundEvent:
    """
    Inbound message as reported by a session client.

    Provider-agnostic; lives for a single relay attempt.
    """

    message_id: str
    sender: str  # Network address, e.g. 5491134083140@c.us
    recipient: str
    timestamp: float  # Seconds since epoch
    body: str = ""
    message_type: MessageType = MessageType.TEXT
    from_me: bool = False
    has_media: bool = False
    media: MediaInfo | None = None
    quoted: QuotedMessage | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_group(self) -> bool:
        return "@g.us" in (self.sender or "")


@dataclass
class ContactInfo:
    """Contact details resolved from the session."""

    contact_id: str
    number: str
    pushname: str | None = None
    name: str | None = None
    is_my_contact: bool = False

    @property
    def display_name(self) -> str | None:
        return self.pushname or self.name


@dataclass
class LastMessage:
    """Most recent message of a chat."""

    body: str = ""
    timestamp: float | None = None  # Seconds since epoch


@dataclass
class ChatInfo:
    """Chat details resolved from the session."""

    chat_id: str
    name: str | None = None
    is_group: bool = False
    unread_count: int = 0
    last_message: LastMessage | None = None


@dataclass
class SentMessage:
    """Session client acknowledgement of an outbound message."""

    message_id: str
    timestamp: float  # Seconds since epoch
    raw_response: dict[str, Any] = field(default_factory=dict)


class SessionClient(ABC):
    """
    Abstract interface for WhatsApp session clients.

    Implementations must:
    - Emit SessionEvent values through emit() as the session changes
    - Resolve contact and chat details by network address
    - Send text messages to network addresses
    - Release local resources on destroy(), keeping the pairing
    - Drop the pairing on logout()
    """

    def __init__(self) -> None:
        self._handlers: dict[SessionEvent, list[EventHandler]] = defaultdict(list)

    def on(self, event: SessionEvent, handler: EventHandler) -> None:
        """
        Subscribe to a session event.

        Args:
            event: Event to listen for
            handler: Sync or async callable receiving the event arguments
        """
        self._handlers[SessionEvent(event)].append(handler)

    async def emit(self, event: SessionEvent, *args: Any) -> None:
        """
        Deliver an event to every subscribed handler, in subscription order.

        A failing handler is logged and does not stop the others.
        """
        for handler in list(self._handlers.get(SessionEvent(event), [])):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Session event handler failed: {e}",
                    extra={"event": str(event)},
                    exc_info=True,
                )

    @abstractmethod
    async def initialize(self) -> None:
        """
        Start (or resume) the session.

        Emits PAIRING_TOKEN when pairing is needed, or AUTHENTICATED then
        READY when the session is usable.

        Raises:
            ProviderError: If the session could not be started
        """
        ...

    @abstractmethod
    async def get_contact_by_id(self, contact_id: str) -> ContactInfo:
        """
        Look up a contact.

        Args:
            contact_id: Network address of the contact

        Returns:
            ContactInfo for the address

        Raises:
            ProviderError: If the lookup failed
        """
        ...

    @abstractmethod
    async def get_chat_by_id(self, chat_id: str) -> ChatInfo:
        """
        Look up a chat.

        Args:
            chat_id: Network address of the chat

        Returns:
            ChatInfo for the address

        Raises:
            ProviderError: If the lookup failed
        """
        ...

    @abstractmethod
    async def list_chats(self) -> list[ChatInfo]:
        """
        List the chats known to the session.

        Raises:
            ProviderError: If the listing failed
        """
        ...

    @abstractmethod
    async def send_message(
        self,
        address: str,
        text: str,
        reply_to: str | None = None,
    ) -> SentMessage:
        """
        Send a text message.

        Args:
            address: Recipient network address (e.g. 5491134083140@c.us)
            text: Message text
            reply_to: Message ID to quote (optional)

        Returns:
            SentMessage with the provider message ID

        Raises:
            ProviderError: If the send failed
        """
        ...

    @abstractmethod
    async def destroy(self) -> None:
        """
        Release the connection and local resources.

        The pairing survives, so the next initialize() resumes the same
        account without a new scan.
        """
        ...

    @abstractmethod
    async def logout(self) -> None:
        """
        Unpair the account, then release resources like destroy().

        The next initialize() has to go through pairing again.
        """
        ...
