"""
Relay Engine

Top-level orchestrator.

Inbound: session message -> eligibility check -> contact/chat enrichment
-> payload formatting -> background delivery to the relay target.

Outbound: send_message / send_bulk, admitted only while the session is
connected and the recipient validates.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from whatsapp_relay.config import RelayConfig
from whatsapp_relay.contracts.event_types import SessionStatus
from whatsapp_relay.contracts.payloads import RelayPayload
from whatsapp_relay.delivery.client import WebhookDeliveryClient
from whatsapp_relay.delivery.dispatcher import RetryDispatcher, RetryPolicy, SleepFunc
from whatsapp_relay.errors import (
    InvalidRecipient,
    MessageTooLong,
    NotConnected,
    RelayError,
    SendFailed,
    SessionUnavailable,
)
from whatsapp_relay.providers.base import (
    ChatInfo,
    ContactInfo,
    InboundEvent,
    ProviderError,
    SessionClient,
)
from whatsapp_relay.routing.identifiers import ChatKind, IdentifierNormalizer
from whatsapp_relay.service.formatter import (
    UNKNOWN_CONTACT_NAME,
    format_payload,
    is_valid_inbound,
)
from whatsapp_relay.service.supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)

UNNAMED_CHAT_NAME = "Unnamed"


@dataclass
class SendReceipt:
    """Acknowledgement of a single outbound send."""

    message_id: str
    recipient: str  # Canonical number
    address: str  # Network address
    timestamp: int  # Epoch milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "to": self.recipient,
            "whatsappId": self.address,
            "timestamp": self.timestamp,
        }


@dataclass
class BulkSendReport:
    """Aggregate outcome of a bulk send."""

    total: int
    results: list[dict[str, Any]] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.succeeded,
            "failed": self.failed,
            "results": self.results,
            "errors": self.failures,
        }


class RelayEngine:
    """Connection & relay engine for one WhatsApp session."""

    def __init__(
        self,
        client: SessionClient,
        config: RelayConfig,
        dispatcher: RetryDispatcher | None = None,
        sleep: SleepFunc | None = None,
    ):
        """
        Initialize engine.

        Args:
            client: Session client (owned by the supervisor from here on)
            config: Engine configuration
            dispatcher: Relay dispatcher (built from config when omitted)
            sleep: Sleep function for pacing and backoff (tests inject a fake)
        """
        self.config = config
        self.normalizer = IdentifierNormalizer(
            country_code=config.country_code,
            mobile_prefix=config.mobile_prefix,
        )
        self._sleep = sleep or asyncio.sleep

        self.supervisor = ConnectionSupervisor(
            client,
            reconnect_interval=config.reconnect_interval,
            max_reconnect_attempts=config.max_reconnect_attempts,
            on_message=self.handle_inbound,
            sleep=self._sleep,
        )

        if dispatcher is None:
            dispatcher = RetryDispatcher(
                WebhookDeliveryClient(timeout=config.delivery_timeout),
                target_url=config.relay_url,
                policy=RetryPolicy(
                    max_attempts=config.max_delivery_attempts,
                    base_delay=config.delivery_base_delay,
                ),
                timeout=config.delivery_timeout,
                sleep=self._sleep,
            )
        self.dispatcher = dispatcher

    # Lifecycle

    async def start(self) -> None:
        logger.info(
            "Starting relay engine",
            extra={"relay_url": self.config.relay_url},
        )
        await self.supervisor.start()

    async def shutdown(self, grace: float | None = None) -> None:
        """Stop the session, then give in-flight deliveries a grace period."""
        grace = self.config.shutdown_grace if grace is None else grace
        await self.supervisor.stop()
        abandoned = await self.dispatcher.drain(grace)
        await self.dispatcher.client.close()
        logger.info("Relay engine stopped", extra={"abandoned_deliveries": abandoned})

    # Inbound

    async def handle_inbound(self, event: InboundEvent) -> RelayPayload | None:
        """
        Relay an inbound message.

        Returns the payload handed to the dispatcher, or None if the event
        was dropped. Delivery itself runs in the background.
        """
        if not is_valid_inbound(event, self.config.max_message_length):
            logger.debug(
                "Dropping ineligible inbound message",
                extra={"message_id": event.message_id, "from_me": event.from_me},
            )
            return None

        contact = await self._lookup_contact(event.sender)
        chat = await self._lookup_chat(event.sender)

        payload = format_payload(event, contact, chat, self.normalizer)
        if payload is None:
            logger.error(
                "Dropping inbound message that could not be formatted",
                extra={"message_id": event.message_id},
            )
            return None

        self.dispatcher.submit(payload)
        logger.info(
            "Inbound message queued for relay",
            extra={"message_id": payload.message_id, "from": payload.from_number},
        )
        return payload

    async def _lookup_contact(self, address: str) -> ContactInfo | None:
        try:
            return await self.supervisor.get_contact(address)
        except Exception as e:
            logger.warning(f"Contact lookup failed, using defaults: {e}", extra={"address": address})
            return None

    async def _lookup_chat(self, address: str) -> ChatInfo | None:
        try:
            return await self.supervisor.get_chat(address)
        except Exception as e:
            logger.warning(f"Chat lookup failed, using defaults: {e}", extra={"address": address})
            return None

    # Outbound

    async def send_message(self, to: str, text: str, reply_to: str | None = None) -> SendReceipt:
        """
        Send a text message.

        Raises:
            NotConnected: Session is not connected
            InvalidRecipient: `to` is not a valid phone number
            MessageTooLong: `text` exceeds the configured maximum
            SendFailed: The session client failed the send
        """
        if self.supervisor.status != SessionStatus.CONNECTED:
            raise NotConnected(details={"status": str(self.supervisor.status)})

        if not self.normalizer.is_valid(to):
            raise InvalidRecipient(f"Invalid phone number: {to}", details={"to": to})

        if len(text) > self.config.max_message_length:
            raise MessageTooLong(
                f"Message exceeds {self.config.max_message_length} characters",
                details={"length": len(text), "max_length": self.config.max_message_length},
            )

        address = self.normalizer.to_network_form(to)

        try:
            sent = await self.supervisor.send_text(address, text, reply_to=reply_to)
        except ProviderError as e:
            logger.error(f"Failed to send message: {e}", extra={"to": address, "code": e.code})
            raise SendFailed(str(e), details={"provider_code": e.code}) from e
        except Exception as e:
            logger.error(f"Failed to send message: {e}", extra={"to": address}, exc_info=True)
            raise SendFailed(str(e)) from e

        logger.info("Message sent", extra={"to": address, "message_id": sent.message_id})
        return SendReceipt(
            message_id=sent.message_id,
            recipient=self.normalizer.normalize(to),
            address=address,
            timestamp=int(sent.timestamp * 1000),
        )

    async def send_bulk(
        self,
        numbers: list[Any],
        text: str,
        delay_ms: int | None = None,
    ) -> BulkSendReport:
        """
        Send the same text to several numbers, one at a time.

        Sends are paced by delay_ms (default: configured bulk delay) between
        consecutive sends. Per-recipient failures are collected; the batch
        never aborts.
        """
        delay = self.config.bulk_send_delay if delay_ms is None else delay_ms / 1000
        report = BulkSendReport(total=len(numbers))
        sent_any = False

        for number in numbers:
            if not self.normalizer.is_valid(number):
                report.failures.append({
                    "number": number,
                    "error": "invalid_recipient",
                    "message": f"Invalid phone number: {number}",
                })
                continue

            if sent_any and delay > 0:
                await self._sleep(delay)
            sent_any = True

            try:
                receipt = await self.send_message(number, text)
            except RelayError as e:
                report.failures.append({
                    "number": number,
                    "error": e.code.lower(),
                    "message": e.message,
                })
                continue

            report.results.append({
                "number": number,
                "success": True,
                "messageId": receipt.message_id,
                "timestamp": receipt.timestamp,
            })

        logger.info(
            f"Bulk send finished: {report.succeeded}/{report.total} sent",
            extra={"succeeded": report.succeeded, "failed": report.failed},
        )
        return report

    # Queries and pass-throughs

    def get_status(self) -> dict[str, Any]:
        supervisor = self.supervisor
        return {
            "status": str(supervisor.status),
            "isConnected": supervisor.is_connected,
            "reconnectAttempts": supervisor.reconnect_attempts,
            "reconnectExhausted": supervisor.exhausted,
            "hasPairingToken": supervisor.pairing_token is not None,
            "inFlightDeliveries": self.dispatcher.in_flight,
            "deliveries": dict(self.dispatcher.stats),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def is_valid(self, phone_number: Any) -> bool:
        return self.normalizer.is_valid(phone_number)

    def normalize(self, phone_number: Any) -> str:
        return self.normalizer.normalize(phone_number)

    def to_network_form(self, phone_number: Any) -> str:
        return self.normalizer.to_network_form(phone_number)

    def get_pairing_token(self) -> str | None:
        return self.supervisor.pairing_token

    async def regenerate_pairing(self) -> str | None:
        return await self.supervisor.regenerate_pairing()

    async def get_contact_info(self, phone_number: str) -> dict[str, Any]:
        """
        Look up contact details for a phone number.

        Raises:
            NotConnected: Session is not connected
            InvalidRecipient: Not a valid phone number
        """
        if not self.supervisor.is_connected:
            raise NotConnected(details={"status": str(self.supervisor.status)})
        if not self.normalizer.is_valid(phone_number):
            raise InvalidRecipient(f"Invalid phone number: {phone_number}", details={"phone": phone_number})

        address = self.normalizer.to_network_form(phone_number)
        contact = await self._lookup_contact(address)

        return {
            "number": self.normalizer.normalize(phone_number),
            "whatsappId": address,
            "displayNumber": self.normalizer.format_for_display(phone_number),
            "name": (contact.display_name if contact else None) or UNKNOWN_CONTACT_NAME,
            "pushname": contact.pushname if contact else None,
            "isMyContact": contact.is_my_contact if contact else False,
        }

    async def list_chats(self, kind: ChatKind | None = None, limit: int = 50) -> dict[str, Any]:
        """
        List the session's chats, optionally only groups or only private chats.

        Args:
            kind: ChatKind.GROUP or ChatKind.PRIVATE to filter, None for all
            limit: Maximum number of chats returned

        Raises:
            NotConnected: Session is not connected
            SessionUnavailable: The session client failed the listing
        """
        if not self.supervisor.is_connected:
            raise NotConnected(details={"status": str(self.supervisor.status)})

        try:
            chats = await self.supervisor.list_chats()
        except ProviderError as e:
            logger.error(f"Failed to list chats: {e}", extra={"code": e.code})
            raise SessionUnavailable(f"Failed to list chats: {e}", details={"provider_code": e.code}) from e

        filtered = chats
        if kind is not None:
            filtered = [chat for chat in chats if self.normalizer.chat_kind(chat.chat_id) == kind]
        returned = filtered[: max(limit, 0)]

        return {
            "total": len(chats),
            "filtered": len(filtered),
            "returned": len(returned),
            "chats": [self._chat_summary(chat) for chat in returned],
        }

    def _chat_summary(self, chat: ChatInfo) -> dict[str, Any]:
        kind = self.normalizer.chat_kind(chat.chat_id)

        last_message = None
        if chat.last_message is not None:
            timestamp = chat.last_message.timestamp
            last_message = {
                "body": chat.last_message.body,
                "timestamp": int(timestamp * 1000) if timestamp is not None else None,
            }

        return {
            "id": chat.chat_id,
            "name": chat.name or UNNAMED_CHAT_NAME,
            "type": kind.value,
            "isGroup": kind == ChatKind.GROUP,
            "unreadCount": chat.unread_count,
            "lastMessage": last_message,
        }
