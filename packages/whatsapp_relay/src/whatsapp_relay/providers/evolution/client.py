"""
Evolution API Session Client

Session client backed by an Evolution API gateway (Baileys-based WhatsApp
Web integration). Outbound calls use the REST API; lifecycle and message
events arrive as gateway webhooks and are fed in through handle_webhook().

Documentation: https://doc.evolution-api.com/
"""

import logging
import time
from collections import OrderedDict
from typing import Any

import httpx

from whatsapp_relay.contracts.event_types import SessionEvent
from whatsapp_relay.providers.base import (
    ChatInfo,
    ContactInfo,
    InboundEvent,
    LastMessage,
    MediaInfo,
    MessageType,
    ProviderError,
    QuotedMessage,
    SentMessage,
    SessionClient,
)
from whatsapp_relay.providers.evolution.webhook import (
    CONNECTION_UPDATE,
    MESSAGES_UPSERT,
    QRCODE_UPDATED,
    address_to_jid,
    address_to_number,
    jid_to_address,
    normalize_event_name,
)

logger = logging.getLogger(__name__)

# Evolution messageType -> wire message type
TYPE_MAPPING = {
    "conversation": MessageType.TEXT,
    "extendedTextMessage": MessageType.TEXT,
    "imageMessage": MessageType.IMAGE,
    "videoMessage": MessageType.VIDEO,
    "audioMessage": MessageType.AUDIO,
    "documentMessage": MessageType.DOCUMENT,
    "documentWithCaptionMessage": MessageType.DOCUMENT,
    "stickerMessage": MessageType.STICKER,
    "locationMessage": MessageType.LOCATION,
    "contactMessage": MessageType.CONTACT_CARD,
}

MEDIA_TYPES = {"imageMessage", "videoMessage", "audioMessage", "documentMessage", "stickerMessage"}

# Senders whose pushName is remembered from inbound webhooks
PUSH_NAME_CACHE_SIZE = 1000


class EvolutionSessionClient(SessionClient):
    """
    Evolution API session client.

    One client maps to one Evolution instance (identified by instance_name).
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        instance_name: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Evolution API session client.

        Args:
            api_url: Base URL of Evolution API (e.g., "https://evolution-api.example.com")
            api_key: API key for authentication
            instance_name: Name of the Evolution instance
            timeout: HTTP request timeout
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        super().__init__()
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.instance_name = instance_name
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._push_names: OrderedDict[str, str] = OrderedDict()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Content-Type": "application/json",
                    "apikey": self.api_key,
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated API request."""
        client = await self._get_client()
        url = f"{self.api_url}{endpoint}"

        try:
            response = await client.request(method.upper(), url, json=json_data)
        except httpx.RequestError as e:
            logger.error(f"HTTP request failed: {e}")
            raise ProviderError(
                message=f"HTTP request failed: {e}",
                code="HTTP_ERROR",
                retryable=True,
            ) from e

        try:
            response_data = response.json() if response.content else {}
        except ValueError:
            response_data = {"raw": response.text}

        if response.status_code >= 400:
            error = "Unknown error"
            if isinstance(response_data, dict):
                error = response_data.get("error") or response_data.get("message") or error
            raise ProviderError(
                message=str(error),
                code=str(response.status_code),
                details=response_data if isinstance(response_data, dict) else {"body": response_data},
                retryable=response.status_code >= 500,
            )

        return response_data

    async def initialize(self) -> None:
        """
        Connect the instance.

        Evolution answers with the instance state when already paired, or
        with a QR code payload when pairing is needed.
        """
        response = await self._make_request("GET", f"/instance/connect/{self.instance_name}")

        state = (response.get("instance") or {}).get("state") or response.get("state")
        if state == "open":
            logger.info(
                "Evolution instance already connected",
                extra={"instance": self.instance_name},
            )
            await self.emit(SessionEvent.AUTHENTICATED)
            await self.emit(SessionEvent.READY)
            return

        token = self._extract_qr(response)
        if token:
            await self.emit(SessionEvent.PAIRING_TOKEN, token)
        else:
            logger.warning(
                "Evolution connect returned neither state nor QR code",
                extra={"instance": self.instance_name},
            )

    async def get_contact_by_id(self, contact_id: str) -> ContactInfo:
        """Look up a contact via /chat/findContacts."""
        jid = address_to_jid(contact_id)
        response = await self._make_request(
            "POST",
            f"/chat/findContacts/{self.instance_name}",
            {"where": {"id": jid}},
        )

        records = response if isinstance(response, list) else []
        record = next(
            (r for r in records if r.get("id") == jid or r.get("remoteJid") == jid),
            {},
        )

        return ContactInfo(
            contact_id=contact_id,
            number=contact_id.split("@")[0],
            pushname=record.get("pushName") or self._push_names.get(contact_id),
            name=record.get("name"),
            is_my_contact=bool(record),
        )

    async def get_chat_by_id(self, chat_id: str) -> ChatInfo:
        """Look up a chat via /chat/findChats."""
        jid = address_to_jid(chat_id)
        response = await self._make_request(
            "POST",
            f"/chat/findChats/{self.instance_name}",
            {"where": {"remoteJid": jid}},
        )

        records = response if isinstance(response, list) else []
        record = next((r for r in records if r.get("remoteJid") == jid), None)
        if record is None:
            return ChatInfo(chat_id=chat_id, is_group=chat_id.endswith("@g.us"))

        return self._parse_chat(record)

    async def list_chats(self) -> list[ChatInfo]:
        """List all chats of the instance via /chat/findChats, most recent first."""
        response = await self._make_request("POST", f"/chat/findChats/{self.instance_name}", {})

        records = response if isinstance(response, list) else []
        chats = [self._parse_chat(record) for record in records if record.get("remoteJid")]
        chats.sort(key=_last_activity, reverse=True)
        return chats

    async def send_message(
        self,
        address: str,
        text: str,
        reply_to: str | None = None,
    ) -> SentMessage:
        """Send a text message via Evolution API."""
        endpoint = f"/message/sendText/{self.instance_name}"

        payload: dict[str, Any] = {
            "number": address_to_number(address),
            "text": text,
        }

        if reply_to:
            payload["quoted"] = {"key": {"id": reply_to}}

        response = await self._make_request("POST", endpoint, payload)
        message_id = (response.get("key") or {}).get("id") or response.get("id")
        if not message_id:
            raise ProviderError(
                "Evolution API response carried no message id",
                code="NO_MESSAGE_ID",
                details=response,
            )

        timestamp = response.get("messageTimestamp")
        try:
            timestamp = float(timestamp) if timestamp else time.time()
        except (TypeError, ValueError):
            timestamp = time.time()

        logger.info(
            "Sent text message via Evolution API",
            extra={"to": address, "message_id": message_id, "instance": self.instance_name},
        )

        return SentMessage(message_id=message_id, timestamp=timestamp, raw_response=response)

    async def destroy(self) -> None:
        """Close the HTTP client. The instance stays paired on the gateway."""
        await self.close()

    async def logout(self) -> None:
        """Log the instance out, then close the HTTP client."""
        try:
            await self._make_request("DELETE", f"/instance/logout/{self.instance_name}")
        except ProviderError as e:
            logger.warning(f"Failed to logout Evolution instance: {e}")
        finally:
            await self.close()

    async def handle_webhook(self, payload: dict[str, Any]) -> list[SessionEvent]:
        """
        Translate an Evolution webhook into session events.

        Evolution webhook format:
        {
            "event": "messages.upsert",
            "instance": "instance_name",
            "sender": "5491100000000@s.whatsapp.net",
            "data": {...}
        }

        Returns:
            The session events emitted (empty when the webhook was ignored)
        """
        event = normalize_event_name(payload.get("event"))
        data = payload.get("data") or {}
        emitted: list[SessionEvent] = []

        if event == QRCODE_UPDATED:
            token = self._extract_qr(data)
            if token:
                await self.emit(SessionEvent.PAIRING_TOKEN, token)
                emitted.append(SessionEvent.PAIRING_TOKEN)

        elif event == CONNECTION_UPDATE:
            state = data.get("state")
            if state == "open":
                await self.emit(SessionEvent.AUTHENTICATED)
                await self.emit(SessionEvent.READY)
                emitted.extend([SessionEvent.AUTHENTICATED, SessionEvent.READY])
            elif state == "close":
                reason = str(data.get("statusReason") or "close")
                await self.emit(SessionEvent.DISCONNECTED, reason)
                emitted.append(SessionEvent.DISCONNECTED)

        elif event == MESSAGES_UPSERT:
            records = data if isinstance(data, list) else [data]
            for record in records:
                message = self._parse_message(record, payload.get("sender"))
                if message:
                    await self.emit(SessionEvent.MESSAGE, message)
                    emitted.append(SessionEvent.MESSAGE)

        else:
            logger.debug(f"Ignoring Evolution webhook event: {event}")

        return emitted

    @staticmethod
    def _extract_qr(data: dict[str, Any]) -> str | None:
        qrcode = data.get("qrcode")
        if isinstance(qrcode, dict):
            return qrcode.get("base64") or qrcode.get("code")
        return data.get("base64") or data.get("code")

    def _remember_push_name(self, sender: str, push_name: str) -> None:
        self._push_names[sender] = push_name
        self._push_names.move_to_end(sender)
        while len(self._push_names) > PUSH_NAME_CACHE_SIZE:
            self._push_names.popitem(last=False)

    def _parse_chat(self, record: dict[str, Any]) -> ChatInfo:
        """Parse a /chat/findChats record."""
        chat_id = jid_to_address(record.get("remoteJid"))

        last_message = None
        last = record.get("lastMessage")
        if isinstance(last, dict):
            timestamp = last.get("messageTimestamp")
            try:
                timestamp = float(timestamp) if timestamp else None
            except (TypeError, ValueError):
                timestamp = None
            last_message = LastMessage(
                body=self._message_text(last.get("message") or {}),
                timestamp=timestamp,
            )

        return ChatInfo(
            chat_id=chat_id,
            name=record.get("name") or record.get("subject") or record.get("pushName"),
            is_group=chat_id.endswith("@g.us"),
            unread_count=int(record.get("unreadCount") or 0),
            last_message=last_message,
        )

    @staticmethod
    def _message_text(message_data: dict[str, Any]) -> str:
        """Text of a message, or the caption of its media."""
        if message_data.get("conversation"):
            return message_data["conversation"]
        extended = message_data.get("extendedTextMessage") or {}
        if extended.get("text"):
            return extended["text"]
        for media_type in MEDIA_TYPES:
            caption = (message_data.get(media_type) or {}).get("caption")
            if caption:
                return caption
        return ""

    def _parse_message(
        self,
        data: dict[str, Any],
        instance_owner: str | None,
    ) -> InboundEvent | None:
        """Parse a single message from an Evolution webhook."""
        try:
            key = data.get("key") or {}
            message_data = data.get("message") or {}
            message_type_str = data.get("messageType") or next(iter(message_data), "conversation")
            sender = jid_to_address(key.get("remoteJid"))

            msg_type = TYPE_MAPPING.get(message_type_str, MessageType.UNKNOWN)
            media_obj = message_data.get(message_type_str) if message_type_str in MEDIA_TYPES else None
            if msg_type == MessageType.AUDIO and media_obj and media_obj.get("ptt"):
                msg_type = MessageType.VOICE

            # Text or caption
            body = message_data.get("conversation") or ""
            extended = message_data.get("extendedTextMessage") or {}
            if not body:
                body = extended.get("text") or ""
            if not body and media_obj:
                body = media_obj.get("caption") or ""

            media = None
            if media_obj is not None:
                size = media_obj.get("fileLength")
                media = MediaInfo(
                    mimetype=media_obj.get("mimetype"),
                    filename=media_obj.get("fileName"),
                    size=int(size) if size is not None else None,
                )

            quoted = None
            context = extended.get("contextInfo") or (media_obj or {}).get("contextInfo") or {}
            if context.get("stanzaId"):
                quoted_message = context.get("quotedMessage") or {}
                quoted = QuotedMessage(
                    message_id=context["stanzaId"],
                    body=quoted_message.get("conversation")
                    or (quoted_message.get("extendedTextMessage") or {}).get("text")
                    or "",
                )

            timestamp = time.time()
            if data.get("messageTimestamp"):
                try:
                    timestamp = float(data["messageTimestamp"])
                except (ValueError, TypeError):
                    pass

            if data.get("pushName") and sender:
                self._remember_push_name(sender, data["pushName"])

            return InboundEvent(
                message_id=key.get("id", ""),
                sender=sender,
                recipient=jid_to_address(instance_owner),
                timestamp=timestamp,
                body=body,
                message_type=msg_type,
                from_me=bool(key.get("fromMe")),
                has_media=media is not None,
                media=media,
                quoted=quoted,
                raw=data,
            )

        except Exception as e:
            logger.error(f"Failed to parse Evolution message: {e}", exc_info=True)
            return None


def _last_activity(chat: ChatInfo) -> float:
    if chat.last_message is None:
        return 0.0
    return chat.last_message.timestamp or 0.0
