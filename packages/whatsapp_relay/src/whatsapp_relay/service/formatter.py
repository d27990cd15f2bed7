"""
Payload Formatter

Turns a session InboundEvent (plus contact/chat enrichment) into the
RelayPayload posted to the relay target, and decides which inbound
events are eligible for relay at all.
"""

import logging

from whatsapp_relay.contracts.payloads import (
    ChatBlock,
    ContactBlock,
    MediaBlock,
    MetadataBlock,
    QuotedBlock,
    RelayPayload,
)
from whatsapp_relay.providers.base import ChatInfo, ContactInfo, InboundEvent, MessageType
from whatsapp_relay.routing.identifiers import IdentifierNormalizer

logger = logging.getLogger(__name__)

UNKNOWN_CONTACT_NAME = "Unknown"
PRIVATE_CHAT_NAME = "Private chat"


def is_valid_inbound(event: InboundEvent, max_length: int) -> bool:
    """
    Check whether an inbound event should be relayed.

    Self-originated, empty, sender-less and oversized events are not.
    """
    if not event.sender:
        return False
    if event.from_me:
        return False

    body = event.body or ""
    if not body and not event.has_media:
        return False
    if len(body) > max_length:
        return False

    return True


def format_payload(
    event: InboundEvent,
    contact: ContactInfo | None,
    chat: ChatInfo | None,
    normalizer: IdentifierNormalizer,
) -> RelayPayload | None:
    """
    Build the relay payload for an event.

    Returns None (after logging) if the payload cannot be built; callers
    drop the event rather than retry.
    """
    try:
        number = normalizer.from_network_form(event.sender)
        message_type = MessageType(event.message_type).value
        is_group = event.is_group

        quoted = None
        if event.quoted is not None:
            quoted = QuotedBlock(id=event.quoted.message_id, body=event.quoted.body or "")

        media = None
        if event.has_media:
            info = event.media
            media = MediaBlock(
                mimetype=info.mimetype if info else None,
                filename=info.filename if info else None,
                size=info.size if info else None,
            )

        return RelayPayload(
            message_id=event.message_id,
            from_=event.sender,
            from_number=number,
            to=event.recipient,
            body=event.body or "",
            type=message_type,
            timestamp=int(event.timestamp * 1000),
            is_group_msg=is_group,
            contact=ContactBlock(
                name=(contact.display_name if contact else None) or UNKNOWN_CONTACT_NAME,
                number=number,
                is_my_contact=contact.is_my_contact if contact else False,
            ),
            chat=ChatBlock(
                name=(chat.name if chat else None) or PRIVATE_CHAT_NAME,
                is_group=chat.is_group if chat else is_group,
            ),
            metadata=MetadataBlock(
                has_media=event.has_media,
                media_type=message_type,
                quoted_message=quoted,
            ),
            media=media,
        )

    except Exception as e:
        logger.error(
            f"Failed to format relay payload: {e}",
            extra={"message_id": getattr(event, "message_id", None)},
            exc_info=True,
        )
        return None
