"""
Evolution API Webhook Utilities

Helper functions for processing Evolution API webhooks and converting
between Evolution JIDs and the relay's network addresses.
"""

import logging
from typing import Any

from whatsapp_relay.routing.identifiers import GROUP_SUFFIX, PRIVATE_SUFFIX

logger = logging.getLogger(__name__)

EVOLUTION_PRIVATE_SUFFIX = "@s.whatsapp.net"

QRCODE_UPDATED = "qrcode.updated"
CONNECTION_UPDATE = "connection.update"
MESSAGES_UPSERT = "messages.upsert"


def normalize_event_name(event: str | None) -> str:
    """
    Normalize an Evolution event name.

    Evolution sends either "messages.upsert" or "MESSAGES_UPSERT" depending
    on version and webhook settings.
    """
    if not event:
        return ""
    return event.strip().lower().replace("_", ".")


def extract_instance_name(payload: dict[str, Any]) -> str | None:
    """Extract instance name from webhook payload."""
    return payload.get("instance")


def is_message_webhook(payload: dict[str, Any]) -> bool:
    """Check if this webhook carries an inbound message."""
    return normalize_event_name(payload.get("event")) == MESSAGES_UPSERT


def is_connection_webhook(payload: dict[str, Any]) -> bool:
    """Check if this webhook carries a session lifecycle change."""
    return normalize_event_name(payload.get("event")) in (QRCODE_UPDATED, CONNECTION_UPDATE)


def jid_to_address(jid: str | None) -> str:
    """Convert an Evolution JID to a relay network address."""
    if not jid:
        return ""
    if jid.endswith(EVOLUTION_PRIVATE_SUFFIX):
        return jid[: -len(EVOLUTION_PRIVATE_SUFFIX)] + PRIVATE_SUFFIX
    return jid


def address_to_jid(address: str) -> str:
    """Convert a relay network address to an Evolution JID."""
    if address.endswith(PRIVATE_SUFFIX):
        return address[: -len(PRIVATE_SUFFIX)] + EVOLUTION_PRIVATE_SUFFIX
    return address


def address_to_number(address: str) -> str:
    """Evolution's sendText takes bare numbers for private chats and JIDs for groups."""
    if address.endswith(GROUP_SUFFIX):
        return address
    return address.split("@")[0]


def validate_api_key(request_headers: dict[str, str], expected_api_key: str) -> bool:
    """
    Validate API key from request headers.

    Evolution API can send API key in:
    - Header: "apikey"
    - Header: "Authorization: Bearer <key>"
    """
    apikey_header = request_headers.get("apikey") or request_headers.get("Apikey")
    if apikey_header == expected_api_key:
        return True

    auth_header = request_headers.get("authorization") or request_headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
        if token == expected_api_key:
            return True

    return False
