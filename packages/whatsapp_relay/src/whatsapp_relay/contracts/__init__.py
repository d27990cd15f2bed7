"""
Relay Contracts

Session event names, connection status, and relay payload models.
"""

from whatsapp_relay.contracts.event_types import SessionEvent, SessionStatus
from whatsapp_relay.contracts.payloads import (
    ChatBlock,
    ContactBlock,
    MediaBlock,
    MetadataBlock,
    QuotedBlock,
    RelayPayload,
)

__all__ = [
    "SessionEvent",
    "SessionStatus",
    "ChatBlock",
    "ContactBlock",
    "MediaBlock",
    "MetadataBlock",
    "QuotedBlock",
    "RelayPayload",
]
