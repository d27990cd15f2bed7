"""
Session Clients

Session client implementations.
Supports Evolution API (production) and Stub (development and tests).
"""

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

__all__ = [
    "ChatInfo",
    "ContactInfo",
    "InboundEvent",
    "LastMessage",
    "MediaInfo",
    "MessageType",
    "ProviderError",
    "QuotedMessage",
    "SentMessage",
    "SessionClient",
]
