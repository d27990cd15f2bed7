"""
Session Event Types

Lifecycle and message events emitted by session clients, and the
connection status derived from them.
"""

from enum import Enum


class SessionEvent(str, Enum):
    """
    Events a SessionClient emits.

    - PAIRING_TOKEN: a new pairing token (QR payload) is available
    - AUTHENTICATED: credentials accepted, session not yet usable
    - AUTH_FAILURE: credentials rejected
    - READY: session is connected and can send/receive
    - MESSAGE: inbound message received
    - DISCONNECTED: session dropped
    """

    PAIRING_TOKEN = "pairing-token"
    AUTHENTICATED = "authenticated"
    AUTH_FAILURE = "auth-failure"
    READY = "ready"
    MESSAGE = "message"
    DISCONNECTED = "disconnected"

    def __str__(self) -> str:
        return self.value


class SessionStatus(str, Enum):
    """Connection status tracked by the supervisor."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting-pairing"
    CONNECTED = "connected"

    def __str__(self) -> str:
        return self.value
