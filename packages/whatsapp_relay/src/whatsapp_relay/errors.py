"""
Relay Errors

Error taxonomy for the relay engine. Every error carries a machine code and
a retryable flag so callers (the HTTP layer, the CLI) can decide what to do.
"""

from typing import Any


class RelayError(Exception):
    """Base error for the relay engine."""

    default_code = "RELAY_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class InvalidRecipient(RelayError):
    """Outbound recipient failed identifier validation."""

    default_code = "INVALID_RECIPIENT"


class MessageTooLong(RelayError):
    """Outbound text exceeds the configured maximum length."""

    default_code = "MESSAGE_TOO_LONG"


class NotConnected(RelayError):
    """Session is not connected; the caller may retry later."""

    default_code = "NOT_CONNECTED"

    def __init__(self, message: str = "WhatsApp session is not connected", **kwargs: Any):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class SendFailed(RelayError):
    """The session client rejected or failed an outbound send."""

    default_code = "SEND_FAILED"


class TransientFailure(RelayError):
    """A single relay delivery attempt failed (timeout, network, non-2xx)."""

    default_code = "TRANSIENT_FAILURE"

    def __init__(self, message: str, status_code: int | None = None, **kwargs: Any):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)
        self.status_code = status_code


class InvalidFormat(RelayError):
    """Input could not be recognized as a phone identifier."""

    default_code = "INVALID_FORMAT"


class SessionUnavailable(RelayError):
    """The session client failed a query (chat listing, lookups)."""

    default_code = "SESSION_ERROR"

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)
