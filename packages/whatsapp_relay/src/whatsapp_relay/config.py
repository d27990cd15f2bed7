"""
Relay Engine Configuration

Typed configuration consumed by the engine. Built from basecore settings
(milliseconds in the environment, seconds here).
"""

from pydantic import BaseModel, ConfigDict, Field

from basecore.settings import Settings


class RelayConfig(BaseModel):
    """Configuration for a RelayEngine instance."""

    model_config = ConfigDict(frozen=True)

    relay_url: str = Field(..., description="Relay target URL")
    country_code: str = Field("54", description="Country prefix for canonical identifiers")
    mobile_prefix: str = Field("9", description="Mobile marker digit")
    delivery_timeout: float = Field(10.0, gt=0, description="Per-attempt timeout (seconds)")
    max_delivery_attempts: int = Field(3, ge=1, description="Attempts per relay payload")
    delivery_base_delay: float = Field(1.0, ge=0, description="Linear backoff base (seconds)")
    max_message_length: int = Field(4096, gt=0, description="Max inbound/outbound text length")
    reconnect_interval: float = Field(30.0, ge=0, description="Delay before a reconnect (seconds)")
    max_reconnect_attempts: int = Field(5, ge=0, description="Reconnects before giving up")
    bulk_send_delay: float = Field(1.0, ge=0, description="Pause between bulk sends (seconds)")
    shutdown_grace: float = Field(5.0, ge=0, description="Drain window for in-flight deliveries")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RelayConfig":
        """Build config from process settings."""
        return cls(
            relay_url=settings.RELAY_WEBHOOK_URL,
            country_code=settings.COUNTRY_CODE,
            mobile_prefix=settings.MOBILE_PREFIX,
            delivery_timeout=settings.WEBHOOK_TIMEOUT_MS / 1000,
            max_delivery_attempts=settings.WEBHOOK_RETRY_ATTEMPTS,
            delivery_base_delay=settings.WEBHOOK_RETRY_DELAY_MS / 1000,
            max_message_length=settings.MESSAGE_MAX_LENGTH,
            reconnect_interval=settings.RECONNECT_INTERVAL_MS / 1000,
            max_reconnect_attempts=settings.RECONNECT_MAX_ATTEMPTS,
            bulk_send_delay=settings.BULK_SEND_DELAY_MS / 1000,
            shutdown_grace=settings.SHUTDOWN_GRACE_MS / 1000,
        )
