"""
Settings for basecore.

Environment-driven settings shared by the relay engine, API and CLI.
Values are read once and cached; call get_settings.cache_clear() after
changing the environment (tests do this).
"""

import functools
import os
from typing import Literal

from pydantic import BaseModel, Field


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    """Process-wide settings."""

    ENVIRONMENT: str = Field("development", description="Deployment environment")
    SERVICE_NAME: str = Field("whatsapp-relay", description="Service name used in logs")
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    LOG_FORMAT: Literal["text", "json"] = Field("text", description="Log output format")
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])

    # Identifier normalization
    COUNTRY_CODE: str = Field("54", description="Country prefix for canonical identifiers")
    MOBILE_PREFIX: str = Field("9", description="Mobile marker digit after the country prefix")

    # Relay target
    RELAY_WEBHOOK_URL: str = Field(
        "http://localhost:5678/webhook/whatsapp",
        description="Automation endpoint that receives relayed payloads",
    )
    WEBHOOK_TIMEOUT_MS: int = Field(10000, gt=0)
    WEBHOOK_RETRY_ATTEMPTS: int = Field(3, ge=1)
    WEBHOOK_RETRY_DELAY_MS: int = Field(1000, ge=0)

    # Messaging limits and pacing
    MESSAGE_MAX_LENGTH: int = Field(4096, gt=0)
    BULK_SEND_DELAY_MS: int = Field(1000, ge=0)

    # Session supervision
    RECONNECT_INTERVAL_MS: int = Field(30000, ge=0)
    RECONNECT_MAX_ATTEMPTS: int = Field(5, ge=0)
    SHUTDOWN_GRACE_MS: int = Field(5000, ge=0)

    # Session client
    SESSION_PROVIDER: Literal["stub", "evolution"] = Field("stub")
    EVOLUTION_API_URL: str | None = None
    EVOLUTION_API_KEY: str | None = None
    EVOLUTION_INSTANCE_NAME: str | None = None


@functools.lru_cache()
def get_settings() -> Settings:
    """
    Get settings (cached).

    Reads from environment variables; unset variables fall back to defaults.
    """
    return Settings(
        ENVIRONMENT=os.getenv("ENVIRONMENT", "development"),
        SERVICE_NAME=os.getenv("SERVICE_NAME", "whatsapp-relay"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        LOG_FORMAT=os.getenv("LOG_FORMAT", "text"),
        CORS_ORIGINS=_env_list("CORS_ORIGINS", ["*"]),
        COUNTRY_CODE=os.getenv("COUNTRY_CODE", "54"),
        MOBILE_PREFIX=os.getenv("MOBILE_PREFIX", "9"),
        RELAY_WEBHOOK_URL=os.getenv(
            "RELAY_WEBHOOK_URL", "http://localhost:5678/webhook/whatsapp"
        ),
        WEBHOOK_TIMEOUT_MS=_env_int("WEBHOOK_TIMEOUT_MS", 10000),
        WEBHOOK_RETRY_ATTEMPTS=_env_int("WEBHOOK_RETRY_ATTEMPTS", 3),
        WEBHOOK_RETRY_DELAY_MS=_env_int("WEBHOOK_RETRY_DELAY_MS", 1000),
        MESSAGE_MAX_LENGTH=_env_int("MESSAGE_MAX_LENGTH", 4096),
        BULK_SEND_DELAY_MS=_env_int("BULK_SEND_DELAY_MS", 1000),
        RECONNECT_INTERVAL_MS=_env_int("RECONNECT_INTERVAL_MS", 30000),
        RECONNECT_MAX_ATTEMPTS=_env_int("RECONNECT_MAX_ATTEMPTS", 5),
        SHUTDOWN_GRACE_MS=_env_int("SHUTDOWN_GRACE_MS", 5000),
        SESSION_PROVIDER=os.getenv("SESSION_PROVIDER", "stub"),
        EVOLUTION_API_URL=os.getenv("EVOLUTION_API_URL"),
        EVOLUTION_API_KEY=os.getenv("EVOLUTION_API_KEY"),
        EVOLUTION_INSTANCE_NAME=os.getenv("EVOLUTION_INSTANCE_NAME"),
    )
