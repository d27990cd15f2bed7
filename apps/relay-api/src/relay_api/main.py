"""
WhatsApp Relay API

FastAPI app in front of the relay engine.

Responsibilities:
- Start the WhatsApp session on startup, tear it down on shutdown
- Expose outbound send / bulk send and phone validation
- Expose session status, chat listing and the pairing token (QR)
- Receive Evolution API gateway webhooks and feed them to the session
"""

import json
import logging
import os
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from basecore.logging import setup_logging
from basecore.settings import Settings, get_settings
from whatsapp_relay.config import RelayConfig
from whatsapp_relay.errors import (
    InvalidFormat,
    InvalidRecipient,
    MessageTooLong,
    NotConnected,
    RelayError,
    SendFailed,
    SessionUnavailable,
)
from whatsapp_relay.providers.base import ProviderError, SessionClient
from whatsapp_relay.providers.evolution import (
    EvolutionSessionClient,
    extract_instance_name,
    validate_api_key,
)
from whatsapp_relay.providers.stub import StubSessionClient
from whatsapp_relay.routing.identifiers import ChatKind
from whatsapp_relay.service.engine import RelayEngine

setup_logging()
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidRecipient: 400,
    MessageTooLong: 400,
    InvalidFormat: 400,
    NotConnected: 503,
    SendFailed: 502,
    SessionUnavailable: 502,
}


class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SendMessageRequest(_RequestModel):
    to: str = Field(..., min_length=1, description="Recipient phone number")
    message: str = Field(..., min_length=1, description="Message text")
    reply_to: str | None = Field(None, alias="replyTo", description="Message ID to quote")


class SendBulkRequest(_RequestModel):
    numbers: list[Any] = Field(..., min_length=1, description="Recipient phone numbers")
    message: str = Field(..., min_length=1, description="Message text")
    delay: int | None = Field(None, ge=0, description="Pause between sends (ms)")


class ValidatePhoneRequest(_RequestModel):
    phone_number: str | None = Field(None, alias="phoneNumber")
    phone_numbers: list[Any] | None = Field(None, alias="phoneNumbers")


def get_session_client(settings: Settings) -> SessionClient:
    """Get the session client configured by SESSION_PROVIDER."""
    if settings.SESSION_PROVIDER == "evolution":
        if not (settings.EVOLUTION_API_URL and settings.EVOLUTION_API_KEY and settings.EVOLUTION_INSTANCE_NAME):
            raise ValueError(
                "Evolution provider requires EVOLUTION_API_URL, EVOLUTION_API_KEY and EVOLUTION_INSTANCE_NAME"
            )
        return EvolutionSessionClient(
            api_url=settings.EVOLUTION_API_URL,
            api_key=settings.EVOLUTION_API_KEY,
            instance_name=settings.EVOLUTION_INSTANCE_NAME,
        )
    return StubSessionClient()


def _ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": message}},
    )


def create_app(
    engine: RelayEngine | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the API around a relay engine.

    Args:
        engine: Engine to serve (built from settings when omitted)
        settings: Settings (defaults to get_settings())
    """
    settings = settings or get_settings()
    if engine is None:
        engine = RelayEngine(get_session_client(settings), RelayConfig.from_settings(settings))

    app = FastAPI(
        title="WhatsApp Relay",
        description="Relays WhatsApp messages to an automation webhook and sends messages on its behalf",
        version="1.0.0",
    )
    app.state.engine = engine
    app.state.webhook_api_key = settings.EVOLUTION_API_KEY

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup():
        """Connect the WhatsApp session."""
        try:
            await app.state.engine.start()
            logger.info("WhatsApp relay service started")
        except Exception as e:
            logger.error(f"Failed to start WhatsApp session: {e}")
            raise

    @app.on_event("shutdown")
    async def shutdown():
        """Stop the session and drain in-flight relay deliveries."""
        await app.state.engine.shutdown()

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        status_code = ERROR_STATUS.get(type(exc), 500)
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": exc.to_dict()},
        )

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        logger.error(f"Unhandled session client error: {exc}", extra={"code": exc.code})
        return _error(502, "SESSION_ERROR", str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error(400, "INVALID_REQUEST", message)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "service": "whatsapp-relay"}

    @app.get("/status")
    async def status():
        """Session and delivery status."""
        return _ok(app.state.engine.get_status())

    @app.post("/send-message")
    async def send_message(body: SendMessageRequest):
        """Send a single text message."""
        receipt = await app.state.engine.send_message(body.to, body.message, reply_to=body.reply_to)
        return _ok(receipt.to_dict())

    @app.post("/send-bulk")
    async def send_bulk(body: SendBulkRequest):
        """
        Send one text to several numbers.

        Always answers 200 with the aggregate report, even if every send failed.
        """
        report = await app.state.engine.send_bulk(body.numbers, body.message, delay_ms=body.delay)
        return _ok(report.to_dict())

    @app.post("/validate-phone")
    async def validate_phone(body: ValidatePhoneRequest):
        """Validate one number (phoneNumber) or a batch (phoneNumbers)."""
        engine: RelayEngine = app.state.engine

        if body.phone_numbers is not None:
            return _ok(engine.normalizer.validate_many(body.phone_numbers).to_dict())

        if not body.phone_number:
            return _error(400, "INVALID_REQUEST", "phoneNumber or phoneNumbers is required")

        number = body.phone_number
        is_valid = engine.is_valid(number)
        return _ok({
            "phoneNumber": number,
            "isValid": is_valid,
            "normalized": engine.normalize(number),
            "whatsappFormat": engine.to_network_form(number) if is_valid else None,
            "displayFormat": engine.normalizer.format_for_display(number),
        })

    @app.get("/contact/{phone}")
    async def get_contact(phone: str):
        """Contact details for a phone number."""
        return _ok(await app.state.engine.get_contact_info(phone))

    @app.get("/chats")
    async def list_chats(
        chat_type: Literal["group", "private"] | None = Query(
            None, alias="type", description="Only groups or only private chats"
        ),
        limit: int = Query(50, ge=1, description="Maximum number of chats returned"),
    ):
        """Chats known to the session, with unread count and last message."""
        kind = ChatKind(chat_type) if chat_type else None
        return _ok(await app.state.engine.list_chats(kind=kind, limit=limit))

    @app.get("/qr")
    async def get_qr():
        """Current pairing token, if the session is waiting to be paired."""
        engine: RelayEngine = app.state.engine

        if engine.supervisor.is_connected:
            return _ok({"connected": True, "qr": None})

        token = engine.get_pairing_token()
        if token is None:
            return _error(404, "NO_PAIRING_TOKEN", "No pairing token available yet")

        return _ok({"connected": False, "qr": token})

    @app.post("/qr-regenerate")
    async def regenerate_qr():
        """Unpair the session and request a fresh pairing token."""
        engine: RelayEngine = app.state.engine

        if engine.supervisor.is_connected:
            return _error(409, "ALREADY_CONNECTED", "Session is already connected")

        token = await engine.regenerate_pairing()
        if token is None:
            return _error(503, "NO_PAIRING_TOKEN", "Session client produced no pairing token")

        return _ok({"connected": False, "qr": token})

    @app.post("/webhook/evolution")
    async def evolution_webhook(request: Request):
        """
        Receive a webhook from the Evolution API gateway.

        Flow:
        1. Validate API key (when configured)
        2. Check the webhook is for our instance
        3. Translate into session events (lifecycle or inbound message)
        """
        engine: RelayEngine = app.state.engine
        client = engine.supervisor.client

        if not isinstance(client, EvolutionSessionClient):
            raise HTTPException(status_code=404, detail="Evolution provider not configured")

        api_key = app.state.webhook_api_key
        if api_key and not validate_api_key(dict(request.headers), api_key):
            logger.warning("Invalid Evolution API key")
            raise HTTPException(status_code=403, detail="Invalid API key")

        body = await request.body()
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON payload")
            raise HTTPException(status_code=400, detail="Invalid JSON")

        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")

        instance = extract_instance_name(payload)
        if instance and instance != client.instance_name:
            logger.debug(f"Ignoring webhook for instance {instance}")
            return {"status": "ignored", "reason": "unknown_instance"}

        events = await client.handle_webhook(payload)
        return {"status": "accepted", "events": [str(event) for event in events]}

    return app


app = create_app()


def run() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8080")))


if __name__ == "__main__":
    run()
