"""
Webhook Delivery Client

Makes exactly one HTTP POST of a relay payload to the relay target.
Retrying is the dispatcher's job.
"""

import logging
from dataclasses import dataclass

import httpx

from whatsapp_relay import __version__
from whatsapp_relay.contracts.payloads import RelayPayload
from whatsapp_relay.errors import TransientFailure

logger = logging.getLogger(__name__)

USER_AGENT = f"whatsapp-relay/{__version__}"


@dataclass
class DeliveryResponse:
    """Successful (2xx) response from the relay target."""

    status_code: int
    body: str


class WebhookDeliveryClient:
    """
    HTTP client for the relay target.

    Every failure mode (timeout, network error, any non-2xx status) is
    reported the same way, as TransientFailure.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize delivery client.

        Args:
            timeout: Default per-request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": USER_AGENT,
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def deliver(
        self,
        target_url: str,
        payload: RelayPayload,
        timeout: float | None = None,
    ) -> DeliveryResponse:
        """
        POST a payload once.

        Args:
            target_url: Relay target URL
            payload: Payload to send
            timeout: Override the default timeout (seconds)

        Returns:
            DeliveryResponse for a 2xx answer

        Raises:
            TransientFailure: On timeout, network error or non-2xx status
        """
        client = await self._get_client()

        try:
            response = await client.post(
                target_url,
                content=payload.to_json(),
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransientFailure(f"Relay target timed out: {e}", code="timeout") from e
        except httpx.RequestError as e:
            raise TransientFailure(f"Relay target unreachable: {e}", code="network") from e

        if not response.is_success:
            raise TransientFailure(
                f"Relay target answered {response.status_code}",
                code="http_error",
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )

        logger.debug(
            "Relay target accepted payload",
            extra={"message_id": payload.message_id, "status_code": response.status_code},
        )
        return DeliveryResponse(status_code=response.status_code, body=response.text)
