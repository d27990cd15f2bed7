"""
Retry Dispatcher

Delivers relay payloads with bounded, linearly backed-off retries.

Each payload gets its own attempt loop:

    attempt 1 -> fail -> sleep(base * 1) -> attempt 2 -> fail -> sleep(base * 2) -> ...

After max_attempts failures the payload is dropped and an exhaustion is
logged. Nothing is requeued or persisted. Distinct payloads are delivered
concurrently via submit(); attempts for one payload are strictly
sequential.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from whatsapp_relay.contracts.payloads import RelayPayload
from whatsapp_relay.delivery.client import WebhookDeliveryClient
from whatsapp_relay.errors import TransientFailure

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Linear backoff policy.

    delay before attempt n+1 = base_delay * n
    """

    max_attempts: int = 3
    base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def get_delay(self, attempt: int) -> float:
        """
        Delay after a failed attempt.

        Args:
            attempt: Number of the attempt that just failed (1-indexed)
        """
        return self.base_delay * attempt


class DeliveryState(str, Enum):
    """Delivery state of a single payload."""

    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass
class DeliveryAttempt:
    """Outcome of one attempt."""

    number: int
    outcome: str  # succeeded, transient_failure
    status_code: int | None = None
    error: str | None = None


@dataclass
class DeliveryResult:
    """All attempts for one payload, and where they ended up."""

    message_id: str
    state: DeliveryState = DeliveryState.ATTEMPTING
    attempts: list[DeliveryAttempt] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == DeliveryState.SUCCEEDED


class RetryDispatcher:
    """Bounded-retry delivery of relay payloads to one target URL."""

    def __init__(
        self,
        client: WebhookDeliveryClient,
        target_url: str,
        policy: RetryPolicy | None = None,
        timeout: float | None = None,
        sleep: SleepFunc | None = None,
    ):
        self.client = client
        self.target_url = target_url
        self.policy = policy or RetryPolicy()
        self.timeout = timeout
        self._sleep = sleep or asyncio.sleep
        self._in_flight: set[asyncio.Task] = set()
        self.stats = {"delivered": 0, "exhausted": 0, "attempts": 0}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def dispatch(self, payload: RelayPayload) -> DeliveryResult:
        """Deliver one payload, retrying transient failures up to the policy limit."""
        result = DeliveryResult(message_id=payload.message_id)
        max_attempts = self.policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            self.stats["attempts"] += 1
            try:
                response = await self.client.deliver(self.target_url, payload, timeout=self.timeout)
            except TransientFailure as e:
                result.attempts.append(
                    DeliveryAttempt(
                        number=attempt,
                        outcome="transient_failure",
                        status_code=e.status_code,
                        error=str(e),
                    )
                )
                logger.warning(
                    f"Relay attempt {attempt}/{max_attempts} failed: {e}",
                    extra={"message_id": payload.message_id, "code": e.code},
                )
                if attempt < max_attempts:
                    await self._sleep(self.policy.get_delay(attempt))
                continue

            result.attempts.append(
                DeliveryAttempt(number=attempt, outcome="succeeded", status_code=response.status_code)
            )
            result.state = DeliveryState.SUCCEEDED
            self.stats["delivered"] += 1
            logger.info(
                "Relayed message to target",
                extra={"message_id": payload.message_id, "attempt": attempt},
            )
            return result

        result.state = DeliveryState.EXHAUSTED
        self.stats["exhausted"] += 1
        logger.error(
            f"Relay delivery exhausted after {max_attempts} attempts, dropping message",
            extra={"message_id": payload.message_id, "attempts": max_attempts},
        )
        return result

    def submit(self, payload: RelayPayload) -> asyncio.Task:
        """Start delivering a payload in the background."""
        task = asyncio.create_task(self.dispatch(payload), name=f"relay:{payload.message_id}")
        self._in_flight.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Relay delivery crashed: {error}",
                extra={"task": task.get_name()},
                exc_info=error,
            )

    async def drain(self, timeout: float) -> int:
        """
        Wait for in-flight deliveries, abandoning whatever is left after timeout.

        Returns:
            Number of deliveries abandoned
        """
        if not self._in_flight:
            return 0

        pending = set(self._in_flight)
        _, still_pending = await asyncio.wait(pending, timeout=timeout)

        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)
            logger.warning(
                f"Abandoned {len(still_pending)} in-flight relay deliveries at shutdown",
                extra={"abandoned": len(still_pending)},
            )

        return len(still_pending)
