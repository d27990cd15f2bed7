"""
Relay Delivery

Single-attempt HTTP delivery and the bounded retry loop around it.
"""

from whatsapp_relay.delivery.client import DeliveryResponse, WebhookDeliveryClient
from whatsapp_relay.delivery.dispatcher import (
    DeliveryAttempt,
    DeliveryResult,
    DeliveryState,
    RetryDispatcher,
    RetryPolicy,
)

__all__ = [
    "DeliveryResponse",
    "WebhookDeliveryClient",
    "DeliveryAttempt",
    "DeliveryResult",
    "DeliveryState",
    "RetryDispatcher",
    "RetryPolicy",
]
