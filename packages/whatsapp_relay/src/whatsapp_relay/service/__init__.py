"""
Relay Service

Payload formatting, session supervision and the relay engine.
"""

from whatsapp_relay.service.engine import BulkSendReport, RelayEngine, SendReceipt
from whatsapp_relay.service.formatter import format_payload, is_valid_inbound
from whatsapp_relay.service.supervisor import ConnectionSupervisor

__all__ = [
    "BulkSendReport",
    "ConnectionSupervisor",
    "RelayEngine",
    "SendReceipt",
    "format_payload",
    "is_valid_inbound",
]
