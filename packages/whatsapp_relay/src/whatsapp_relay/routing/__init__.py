"""
Identifier Routing

Conversions between user-supplied phone numbers, canonical identifiers
and WhatsApp network addresses.
"""

from whatsapp_relay.routing.identifiers import (
    GROUP_SUFFIX,
    PRIVATE_SUFFIX,
    ChatKind,
    IdentifierNormalizer,
    NumberValidation,
)

__all__ = [
    "GROUP_SUFFIX",
    "PRIVATE_SUFFIX",
    "ChatKind",
    "IdentifierNormalizer",
    "NumberValidation",
]
