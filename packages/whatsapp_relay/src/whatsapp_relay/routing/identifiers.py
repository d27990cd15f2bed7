"""
Identifier Normalizer

Pure conversions between raw phone numbers and WhatsApp identifiers.

Three forms are in play:
- raw: whatever a user or API caller typed ("+54 9 11 3408-3140", "1134083140")
- canonical: digits only, starting with the country code ("5491134083140")
- network: canonical plus an address suffix ("5491134083140@c.us")

normalize() is best-effort and never raises; it is applied to addresses
coming from the session, which are always well-formed. is_valid() is the
stricter predicate applied to user input before building outbound
addresses.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from whatsapp_relay.errors import InvalidFormat

logger = logging.getLogger(__name__)

PRIVATE_SUFFIX = "@c.us"
GROUP_SUFFIX = "@g.us"

_NON_DIGITS = re.compile(r"\D")


class ChatKind(str, Enum):
    """Kind of chat a network address points to."""

    PRIVATE = "private"
    GROUP = "group"
    UNKNOWN = "unknown"


@dataclass
class NumberValidation:
    """Result of validating a batch of phone numbers."""

    total: int
    valid: list[dict[str, str]] = field(default_factory=list)
    invalid: list[dict[str, Any]] = field(default_factory=list)

    @property
    def valid_count(self) -> int:
        return len(self.valid)

    @property
    def invalid_count(self) -> int:
        return len(self.invalid)

    @property
    def all_valid(self) -> bool:
        return self.total > 0 and not self.invalid

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.all_valid,
            "total": self.total,
            "validCount": self.valid_count,
            "invalidCount": self.invalid_count,
            "validNumbers": self.valid,
            "invalidNumbers": self.invalid,
        }


class IdentifierNormalizer:
    """
    Converts phone numbers between raw, canonical and network forms.

    Rewrite rules applied by normalize() once non-digits are stripped
    (cc = country code, m = mobile prefix):

        starts with cc                  -> unchanged
        starts with m, 9-11 digits      -> cc + digits
        8-10 digits                     -> cc + m + digits
        anything else                   -> digits (best effort)
    """

    def __init__(
        self,
        country_code: str = "54",
        mobile_prefix: str = "9",
        min_subscriber_digits: int = 8,
        max_subscriber_digits: int = 10,
    ):
        if not country_code.isdigit():
            raise ValueError(f"country_code must be digits, got {country_code!r}")
        if mobile_prefix and not mobile_prefix.isdigit():
            raise ValueError(f"mobile_prefix must be digits, got {mobile_prefix!r}")

        self.country_code = country_code
        self.mobile_prefix = mobile_prefix
        self.min_subscriber_digits = min_subscriber_digits
        self.max_subscriber_digits = max_subscriber_digits
        self._pattern = re.compile(
            rf"^(?:{re.escape(country_code)})?"
            rf"(?:{re.escape(mobile_prefix)})?"
            rf"\d{{{min_subscriber_digits},{max_subscriber_digits}}}$"
        )

    @staticmethod
    def digits(raw: Any) -> str:
        """Strip everything but digits."""
        if not raw:
            return ""
        return _NON_DIGITS.sub("", str(raw))

    def normalize(self, raw: Any) -> str:
        """
        Reduce a raw phone number to its canonical form.

        Never raises; unrecognized shapes come back as their digits.
        """
        digits = self.digits(raw)
        if not digits:
            return ""

        if digits.startswith(self.country_code):
            return digits

        length = len(digits)
        subscriber_range = range(self.min_subscriber_digits, self.max_subscriber_digits + 1)

        if self.mobile_prefix and digits.startswith(self.mobile_prefix):
            with_prefix_range = range(
                self.min_subscriber_digits + len(self.mobile_prefix),
                self.max_subscriber_digits + len(self.mobile_prefix) + 1,
            )
            if length in with_prefix_range:
                return self.country_code + digits

        if length in subscriber_range:
            return self.country_code + self.mobile_prefix + digits

        return digits

    def is_valid(self, raw: Any) -> bool:
        """Check a user-supplied number against the regional pattern."""
        if not isinstance(raw, str):
            return False
        digits = self.digits(raw)
        if not digits:
            return False
        return bool(self._pattern.match(digits))

    def parse(self, raw: Any) -> str:
        """
        Strict normalization.

        Raises:
            InvalidFormat: If the input does not look like a phone number
        """
        if not self.is_valid(raw):
            raise InvalidFormat(
                f"Unrecognized phone number: {raw!r}",
                details={"input": raw if isinstance(raw, str) else repr(raw)},
            )
        return self.normalize(raw)

    def to_network_form(self, raw: Any) -> str:
        """
        Build the private-chat network address for a number.

        Group addresses pass through untouched; this never builds one.
        """
        if isinstance(raw, str) and raw.endswith(GROUP_SUFFIX):
            return raw
        return self.normalize(raw) + PRIVATE_SUFFIX

    def from_network_form(self, address: Any) -> str:
        """Recover the canonical number from a network address."""
        if not address:
            return ""
        number = str(address).replace(PRIVATE_SUFFIX, "").replace(GROUP_SUFFIX, "")
        number = number.lstrip("+")
        if not number.startswith(self.country_code):
            number = self.country_code + number
        return number

    @staticmethod
    def chat_kind(address: Any) -> ChatKind:
        """Classify a network address by its suffix."""
        if not isinstance(address, str):
            return ChatKind.UNKNOWN
        if address.endswith(GROUP_SUFFIX):
            return ChatKind.GROUP
        if address.endswith(PRIVATE_SUFFIX):
            return ChatKind.PRIVATE
        return ChatKind.UNKNOWN

    def is_group(self, address: Any) -> bool:
        return self.chat_kind(address) == ChatKind.GROUP

    def format_for_display(self, raw: Any) -> str:
        """
        Human-readable form, e.g. "+54 91 12 3456-78" for 549112345678.

        Only canonical numbers with a 10-digit national part are grouped;
        anything else is returned normalized.
        """
        normalized = self.normalize(raw)
        cc = self.country_code
        if len(normalized) == len(cc) + 10 and normalized.startswith(cc):
            national = normalized[len(cc):]
            return f"+{cc} {national[0:2]} {national[2:4]} {national[4:8]}-{national[8:10]}"
        return normalized

    def validate_many(self, numbers: list[Any]) -> NumberValidation:
        """Validate a batch of numbers without raising on bad entries."""
        result = NumberValidation(total=len(numbers))

        for index, number in enumerate(numbers):
            if self.is_valid(number):
                result.valid.append({
                    "original": number,
                    "normalized": self.normalize(number),
                    "whatsappFormat": self.to_network_form(number),
                })
            else:
                result.invalid.append({
                    "original": number,
                    "index": index,
                    "reason": "invalid_format" if isinstance(number, str) else "not_a_string",
                })

        logger.debug(
            f"Validated {result.total} numbers",
            extra={"valid": result.valid_count, "invalid": result.invalid_count},
        )
        return result
