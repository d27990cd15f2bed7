"""
Tests for phone identifier normalization.
"""

import pytest

from whatsapp_relay.errors import InvalidFormat
from whatsapp_relay.routing.identifiers import ChatKind, IdentifierNormalizer

SAMPLE_INPUTS = [
    "91134083140",
    "1134083140",
    "11234567",
    "112345678",
    "9112345678",
    "5491134083140",
    "+54 9 11 3408-3140",
    "(011) 3408-3140",
    "123",
    "",
    "12345678901234",
]


class TestNormalize:
    """Tests for best-effort normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("91134083140", "5491134083140"),
            ("1134083140", "5491134083140"),
            ("11234567", "54911234567"),
            ("112345678", "549112345678"),
            ("9112345678", "549112345678"),
            ("5491134083140", "5491134083140"),
            ("+54 9 11 3408-3140", "5491134083140"),
        ],
    )
    def test_rewrite_table(self, normalizer, raw, expected):
        """Test each documented raw shape."""
        assert normalizer.normalize(raw) == expected

    def test_unknown_shape_is_returned_best_effort(self, normalizer):
        """Test unrecognized numbers come back as digits, not errors."""
        assert normalizer.normalize("12-3") == "123"
        assert normalizer.normalize("12345678901234") == "12345678901234"

    def test_empty_input(self, normalizer):
        """Test empty and None input."""
        assert normalizer.normalize("") == ""
        assert normalizer.normalize(None) == ""

    @pytest.mark.parametrize("raw", SAMPLE_INPUTS)
    def test_idempotent(self, normalizer, raw):
        """Test normalizing twice changes nothing."""
        once = normalizer.normalize(raw)
        assert normalizer.normalize(once) == once

    def test_other_country(self):
        """Test a different country configuration."""
        normalizer = IdentifierNormalizer(country_code="55", mobile_prefix="9")
        assert normalizer.normalize("87654321") == "55987654321"
        assert normalizer.normalize("5511987654321") == "5511987654321"
        assert normalizer.to_network_form("87654321") == "55987654321@c.us"

    def test_rejects_non_digit_country_code(self):
        """Test bad configuration fails fast."""
        with pytest.raises(ValueError):
            IdentifierNormalizer(country_code="+54")


class TestIsValid:
    """Tests for strict validation."""

    @pytest.mark.parametrize(
        "raw",
        ["91134083140", "1134083140", "5491123456789", "+54 9 11 2345-6789", "11234567"],
    )
    def test_valid_numbers(self, normalizer, raw):
        """Test numbers matching the regional pattern."""
        assert normalizer.is_valid(raw) is True

    @pytest.mark.parametrize("raw", ["not-a-number", "", "123", "1234567", "123456789012345"])
    def test_invalid_numbers(self, normalizer, raw):
        """Test numbers outside the regional pattern."""
        assert normalizer.is_valid(raw) is False

    @pytest.mark.parametrize("raw", [None, 5491134083140, ["5491134083140"]])
    def test_non_string_input(self, normalizer, raw):
        """Test non-strings are invalid and never raise."""
        assert normalizer.is_valid(raw) is False

    @pytest.mark.parametrize(
        "raw",
        ["91134083140", "1134083140", "5491123456789", "11234567", "112345678", "912345678"],
    )
    def test_valid_implies_private_network_form(self, normalizer, raw):
        """Test valid numbers map to a prefixed private-chat address."""
        address = normalizer.to_network_form(raw)
        assert address.startswith("54")
        assert address.endswith("@c.us")

    @pytest.mark.parametrize(
        "raw",
        ["91134083140", "1134083140", "5491123456789", "11234567", "112345678"],
    )
    def test_network_round_trip(self, normalizer, raw):
        """Test canonical -> network -> canonical is lossless."""
        canonical = normalizer.normalize(raw)
        assert normalizer.from_network_form(normalizer.to_network_form(canonical)) == canonical

    def test_parse_valid(self, normalizer):
        """Test strict parse returns the canonical form."""
        assert normalizer.parse("1134083140") == "5491134083140"

    def test_parse_invalid_raises(self, normalizer):
        """Test strict parse raises InvalidFormat."""
        with pytest.raises(InvalidFormat) as exc_info:
            normalizer.parse("abc")
        assert exc_info.value.code == "INVALID_FORMAT"


class TestNetworkForm:
    """Tests for network address conversions."""

    def test_group_address_passes_through(self, normalizer):
        """Test group addresses are not rewritten."""
        group = "120363025555555555@g.us"
        assert normalizer.to_network_form(group) == group

    def test_from_network_form(self, normalizer):
        """Test suffix stripping and prefixing."""
        assert normalizer.from_network_form("5491134083140@c.us") == "5491134083140"
        assert normalizer.from_network_form("+5491134083140@c.us") == "5491134083140"
        assert normalizer.from_network_form("1134083140@c.us") == "541134083140"
        assert normalizer.from_network_form("54120363025555@g.us") == "54120363025555"

    def test_from_network_form_empty(self, normalizer):
        """Test falsy input."""
        assert normalizer.from_network_form("") == ""
        assert normalizer.from_network_form(None) == ""

    def test_chat_kind(self, normalizer):
        """Test classification by suffix."""
        assert normalizer.chat_kind("5491134083140@c.us") == ChatKind.PRIVATE
        assert normalizer.chat_kind("120363025555@g.us") == ChatKind.GROUP
        assert normalizer.chat_kind("5491134083140") == ChatKind.UNKNOWN
        assert normalizer.chat_kind(None) == ChatKind.UNKNOWN
        assert normalizer.is_group("120363025555@g.us") is True


class TestDisplayAndBatch:
    """Tests for display formatting and batch validation."""

    def test_format_for_display(self, normalizer):
        """Test 12-digit canonical numbers are grouped."""
        assert normalizer.format_for_display("9112345678") == "+54 91 12 3456-78"

    def test_format_for_display_other_lengths(self, normalizer):
        """Test other lengths come back normalized."""
        assert normalizer.format_for_display("1134083140") == "5491134083140"

    def test_validate_many(self, normalizer):
        """Test mixed batch validation."""
        result = normalizer.validate_many(["1134083140", "bad", 42])

        assert result.total == 3
        assert result.valid_count == 1
        assert result.invalid_count == 2
        assert result.all_valid is False
        assert result.valid[0]["whatsappFormat"] == "5491134083140@c.us"
        assert result.invalid[0] == {"original": "bad", "index": 1, "reason": "invalid_format"}
        assert result.invalid[1]["reason"] == "not_a_string"

        data = result.to_dict()
        assert data["validCount"] == 1
        assert data["invalidCount"] == 2
        assert data["valid"] is False


class TestEndToEnd:
    """The documented worked example."""

    def test_local_mobile_number(self, normalizer):
        """Test 91134083140 with country code 54."""
        raw = "91134083140"

        assert normalizer.is_valid(raw) is True
        assert normalizer.normalize(raw) == "5491134083140"
        assert normalizer.to_network_form(raw) == "5491134083140@c.us"
        assert normalizer.chat_kind(normalizer.to_network_form(raw)) == ChatKind.PRIVATE
