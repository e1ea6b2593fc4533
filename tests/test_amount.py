"""
Tests for transfer amount validation.
"""

from decimal import Decimal

import pytest

from echo_wallet.core.amount import extract_amount, format_decimal, validate_amount
from echo_wallet.core.types import AmountRejection, DialogueLimits


class TestValidateAmount:
    """Accepted amounts and their canonical form."""

    @pytest.mark.parametrize(
        "text, canonical",
        [
            ("0.1", "0.1"),
            ("0.10", "0.1"),
            ("1000", "1000"),
            ("1000.0", "1000"),
            ("0.5 eth", "0.5"),
            ("1,000", "1000"),
            (".5", "0.5"),
            ("0.000001", "0.000001"),
        ],
    )
    def test_accepted(self, text, canonical):
        """Test accepted amounts canonicalize as expected."""
        result = validate_amount(text)
        assert result.valid is True
        assert result.canonical == canonical

    def test_rounds_half_up_to_six_places(self):
        """Test that extra fractional digits are rounded half-up."""
        assert validate_amount("0.1234565").canonical == "0.123457"
        assert validate_amount("0.0000015").canonical == "0.000002"

    def test_deterministic(self):
        """Test that repeated validation gives identical results."""
        assert validate_amount("0.3333333") == validate_amount("0.3333333")
        assert validate_amount("abc") == validate_amount("abc")


class TestRejections:
    """Rejected amounts carry a code and a distinct reason."""

    def test_missing(self):
        """Test empty and non-numeric input."""
        assert validate_amount("").code == AmountRejection.MISSING
        assert validate_amount(None).code == AmountRejection.MISSING
        assert validate_amount("fifty bucks").code == AmountRejection.MISSING

    def test_invalid(self):
        """Test malformed numbers."""
        assert validate_amount(".").code == AmountRejection.INVALID
        assert validate_amount("1.2.3").code == AmountRejection.INVALID

    def test_not_positive(self):
        """Test zero."""
        result = validate_amount("0")
        assert result.valid is False
        assert result.code == AmountRejection.NOT_POSITIVE

    def test_above_maximum(self):
        """Test the 1500 example: too large, with the limit in the reason."""
        result = validate_amount("1500")
        assert result.valid is False
        assert result.code == AmountRejection.ABOVE_MAXIMUM
        assert "maximum is 1000" in result.reason

    def test_below_minimum(self):
        """Test amounts under the minimum."""
        result = validate_amount("0.0000001")
        assert result.code == AmountRejection.BELOW_MINIMUM
        assert "minimum is 0.000001" in result.reason

    def test_reasons_are_distinct(self):
        """Test that range failures are distinguishable to the user."""
        assert validate_amount("1500").reason != validate_amount("0.0000001").reason

    def test_custom_limits(self):
        """Test that limits are configurable."""
        limits = DialogueLimits(min_amount=Decimal("0.01"), max_amount=Decimal("10"))
        assert validate_amount("11", limits).code == AmountRejection.ABOVE_MAXIMUM
        assert validate_amount("0.001", limits).code == AmountRejection.BELOW_MINIMUM
        assert validate_amount("10", limits).canonical == "10"

    def test_limits_must_be_ordered(self):
        """Test that min above max is refused."""
        with pytest.raises(ValueError):
            DialogueLimits(min_amount=Decimal("5"), max_amount=Decimal("1"))


class TestHelpers:
    def test_format_decimal(self):
        assert format_decimal(Decimal("0.100")) == "0.1"
        assert format_decimal(Decimal("1E+3")) == "1000"
        assert format_decimal(Decimal("0")) == "0"

    def test_extract_amount(self):
        assert extract_amount("send 0.25 eth to bob") == "0.25"
        assert extract_amount("send eth to bob") is None

    def test_extract_amount_skips_addresses(self):
        """Test that digits inside or at the start of an address are not amounts."""
        assert extract_amount("send to 0x" + "d" * 40) is None
        assert extract_amount("send to 0x742d35cc6634c0532925a3b844bc454e4438f44e 0.3") == "0.3"

    def test_extract_amount_from_sentence(self):
        assert extract_amount("0.5.") == "0.5"
        assert extract_amount("make it 0.1, no 0.2") == "0.1"
        assert extract_amount("transfer 1,000 eth") == "1000"
        assert extract_amount("1,250.5") == "1250.5"
