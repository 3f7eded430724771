"""
Tests for input validation functions.

Tests cover:
- Decimal conversion
- String validation (required)
- Numeric validation (positive, non-negative)
- Unit validation
- Record reference validation
"""

from decimal import Decimal

from src.utils import validators


class TestToDecimal:
    """Test numeric conversion."""

    def test_float_goes_through_str(self):
        assert validators.to_decimal(0.1) == Decimal("0.1")

    def test_numeric_string(self):
        assert validators.to_decimal(" 12.50 ") == Decimal("12.50")

    def test_rejects_non_numbers(self):
        assert validators.to_decimal(None) is None
        assert validators.to_decimal(True) is None
        assert validators.to_decimal("abc") is None
        assert validators.to_decimal("NaN") is None
        assert validators.to_decimal(Decimal("Infinity")) is None


class TestStringValidation:
    """Test string validation functions."""

    def test_validate_required_string_valid(self):
        assert validators.validate_required_string("Flour", "Name") == (True, "")

    def test_validate_required_string_blank(self):
        is_valid, error = validators.validate_required_string("   ", "Name")
        assert not is_valid
        assert error == "Name: This field is required"

    def test_validate_required_string_none(self):
        is_valid, _ = validators.validate_required_string(None)
        assert not is_valid

    def test_sanitize_string(self):
        assert validators.sanitize_string("  Milk ") == "Milk"
        assert validators.sanitize_string("   ") is None
        assert validators.sanitize_string(None) is None


class TestNumericValidation:
    """Test numeric validation functions."""

    def test_positive_number(self):
        assert validators.validate_positive_number(Decimal("0.25"))[0]
        assert validators.validate_positive_number("3")[0]

    def test_positive_number_rejects_zero_and_negative(self):
        is_valid, error = validators.validate_positive_number(0, "Quantity")
        assert not is_valid
        assert error == "Quantity: Must be greater than zero"
        assert not validators.validate_positive_number(-1)[0]

    def test_positive_number_missing(self):
        is_valid, error = validators.validate_positive_number(None, "Quantity")
        assert not is_valid
        assert "required" in error

    def test_non_negative_number_allows_zero(self):
        assert validators.validate_non_negative_number(0)[0]
        assert not validators.validate_non_negative_number(-0.01)[0]
        assert not validators.validate_non_negative_number("free")[0]


class TestUnitValidation:
    """Test unit validation."""

    def test_known_units(self):
        assert validators.validate_unit("kg")[0]
        assert validators.validate_unit("FL OZ")[0]

    def test_unknown_unit(self):
        is_valid, error = validators.validate_unit("crate", "Measurement unit")
        assert not is_valid
        assert error == "Measurement unit: Invalid unit of measurement"


class TestReferenceValidation:
    """Test record reference validation."""

    def test_positive_int(self):
        assert validators.validate_reference_id(7) == (True, "")

    def test_rejects_bool_string_and_non_positive(self):
        assert not validators.validate_reference_id(True)[0]
        assert not validators.validate_reference_id("7")[0]
        assert not validators.validate_reference_id(0)[0]

    def test_missing(self):
        is_valid, error = validators.validate_reference_id(None, "Supplier")
        assert not is_valid
        assert error == "Supplier: This field is required"
