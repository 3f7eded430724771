"""
Unit tests for the unit conversion system.

Tests cover:
- Unit type detection
- Standard unit conversions (weight, volume, count)
- Edge cases and error handling
"""

from decimal import Decimal

from src.services.unit_converter import (
    get_conversion_table,
    get_unit_type,
    units_compatible,
    convert_standard_units,
    WEIGHT_TO_GRAMS,
    VOLUME_TO_ML,
)


# ============================================================================
# Unit Type Detection Tests
# ============================================================================


class TestUnitTypeDetection:
    """Tests for unit type and table lookup."""

    def test_weight_volume_count(self):
        assert get_unit_type("kg") == "weight"
        assert get_unit_type("cl") == "volume"
        assert get_unit_type("dozen") == "count"

    def test_unknown_unit(self):
        assert get_unit_type("crate") == "unknown"
        assert get_conversion_table("crate") is None

    def test_lookup_is_case_insensitive(self):
        assert get_conversion_table("KG") is WEIGHT_TO_GRAMS
        assert get_conversion_table("Ml") is VOLUME_TO_ML

    def test_units_compatible(self):
        assert units_compatible("g", "lb")
        assert not units_compatible("g", "ml")
        assert not units_compatible("crate", "crate")


# ============================================================================
# Standard Conversion Tests
# ============================================================================


class TestStandardConversions:
    """Tests for convert_standard_units()."""

    def test_grams_to_kilograms(self):
        success, value, error = convert_standard_units(Decimal("250"), "g", "kg")
        assert success
        assert value == Decimal("0.25")
        assert error == ""

    def test_centilitres_to_litres(self):
        success, value, _ = convert_standard_units(Decimal("33"), "cl", "l")
        assert success
        assert value == Decimal("0.33")

    def test_dozen_to_units(self):
        success, value, _ = convert_standard_units(2, "dozen", "unit")
        assert success
        assert value == Decimal("24")

    def test_same_unknown_unit_converts(self):
        """A unit outside the tables still converts to itself."""
        success, value, _ = convert_standard_units(Decimal("3"), "crate", "crate")
        assert success
        assert value == Decimal("3")

    def test_incompatible_units_fail(self):
        success, value, error = convert_standard_units(Decimal("1"), "kg", "l")
        assert not success
        assert value == Decimal("0")
        assert "incompatible" in error

    def test_unknown_unit_fails(self):
        success, _, error = convert_standard_units(Decimal("1"), "crate", "kg")
        assert not success
        assert "Unknown unit" in error

    def test_negative_value_fails(self):
        success, _, error = convert_standard_units(Decimal("-1"), "g", "kg")
        assert not success
        assert "negative" in error
