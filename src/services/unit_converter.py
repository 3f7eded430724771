"""
Unit conversion for ingredient quantities.

This module provides:
- Standard unit conversions (weight, volume, count)
- Unit type detection and compatibility checks

Conversion Strategy:
- Weight units convert through grams (base unit)
- Volume units convert through milliliters (base unit)
- Count units convert through single items (base unit)

All arithmetic is Decimal so converted quantities can feed cost
calculations without float drift.
"""

from decimal import Decimal
from typing import Optional, Tuple


# ============================================================================
# Standard Conversion Tables
# ============================================================================

WEIGHT_TO_GRAMS = {
    "g": Decimal("1"),
    "kg": Decimal("1000"),
    "oz": Decimal("28.3495"),
    "lb": Decimal("453.592"),
}

VOLUME_TO_ML = {
    "ml": Decimal("1"),
    "cl": Decimal("10"),
    "l": Decimal("1000"),
    "tsp": Decimal("4.92892"),
    "tbsp": Decimal("14.7868"),
    "fl oz": Decimal("29.5735"),
    "cup": Decimal("236.588"),
    "pt": Decimal("473.176"),
    "qt": Decimal("946.353"),
    "gal": Decimal("3785.41"),
}

COUNT_TO_ITEMS = {
    "unit": Decimal("1"),
    "each": Decimal("1"),
    "piece": Decimal("1"),
    "dozen": Decimal("12"),
}


def get_conversion_table(unit: str) -> Optional[dict]:
    """
    Get the appropriate conversion table for a unit.

    Args:
        unit: Unit string (e.g., "oz", "cup", "dozen")

    Returns:
        Conversion table dict, or None if unit not found
    """
    unit_lower = unit.lower()

    if unit_lower in WEIGHT_TO_GRAMS:
        return WEIGHT_TO_GRAMS
    elif unit_lower in VOLUME_TO_ML:
        return VOLUME_TO_ML
    elif unit_lower in COUNT_TO_ITEMS:
        return COUNT_TO_ITEMS

    return None


def get_unit_type(unit: str) -> str:
    """
    Determine the type of a unit.

    Returns:
        Unit type: "weight", "volume", "count", or "unknown"
    """
    table = get_conversion_table(unit)
    if table is WEIGHT_TO_GRAMS:
        return "weight"
    if table is VOLUME_TO_ML:
        return "volume"
    if table is COUNT_TO_ITEMS:
        return "count"
    return "unknown"


def units_compatible(unit1: str, unit2: str) -> bool:
    """
    Check if two units are of the same known type and can be converted.
    """
    type1 = get_unit_type(unit1)
    return type1 != "unknown" and type1 == get_unit_type(unit2)


def convert_standard_units(
    value: Decimal, from_unit: str, to_unit: str
) -> Tuple[bool, Decimal, str]:
    """
    Convert between standard units of the same type.

    Identical unit strings always convert, even if the unit is not in any
    table (a supplier may count in "crate").

    Args:
        value: Quantity to convert
        from_unit: Source unit (e.g., "g")
        to_unit: Target unit (e.g., "kg")

    Returns:
        Tuple of (success, converted_value, error_message)
        - success: True if conversion successful
        - converted_value: Result (Decimal 0 if failed)
        - error_message: Error description (empty string if successful)
    """
    value = Decimal(str(value))
    if value < 0:
        return False, Decimal("0"), "Value cannot be negative"

    from_unit_lower = from_unit.lower()
    to_unit_lower = to_unit.lower()

    if from_unit_lower == to_unit_lower:
        return True, value, ""

    conversion_table = get_conversion_table(from_unit_lower)
    if not conversion_table:
        return False, Decimal("0"), f"Unknown unit: {from_unit}"

    if to_unit_lower not in conversion_table:
        return (
            False,
            Decimal("0"),
            f"Cannot convert {from_unit} to {to_unit}: incompatible unit types",
        )

    # value -> base unit -> target unit
    base_value = value * conversion_table[from_unit_lower]
    converted_value = base_value / conversion_table[to_unit_lower]

    return True, converted_value, ""
