"""
Unit conversion for recipe rates and stock quantities.

This module provides:
- Mass conversions (g, kg, t) through grams
- Length conversions (mm, cm, m) through millimeters
- Count units (un, pc), which only convert to each other
- Unit compatibility validation

All arithmetic is Decimal. Conversions never cross unit types: a recipe
rate in grams can feed a raw material stocked in kg, never one stocked in
meters.
"""

from decimal import Decimal
from typing import Optional, Tuple

from ..utils.constants import COUNT_TO_ITEMS, LENGTH_TO_MM, MASS_TO_GRAMS

# Unit type -> conversion table to that type's base unit
UNIT_TABLES = {
    "mass": MASS_TO_GRAMS,
    "length": LENGTH_TO_MM,
    "count": COUNT_TO_ITEMS,
}


def get_unit_type(unit: str) -> Optional[str]:
    """
    Determine the unit type for a given unit.

    Args:
        unit: Unit string (e.g., "g", "kg", "m")

    Returns:
        "mass", "length", "count" or None if unknown
    """
    for unit_type, table in UNIT_TABLES.items():
        if unit in table:
            return unit_type
    return None


def validate_unit_compatibility(from_unit: str, to_unit: str) -> Tuple[bool, Optional[str]]:
    """
    Check that two units can be converted into one another.

    Returns:
        Tuple of (is_valid, error_message)
    """
    from_type = get_unit_type(from_unit)
    to_type = get_unit_type(to_unit)

    if from_type is None:
        return False, f"Unknown unit: {from_unit}"
    if to_type is None:
        return False, f"Unknown unit: {to_unit}"
    if from_type != to_type:
        return False, (
            f"Cannot convert between incompatible types: "
            f"'{from_unit}' ({from_type}) and '{to_unit}' ({to_type})"
        )
    return True, None


def convert_units(
    quantity: Decimal,
    from_unit: str,
    to_unit: str,
) -> Tuple[bool, Optional[Decimal], Optional[str]]:
    """
    Convert quantity between compatible units.

    Args:
        quantity: Amount to convert
        from_unit: Source unit (e.g., "g")
        to_unit: Target unit (e.g., "kg")

    Returns:
        Tuple of (success, converted_value, error_message)

    Example:
        >>> convert_units(Decimal("250"), "g", "kg")
        (True, Decimal('0.25'), None)
    """
    quantity = Decimal(str(quantity))
    if quantity < Decimal("0"):
        return False, None, "Quantity cannot be negative"

    if from_unit == to_unit:
        return True, quantity, None

    is_valid, error = validate_unit_compatibility(from_unit, to_unit)
    if not is_valid:
        return False, None, error

    table = UNIT_TABLES[get_unit_type(from_unit)]
    converted = quantity * table[from_unit] / table[to_unit]

    return True, converted, None
