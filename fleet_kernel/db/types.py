"""
Module: fleet_kernel.db.types
Responsibility: Precision rules and conversion helpers for money and fuel
    quantities.  Centralizes scale limits so that every model, service and
    validator uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the kernel.  to_decimal() refuses float input.
    - QUANTITY_DECIMAL_PLACES + PRICE_DECIMAL_PLACES <= STORAGE_DECIMAL_PLACES,
      so quantity x price is always representable exactly in storage and
      total_cost never needs rounding.
"""

from decimal import ROUND_HALF_UP, Decimal

# Storage scale of DecimalAmount on PostgreSQL (NUMERIC(38, 9))
STORAGE_DECIMAL_PLACES = 9

# Input precision limits
QUANTITY_DECIMAL_PLACES = 3
PRICE_DECIMAL_PLACES = 4
MONEY_DECIMAL_PLACES = 2

DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """
    Convert an int, str or Decimal to Decimal.

    Raises:
        TypeError: if value is a float or bool (floats carry binary error).
        InvalidOperation: if the string is not a number.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Refusing to convert {type(value).__name__} to Decimal")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def decimal_places(value: Decimal) -> int:
    """Number of significant fractional digits (trailing zeros ignored)."""
    exponent = value.normalize().as_tuple().exponent
    if not isinstance(exponent, int):
        return 0
    return max(0, -exponent)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value for display.

    Never applied to stored balances or total_cost; those stay exact.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
