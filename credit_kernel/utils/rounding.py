"""
Decimal conversion and the canonical credit rounding function.

Pure helpers shared by the domain, the ORM column types, and services.
No floats anywhere in the credit kernel: credits and hours are Decimal,
and to_decimal() refuses float input outright.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CREDIT_DECIMAL_PLACES = 2
# Scale of the Numeric(38, 9) credit and hour columns.
STORAGE_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str, field: str = "value") -> Decimal:
    """
    Convert an int, str, or Decimal to Decimal.

    Raises:
        TypeError: If value is a float (precision would be silently lost).
        ValueError: If value is not a number.
    """
    if isinstance(value, bool):
        raise TypeError(f"{field} must be numeric, got bool")
    if isinstance(value, float):
        raise TypeError(f"{field} must not be a float: {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"{field} is not a number: {value!r}") from exc


def round_credits(
    value: Decimal,
    decimal_places: int = CREDIT_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a credit value to the configured number of decimal places.

    This is the ONLY sanctioned rounding function for credit values.

    Example:
        round_credits(Decimal("20") / Decimal("15")) -> Decimal("1.33")
    """
    quantizer = Decimal(10) ** -decimal_places
    return value.quantize(quantizer, rounding=rounding)


def fits_storage_scale(value: Decimal) -> bool:
    """True when ``value`` survives a round-trip through a Numeric(38, 9) column."""
    quantizer = Decimal(10) ** -STORAGE_DECIMAL_PLACES
    return value == value.quantize(quantizer)
