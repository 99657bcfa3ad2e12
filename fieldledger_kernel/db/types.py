"""
Module: fieldledger_kernel.db.types
Responsibility: Annotated type aliases and utility functions for money-grade
    column types.  Centralizes precision, rounding, and numeric coercion so
    that every model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models, domain,
    services, and selectors.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_money() is the ONLY sanctioned rounding function for values that
      are persisted as money.  Intermediate arithmetic is never rounded.
    - No floats anywhere in stored amounts.  to_decimal() converts inbound
      numbers through their string form and rejects NaN, infinities and
      booleans instead of silently turning them into zero.

Failure modes:
    - ValueError from to_decimal() on anything that is not a finite number.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import BigInteger, Numeric, String

# Monetary amount: 38 digits total, 9 decimal places of storage headroom.
# Persisted money values are always rounded to the currency minor unit first.
Money = Annotated[Decimal, Numeric(38, 9)]

# Hours, quantities and other measured inputs
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Percentages such as markup rates (15 means 15%)
Percentage = Annotated[Decimal, Numeric(38, 9)]

# Monotonic sequence number
Sequence = Annotated[int, BigInteger]

# Short identifier strings
ShortCode = Annotated[str, String(50)]


# Rounding constants
MINOR_UNIT_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MINOR_UNIT_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the currency minor unit.

    This is the ONLY sanctioned rounding function for persisted amounts.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: Any) -> Decimal:
    """
    Convert an inbound numeric value to Decimal.

    Accepts Decimal, int, float and numeric strings.  Floats go through
    ``str()`` so ``0.1`` becomes ``Decimal("0.1")`` rather than its binary
    expansion.

    Raises:
        ValueError: If the value is a bool, None, non-numeric, NaN or infinite.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    else:
        raise ValueError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result
