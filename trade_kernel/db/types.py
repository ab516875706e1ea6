"""
Module: trade_kernel.db.types
Responsibility: Annotated type aliases and helpers for money and quantity
    columns.  Every model and service uses these definitions so amounts are
    stored and rounded identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere: amounts are Decimal, quantities are int.
    - round_money() is the only sanctioned rounding function.

Failure modes:
    - ValueError from money_from_str()/coerce_money() on non-numeric input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Signed unit count
Quantity = Annotated[int, BigInteger]

# External document / reference identifiers (KK12, PAY1717000000000)
DocRef = Annotated[str, String(64)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def money_from_str(value: str) -> Decimal:
    """
    Create a Money value from string.

    Raises:
        ValueError: If value cannot be converted to Decimal.
    """
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc


def coerce_money(value: object) -> Decimal:
    """
    Normalize an inbound amount to Decimal.

    Accepts Decimal, int and numeric strings.  Floats are refused because
    their binary representation cannot carry exact currency values.

    Raises:
        ValueError: float, bool, non-finite, or non-numeric input.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Amounts must be Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        result = money_from_str(value.strip())
    else:
        raise ValueError(f"Unsupported amount type: {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for money in the kernel.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "0"
    return value.quantize(Decimal(quantize_str), rounding=rounding)
