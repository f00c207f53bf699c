"""
Money Utilities - Safe Decimal operations for monetary values.

Prices arrive from the cart service as JSON numbers; everything local is
computed in Decimal so the recomputed total matches the server's.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Union

MONEY_PRECISION = Decimal("0.01")

Number = Union[str, int, float, Decimal, None]


def to_decimal(value: Number) -> Decimal:
    """
    Convert any value to Decimal safely.

    Floats go through their string form to avoid binary artefacts.
    None and unparsable values become Decimal("0").
    """
    if value is None:
        return Decimal("0")

    if isinstance(value, Decimal):
        return value

    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def round_money(value: Number) -> Decimal:
    """Round to two decimal places, half up."""
    return to_decimal(value).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def multiply(a: Number, b: Number) -> Decimal:
    """Safe multiplication of monetary values."""
    return to_decimal(a) * to_decimal(b)


def sum_money(values: Iterable[Number]) -> Decimal:
    """Sum monetary values and round the result."""
    total = Decimal("0")
    for value in values:
        total += to_decimal(value)
    return round_money(total)
