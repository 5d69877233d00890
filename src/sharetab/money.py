from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Union

Number = Union[int, float, Decimal, str]

CENT = Decimal("0.01")
TOLERANCE = Decimal("0.01")
TOLERANCE_CENTS = 1


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("amount must be a number")
    if isinstance(value, float):
        # str() keeps the shortest repr, so 0.1 becomes Decimal("0.1")
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise TypeError(f"not a money value: {value!r}") from exc
    if not result.is_finite():
        raise TypeError(f"not a money value: {value!r}")
    return result


def to_cents(value: Number) -> int:
    quantized = to_decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)
    return int(quantized * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def round_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)
