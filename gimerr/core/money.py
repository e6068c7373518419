from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction
from typing import Any, Union

Number = Union[int, float, Decimal, Fraction, str]


def round_half_up(value: Number) -> int:
    """Round to the nearest integer, halves toward +infinity, with no binary float drift."""
    return math.floor(Fraction(value) + Fraction(1, 2))


def money_to_cents(value: Any) -> int:
    if value is None or value == "":
        return 0
    d = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return int(d * 100)


def cents_to_decimal(cents: int) -> Decimal:
    return (Decimal(int(cents)) / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def cents_to_money(cents: int) -> float:
    return float(cents_to_decimal(cents))


def cents_to_str(cents: int) -> str:
    return f"{cents_to_decimal(cents):.2f}"


def share_of(cents: int, ratio: Number) -> int:
    return round_half_up(Fraction(int(cents)) * Fraction(str(ratio)))
