from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

CENT = Decimal("0.01")


class PricedLine(Protocol):
    unit_price: Decimal
    quantity: int


def to_money(value: Decimal | int | str) -> Decimal:
    """Coerce to a two-place Decimal. Floats are rejected to keep totals exact."""
    if isinstance(value, float):
        raise TypeError("Money amounts must not be floats")
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return to_money(to_money(unit_price) * quantity)


def compute_total(lines: Iterable[PricedLine]) -> Decimal:
    return to_money(sum((line_total(line.unit_price, line.quantity) for line in lines), Decimal("0")))


def to_minor_units(amount: Decimal) -> int:
    """Amount in the smallest currency unit (cents), rounded half-up."""
    return int((to_money(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
