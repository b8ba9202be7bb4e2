from __future__ import annotations

from typing import Iterable


def line_total(unit_price: float, quantity: int) -> float:
    return float(unit_price) * int(quantity)


def cart_total(lines: Iterable) -> float:
    # unrounded; money() rounds once for display
    return sum(line_total(ln.unit_price, ln.quantity) for ln in lines)


def item_count(lines: Iterable) -> int:
    return sum(int(ln.quantity) for ln in lines)
