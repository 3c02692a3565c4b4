from __future__ import annotations

import math
from typing import Iterable


def format_currency(value: float) -> str:
    return f"${value:,.0f}"


def round_currency(value: float) -> float:
    """Round half-up to whole dollars."""
    return float(math.floor(value + 0.5))


def growth_factor(rate: float, years: float) -> float:
    return (1 + rate) ** years


def present_value(value: float, years_from_start: float, discount_rate: float) -> float:
    """Discount a future amount back to year 0 of the projection."""
    if years_from_start == 0:
        return value
    return value / growth_factor(discount_rate, years_from_start)


def weighted_sum(values: Iterable[float], weights: Iterable[float]) -> float:
    return sum(v * w for v, w in zip(values, weights))
