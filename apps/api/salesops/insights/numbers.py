from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def safe_ratio(numerator: float | Decimal, denominator: float | Decimal) -> float:
    if not denominator:
        return 0.0
    return float(numerator) / float(denominator)


def safe_percent(numerator: float | Decimal, denominator: float | Decimal, digits: int = 2) -> float:
    return round(safe_ratio(numerator, denominator) * 100, digits)


def safe_mean(values: list[Decimal]) -> Decimal:
    if not values:
        return Decimal("0")
    return sum(values, Decimal("0")) / len(values)


def round_half_up(value: float | Decimal) -> int:
    """Round to the nearest integer with halves going up, like the dashboards expect."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
