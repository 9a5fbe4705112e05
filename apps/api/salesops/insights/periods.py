"""Calendar bucketing for activity series.

Week keys follow ISO 8601 (``YYYY-Www``, weeks start on Monday and belong to
the ISO year), so a date in the first days of January can land in the last
week of the previous year.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from salesops.insights.payments import payment_total
from salesops.insights.records import InvoiceRecord, PaymentRecord


WEEKLY = "weekly"
MONTHLY = "monthly"
QUARTERLY = "quarterly"
YEARLY = "yearly"
PERIODS = (WEEKLY, MONTHLY, QUARTERLY, YEARLY)
DEFAULT_PERIOD = QUARTERLY


@dataclass(slots=True)
class ActivityBucket:
    period: str
    invoice_count: int = 0
    invoice_amount: Decimal = Decimal("0")
    invoice_amount_gross: Decimal = Decimal("0")
    payment_count: int = 0
    payment_amount: Decimal = Decimal("0")
    display_name: str | None = None


def normalize_period(value: str | None) -> str:
    if value in PERIODS:
        return value
    return DEFAULT_PERIOD


def week_key(day: date) -> str:
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def period_key(day: date, period: str) -> str:
    if period == WEEKLY:
        return week_key(day)
    if period == MONTHLY:
        return month_key(day)
    if period == QUARTERLY:
        return f"{day.year}-Q{(day.month - 1) // 3 + 1}"
    return f"{day.year}"


def week_start(key: str) -> date:
    year_part, week_part = key.split("-W")
    return date.fromisocalendar(int(year_part), int(week_part), 1)


def format_week_display(key: str) -> str:
    start = week_start(key)
    end = start + timedelta(days=6)
    if start.month == end.month:
        return f"{start:%b} {start.day}-{end.day}, {start.year}"
    return f"{start:%b} {start.day}-{end:%b} {end.day}, {start.year}"


def week_keys_between(first: date, last: date) -> list[str]:
    keys: list[str] = []
    cursor = first - timedelta(days=first.weekday())
    while cursor <= last:
        keys.append(week_key(cursor))
        cursor += timedelta(days=7)
    return keys


def activity_by_period(
    invoices: Iterable[InvoiceRecord],
    payments: Iterable[PaymentRecord],
    period: str | None = DEFAULT_PERIOD,
    *,
    fill_range: tuple[date, date] | None = None,
) -> list[ActivityBucket]:
    """Bucket invoices (net and gross) and payments by period; rows sharing a key merge."""
    period = normalize_period(period)
    buckets: dict[str, ActivityBucket] = {}
    seen_dates: list[date] = []

    for invoice in invoices:
        key = period_key(invoice.doc_date, period)
        bucket = buckets.setdefault(key, ActivityBucket(period=key))
        bucket.invoice_count += 1
        bucket.invoice_amount += invoice.net_total
        bucket.invoice_amount_gross += invoice.doc_total
        seen_dates.append(invoice.doc_date)

    for payment in payments:
        key = period_key(payment.doc_date, period)
        bucket = buckets.setdefault(key, ActivityBucket(period=key))
        bucket.payment_count += 1
        bucket.payment_amount += payment_total(payment)
        seen_dates.append(payment.doc_date)

    if period == WEEKLY and (fill_range is not None or seen_dates):
        first, last = fill_range if fill_range is not None else (min(seen_dates), max(seen_dates))
        for key in week_keys_between(first, last):
            buckets.setdefault(key, ActivityBucket(period=key))
        for key, bucket in buckets.items():
            bucket.display_name = format_week_display(key)

    return [buckets[key] for key in sorted(buckets)]


def months_back(day: date, months: int) -> date:
    """Same day ``months`` calendar months earlier, clamped to the end of shorter months."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"
