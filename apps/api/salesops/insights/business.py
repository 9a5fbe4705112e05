from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from salesops.insights.numbers import round_half_up, safe_mean, safe_percent, safe_ratio
from salesops.insights.periods import month_key, months_back
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import CustomerRecord, InvoiceRecord


POSITIVE = "positive"
NEGATIVE = "negative"
NEUTRAL = "neutral"


@dataclass(frozen=True, slots=True)
class BusinessMetrics:
    total_customers: int
    active_customers: int
    total_revenue: Decimal
    avg_order_value: Decimal
    avg_customer_lifetime_value: Decimal


@dataclass(slots=True)
class MonthlyRevenue:
    key: str
    month: str
    year: int
    revenue: Decimal = Decimal("0")
    order_count: int = 0


@dataclass(frozen=True, slots=True)
class InsightCard:
    title: str
    metric: str
    description: str
    trend: str
    icon: str


@dataclass(frozen=True, slots=True)
class KeyFact:
    title: str
    detail: str
    icon: str


@dataclass(frozen=True, slots=True)
class BusinessInsights:
    metrics: BusinessMetrics
    monthly_trends: list[MonthlyRevenue]
    revenue_growth: float
    key_insights: list[InsightCard]
    key_facts: list[KeyFact]


def _dollars(value: Decimal | float) -> str:
    return f"${round_half_up(value):,}"


def monthly_trend(invoices: Iterable[InvoiceRecord], *, today: date, months: int) -> list[MonthlyRevenue]:
    """Revenue per calendar month for the current month and the ``months - 1`` before it, oldest first."""
    buckets: dict[str, MonthlyRevenue] = {}
    for offset in range(months - 1, -1, -1):
        day = months_back(today.replace(day=1), offset)
        buckets[month_key(day)] = MonthlyRevenue(
            key=month_key(day), month=calendar.month_abbr[day.month], year=day.year
        )
    for invoice in invoices:
        bucket = buckets.get(month_key(invoice.doc_date))
        if bucket is None or invoice.doc_date > today:
            continue
        bucket.revenue += invoice.doc_total
        bucket.order_count += 1
    return list(buckets.values())


def revenue_growth(trend: list[MonthlyRevenue]) -> float:
    """Percent change from the oldest to the newest month; 0 without a usable base."""
    if len(trend) < 2:
        return 0.0
    oldest, newest = trend[0].revenue, trend[-1].revenue
    return round(safe_ratio(newest - oldest, oldest) * 100, 2)


def summarize_business_insights(
    customers: Iterable[CustomerRecord],
    invoices: Iterable[InvoiceRecord],
    *,
    today: date,
    policy: InsightsPolicy,
) -> BusinessInsights:
    customer_list = list(customers)
    invoice_list = list(invoices)
    names = {customer.card_code: customer.card_name for customer in customer_list}

    last_invoice: dict[str, date] = {}
    lifetime_values: dict[str, Decimal] = {}
    for invoice in invoice_list:
        previous = last_invoice.get(invoice.card_code)
        if previous is None or invoice.doc_date > previous:
            last_invoice[invoice.card_code] = invoice.doc_date
        lifetime_values[invoice.card_code] = lifetime_values.get(invoice.card_code, Decimal("0")) + invoice.doc_total

    total_customers = len(customer_list)
    active_customers = sum(
        1
        for customer in customer_list
        if customer.card_code in last_invoice
        and (today - last_invoice[customer.card_code]).days <= policy.active_customer_days
    )
    total_revenue = sum((invoice.doc_total for invoice in invoice_list), Decimal("0"))
    avg_order_value = safe_mean([invoice.doc_total for invoice in invoice_list])
    avg_lifetime_value = safe_mean(list(lifetime_values.values()))

    trend = monthly_trend(invoice_list, today=today, months=policy.trend_months)
    # TODO: swap the synthetic benchmark for a sourced industry AOV figure.
    benchmark = avg_order_value * policy.aov_benchmark_factor
    above_benchmark = avg_order_value > benchmark

    engagement = safe_ratio(active_customers, total_customers)
    cards = [
        InsightCard(
            title="Customer Engagement",
            metric=f"{round_half_up(safe_percent(active_customers, total_customers, digits=4))}%",
            description=(
                f"{active_customers} out of {total_customers} customers have placed orders "
                f"in the last {policy.active_customer_days} days"
            ),
            trend=POSITIVE if engagement > policy.positive_engagement_ratio else NEUTRAL,
            icon="customers",
        ),
        InsightCard(
            title="Average Order Value",
            metric=_dollars(avg_order_value),
            description=f"{'Above' if above_benchmark else 'Below'} industry average of {_dollars(benchmark)}",
            trend=POSITIVE if above_benchmark else NEGATIVE,
            icon="orders",
        ),
        InsightCard(
            title="Customer Lifetime Value",
            metric=_dollars(avg_lifetime_value),
            description="Average total revenue generated per customer",
            trend=NEUTRAL,
            icon="value",
        ),
    ]

    top_customer = max(lifetime_values.items(), key=lambda item: item[1], default=None)
    best_month = max(trend, key=lambda bucket: bucket.revenue, default=None)
    facts = [
        KeyFact(
            title="Top Customer",
            detail=(
                f"{names.get(top_customer[0], 'Unknown')} ({_dollars(top_customer[1])})"
                if top_customer is not None
                else "N/A"
            ),
            icon="star",
        ),
        KeyFact(
            title="Best Performing Month",
            detail=(
                f"{best_month.month} {best_month.year} ({_dollars(best_month.revenue)})"
                if best_month is not None
                else "N/A"
            ),
            icon="calendar",
        ),
        KeyFact(title="Average Sales Cycle", detail=f"{policy.placeholder_sales_cycle_days} days", icon="cycle"),
        KeyFact(
            title="Customer Retention Rate",
            detail=f"{round_half_up(policy.placeholder_retention_rate)}%",
            icon="retention",
        ),
    ]

    return BusinessInsights(
        metrics=BusinessMetrics(
            total_customers=total_customers,
            active_customers=active_customers,
            total_revenue=total_revenue,
            avg_order_value=avg_order_value,
            avg_customer_lifetime_value=avg_lifetime_value,
        ),
        monthly_trends=trend,
        revenue_growth=revenue_growth(trend),
        key_insights=cards,
        key_facts=facts,
    )
