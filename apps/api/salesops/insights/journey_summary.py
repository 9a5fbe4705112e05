from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from salesops.insights.journey import LIFECYCLE_STAGES, classify_lifecycle
from salesops.insights.numbers import safe_mean, safe_percent
from salesops.insights.payments import PAYMENT_PATTERNS, classify_payment_pattern
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import InvoiceRecord, PaymentRecord


VALUE_SEGMENTS: tuple[tuple[Decimal, str], ...] = (
    (Decimal("0"), "$0-1,000"),
    (Decimal("1000"), "$1,000-5,000"),
    (Decimal("5000"), "$5,000-10,000"),
    (Decimal("10000"), "$10,000-50,000"),
    (Decimal("50000"), "$50,000-100,000"),
    (Decimal("100000"), "$100,000+"),
)
DURATION_SEGMENTS: tuple[tuple[int, str], ...] = (
    (0, "0-30 days"),
    (31, "31-90 days"),
    (91, "91-180 days"),
    (181, "181-365 days"),
    (366, "1-2 years"),
    (731, "2+ years"),
)
UNKNOWN_SEGMENT = "Unknown"
TOP_CUSTOMERS = 10
SEGMENT_LIST_CAP = 100


@dataclass(frozen=True, slots=True)
class InvoiceAggregate:
    card_code: str
    card_name: str
    first_invoice: date
    last_invoice: date
    invoice_count: int
    total_spent: Decimal
    total_paid: Decimal

    @property
    def outstanding_balance(self) -> Decimal:
        return self.total_spent - self.total_paid

    @property
    def average_order_value(self) -> Decimal:
        return self.total_spent / self.invoice_count if self.invoice_count else Decimal("0")


@dataclass(frozen=True, slots=True)
class PaymentAggregate:
    card_code: str
    payment_count: int
    first_payment: date | None
    last_payment: date | None


@dataclass(frozen=True, slots=True)
class JourneySummaryRow:
    card_code: str
    customer_name: str
    invoice_count: int
    payment_count: int
    first_interaction: date
    last_interaction: date
    total_spent: Decimal
    total_paid: Decimal
    outstanding_balance: Decimal
    average_order_value: Decimal
    lifecycle: str
    payment_pattern: str
    days_since_last_activity: int
    relationship_duration_days: int
    has_recent_activity: bool


@dataclass(frozen=True, slots=True)
class SegmentStat:
    segment: str
    count: int
    percentage: float
    total_revenue: Decimal
    average_revenue: Decimal
    total_outstanding: Decimal


@dataclass(frozen=True, slots=True)
class OverallJourneyStats:
    total_customers: int
    total_revenue: Decimal
    total_outstanding: Decimal
    average_relationship_duration: float
    average_orders_per_customer: float
    average_spend_per_customer: Decimal
    active_customer_percentage: float


@dataclass(frozen=True, slots=True)
class TopJourneyCustomer:
    card_code: str
    customer_name: str
    total_spent: Decimal
    invoice_count: int
    payment_ratio: float
    lifecycle: str
    payment_pattern: str


@dataclass(frozen=True, slots=True)
class JourneyAnalytics:
    overall: OverallJourneyStats
    lifecycle_distribution: list[SegmentStat]
    payment_pattern_distribution: list[SegmentStat]
    value_segments: list[SegmentStat]
    duration_segments: list[SegmentStat]
    top_customers: list[TopJourneyCustomer]


@dataclass(frozen=True, slots=True)
class ValueRangeSummary:
    customers: list[InvoiceAggregate]
    total_customers: int
    total_revenue: Decimal
    total_invoices: int
    average_spend_per_customer: Decimal


def aggregate_invoices(invoices: Iterable[InvoiceRecord]) -> list[InvoiceAggregate]:
    grouped: dict[str, list[InvoiceRecord]] = {}
    for invoice in invoices:
        grouped.setdefault(invoice.card_code, []).append(invoice)
    return [
        InvoiceAggregate(
            card_code=card_code,
            card_name=items[0].card_name,
            first_invoice=min(item.doc_date for item in items),
            last_invoice=max(item.doc_date for item in items),
            invoice_count=len(items),
            total_spent=sum((item.doc_total for item in items), Decimal("0")),
            total_paid=sum((item.paid_to_date for item in items), Decimal("0")),
        )
        for card_code, items in grouped.items()
    ]


def aggregate_payments(payments: Iterable[PaymentRecord]) -> dict[str, PaymentAggregate]:
    grouped: dict[str, list[date]] = {}
    for payment in payments:
        grouped.setdefault(payment.card_code, []).append(payment.doc_date)
    return {
        card_code: PaymentAggregate(card_code, len(dates), min(dates), max(dates))
        for card_code, dates in grouped.items()
    }


def summarize_customer(
    aggregate: InvoiceAggregate,
    payments: PaymentAggregate | None,
    *,
    today: date,
    policy: InsightsPolicy,
) -> JourneySummaryRow:
    days_since = (today - aggregate.last_invoice).days
    first = aggregate.first_invoice
    last = aggregate.last_invoice
    payment_count = 0
    if payments is not None and payments.last_payment is not None:
        payment_count = payments.payment_count
        days_since = min(days_since, (today - payments.last_payment).days)
        last = max(last, payments.last_payment)
        if payments.first_payment is not None:
            first = min(first, payments.first_payment)

    return JourneySummaryRow(
        card_code=aggregate.card_code,
        customer_name=aggregate.card_name,
        invoice_count=aggregate.invoice_count,
        payment_count=payment_count,
        first_interaction=first,
        last_interaction=last,
        total_spent=aggregate.total_spent,
        total_paid=aggregate.total_paid,
        outstanding_balance=aggregate.outstanding_balance,
        average_order_value=aggregate.average_order_value,
        lifecycle=classify_lifecycle(days_since, policy),
        payment_pattern=classify_payment_pattern(aggregate.total_spent, aggregate.total_paid, policy),
        days_since_last_activity=days_since,
        relationship_duration_days=(today - aggregate.first_invoice).days,
        has_recent_activity=days_since <= policy.lifecycle_recent_days,
    )


def summarize_customer_journeys(
    aggregates: Iterable[InvoiceAggregate],
    payments: dict[str, PaymentAggregate],
    *,
    today: date,
    policy: InsightsPolicy,
) -> list[JourneySummaryRow]:
    return [
        summarize_customer(aggregate, payments.get(aggregate.card_code), today=today, policy=policy)
        for aggregate in aggregates
    ]


def lifecycle_counts(rows: Iterable[JourneySummaryRow]) -> dict[str, int]:
    counts = {stage: 0 for stage in LIFECYCLE_STAGES}
    for row in rows:
        counts[row.lifecycle] += 1
    return counts


def payment_pattern_counts(rows: Iterable[JourneySummaryRow]) -> dict[str, int]:
    counts = {pattern: 0 for pattern in PAYMENT_PATTERNS}
    for row in rows:
        counts[row.payment_pattern] += 1
    return counts


def _segment_stat(label: str, members: list[InvoiceAggregate], total_customers: int) -> SegmentStat:
    spent = [member.total_spent for member in members]
    return SegmentStat(
        segment=label,
        count=len(members),
        percentage=safe_percent(len(members), total_customers),
        total_revenue=sum(spent, Decimal("0")),
        average_revenue=safe_mean(spent),
        total_outstanding=sum((member.outstanding_balance for member in members), Decimal("0")),
    )


def _bucket_label(value, boundaries) -> str:  # type: ignore[no-untyped-def]
    if value < boundaries[0][0]:
        return UNKNOWN_SEGMENT
    label = boundaries[0][1]
    for lower, name in boundaries:
        if value >= lower:
            label = name
    return label


def _bucketed(
    aggregates: list[InvoiceAggregate],
    labeler,  # type: ignore[no-untyped-def]
    order: list[str],
    total_customers: int,
) -> list[SegmentStat]:
    groups: dict[str, list[InvoiceAggregate]] = {}
    for aggregate in aggregates:
        groups.setdefault(labeler(aggregate), []).append(aggregate)
    ordered_labels = [label for label in order if label in groups]
    return [_segment_stat(label, groups[label], total_customers) for label in ordered_labels]


def customer_journey_analytics(
    aggregates: Iterable[InvoiceAggregate],
    *,
    today: date,
    policy: InsightsPolicy,
) -> JourneyAnalytics:
    """Portfolio-wide lifecycle, payment, value and tenure breakdowns from invoice history alone."""
    items = list(aggregates)
    total = len(items)

    lifecycle_of = {item.card_code: classify_lifecycle((today - item.last_invoice).days, policy) for item in items}
    pattern_of = {
        item.card_code: classify_payment_pattern(item.total_spent, item.total_paid, policy) for item in items
    }
    tenure_of = {item.card_code: (item.last_invoice - item.first_invoice).days for item in items}

    total_revenue = sum((item.total_spent for item in items), Decimal("0"))
    active = sum(1 for stage in lifecycle_of.values() if stage == LIFECYCLE_STAGES[0])
    overall = OverallJourneyStats(
        total_customers=total,
        total_revenue=total_revenue,
        total_outstanding=sum((item.outstanding_balance for item in items), Decimal("0")),
        average_relationship_duration=round(sum(tenure_of.values()) / total, 2) if total else 0.0,
        average_orders_per_customer=round(sum(item.invoice_count for item in items) / total, 2) if total else 0.0,
        average_spend_per_customer=safe_mean([item.total_spent for item in items]),
        active_customer_percentage=safe_percent(active, total),
    )

    value_order = [name for _, name in VALUE_SEGMENTS] + [UNKNOWN_SEGMENT]
    duration_order = [name for _, name in DURATION_SEGMENTS] + [UNKNOWN_SEGMENT]

    top = sorted(items, key=lambda item: item.total_spent, reverse=True)[:TOP_CUSTOMERS]
    return JourneyAnalytics(
        overall=overall,
        lifecycle_distribution=_bucketed(items, lambda item: lifecycle_of[item.card_code], list(LIFECYCLE_STAGES), total),
        payment_pattern_distribution=_bucketed(
            items, lambda item: pattern_of[item.card_code], list(PAYMENT_PATTERNS), total
        ),
        value_segments=_bucketed(items, lambda item: _bucket_label(item.total_spent, VALUE_SEGMENTS), value_order, total),
        duration_segments=_bucketed(
            items, lambda item: _bucket_label(tenure_of[item.card_code], DURATION_SEGMENTS), duration_order, total
        ),
        top_customers=[
            TopJourneyCustomer(
                card_code=item.card_code,
                customer_name=item.card_name,
                total_spent=item.total_spent,
                invoice_count=item.invoice_count,
                payment_ratio=round(float(item.total_paid / item.total_spent), 4) if item.total_spent else 0.0,
                lifecycle=lifecycle_of[item.card_code],
                payment_pattern=pattern_of[item.card_code],
            )
            for item in top
        ],
    )


def customers_by_value_range(
    aggregates: Iterable[InvoiceAggregate],
    *,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
) -> ValueRangeSummary:
    selected = [
        item
        for item in aggregates
        if (min_amount is None or item.total_spent >= min_amount)
        and (max_amount is None or item.total_spent <= max_amount)
    ]
    selected.sort(key=lambda item: item.total_spent, reverse=True)
    selected = selected[:SEGMENT_LIST_CAP]
    revenue = sum((item.total_spent for item in selected), Decimal("0"))
    return ValueRangeSummary(
        customers=selected,
        total_customers=len(selected),
        total_revenue=revenue,
        total_invoices=sum(item.invoice_count for item in selected),
        average_spend_per_customer=safe_mean([item.total_spent for item in selected]),
    )
