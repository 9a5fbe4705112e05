from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from salesops.insights.numbers import round_half_up, safe_mean
from salesops.insights.payments import (
    PaymentMethodShare,
    PaymentTiming,
    analyze_payment_methods,
    analyze_payment_timing,
    average_payment_days,
    linked_amounts_by_invoice,
    payment_days,
    payment_total,
    primary_payment_method,
    settle_invoice,
)
from salesops.insights.periods import ActivityBucket, activity_by_period
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import InvoiceRecord, PaymentLinkRecord, PaymentRecord


ACTIVE = "Active"
RECENT = "Recent"
LAPSED = "Lapsed"
INACTIVE = "Inactive"
LIFECYCLE_STAGES = (ACTIVE, RECENT, LAPSED, INACTIVE)


@dataclass(frozen=True, slots=True)
class RelatedInvoice:
    invoice_number: int
    amount_applied: Decimal
    link_source: str


@dataclass(frozen=True, slots=True)
class TimelineEvent:
    type: str
    date: date
    doc_num: int
    amount: Decimal
    gross_amount: Decimal | None = None
    vat_amount: Decimal | None = None
    is_paid: bool | None = None
    partially_paid: bool | None = None
    paid_amount: Decimal | None = None
    balance: Decimal | None = None
    payment_method: str | None = None
    related_invoices: tuple[RelatedInvoice, ...] = ()


@dataclass(frozen=True, slots=True)
class JourneyMetrics:
    total_invoices: int
    total_payments: int
    total_invoice_amount: Decimal
    total_invoice_amount_gross: Decimal
    total_paid_amount: Decimal
    outstanding_balance: Decimal
    average_payment_days: int | None
    payment_methods: list[PaymentMethodShare]
    relationship_duration_days: int
    first_interaction_date: date | None
    last_interaction_date: date | None
    payment_timing: PaymentTiming


@dataclass(frozen=True, slots=True)
class SeasonalMonth:
    month: str
    count: int
    total: Decimal
    average: Decimal


@dataclass(frozen=True, slots=True)
class PurchasePatterns:
    frequency_days: int | None
    average_order_value: Decimal
    seasonal_trends: list[SeasonalMonth] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CustomerJourney:
    timeline: list[TimelineEvent]
    metrics: JourneyMetrics
    activity: list[ActivityBucket]
    purchase_patterns: PurchasePatterns
    lifecycle_stage: str | None
    days_since_last_activity: int | None
    linked_payments: dict[int, list[PaymentLinkRecord]]


@dataclass(frozen=True, slots=True)
class InteractionEvent:
    type: str
    date: date
    reference: str
    amount: Decimal | None
    days_to_payment: int | None = None
    payment_method: str | None = None


@dataclass(frozen=True, slots=True)
class InteractionTimeline:
    events: list[InteractionEvent]
    total_interactions: int
    first_interaction: date | None
    last_interaction: date | None
    average_interaction_frequency: int | None
    invoice_count: int
    payment_count: int
    payment_link_count: int


def classify_lifecycle(days_since_last_activity: int, policy: InsightsPolicy) -> str:
    if days_since_last_activity <= policy.lifecycle_active_days:
        return ACTIVE
    if days_since_last_activity <= policy.lifecycle_recent_days:
        return RECENT
    if days_since_last_activity <= policy.lifecycle_lapsed_days:
        return LAPSED
    return INACTIVE


def interaction_bounds(invoices: list[InvoiceRecord], payments: list[PaymentRecord]) -> tuple[date | None, date | None]:
    dates = [invoice.doc_date for invoice in invoices] + [payment.doc_date for payment in payments]
    if not dates:
        return None, None
    return min(dates), max(dates)


def _related_invoices(payment: PaymentRecord, links_by_payment: dict[int, list[PaymentLinkRecord]]) -> tuple[RelatedInvoice, ...]:
    related: dict[int, RelatedInvoice] = {}
    for link in links_by_payment.get(payment.doc_num, []):
        related.setdefault(
            link.invoice_number,
            RelatedInvoice(link.invoice_number, link.payment_amount, "payment_link"),
        )
    for applied in payment.applied_invoices:
        related.setdefault(
            applied.invoice_number,
            RelatedInvoice(applied.invoice_number, applied.amount_applied, "payment_document"),
        )
    return tuple(related.values())


def build_timeline(
    invoices: list[InvoiceRecord],
    payments: list[PaymentRecord],
    links: list[PaymentLinkRecord],
    policy: InsightsPolicy,
) -> list[TimelineEvent]:
    linked_totals = linked_amounts_by_invoice(links)
    links_by_payment: dict[int, list[PaymentLinkRecord]] = {}
    for link in links:
        links_by_payment.setdefault(link.payment_number, []).append(link)

    events: list[TimelineEvent] = []
    for invoice in invoices:
        settlement = settle_invoice(invoice, linked_totals.get(invoice.doc_num, Decimal("0")), policy)
        events.append(
            TimelineEvent(
                type="invoice",
                date=invoice.doc_date,
                doc_num=invoice.doc_num,
                amount=invoice.net_total,
                gross_amount=invoice.doc_total,
                vat_amount=invoice.vat_sum,
                is_paid=settlement.is_paid,
                partially_paid=settlement.partially_paid,
                paid_amount=settlement.paid_amount,
                balance=settlement.balance,
            )
        )
    for payment in payments:
        events.append(
            TimelineEvent(
                type="payment",
                date=payment.doc_date,
                doc_num=payment.doc_num,
                amount=payment_total(payment),
                payment_method=primary_payment_method(payment),
                related_invoices=_related_invoices(payment, links_by_payment),
            )
        )
    # Stable sort keeps an invoice ahead of a payment booked the same day.
    events.sort(key=lambda event: event.date)
    return events


def compute_journey_metrics(
    invoices: list[InvoiceRecord],
    payments: list[PaymentRecord],
    links: list[PaymentLinkRecord],
    policy: InsightsPolicy,
) -> JourneyMetrics:
    linked_totals = linked_amounts_by_invoice(links)
    total_paid = Decimal("0")
    outstanding = Decimal("0")
    for invoice in invoices:
        settlement = settle_invoice(invoice, linked_totals.get(invoice.doc_num, Decimal("0")), policy)
        total_paid += settlement.paid_amount
        outstanding += settlement.balance

    first, last = interaction_bounds(invoices, payments)
    duration = (last - first).days if first is not None and last is not None else 0

    return JourneyMetrics(
        total_invoices=len(invoices),
        total_payments=len(payments),
        total_invoice_amount=sum((invoice.net_total for invoice in invoices), Decimal("0")),
        total_invoice_amount_gross=sum((invoice.doc_total for invoice in invoices), Decimal("0")),
        total_paid_amount=total_paid,
        outstanding_balance=outstanding,
        average_payment_days=average_payment_days(links, policy),
        payment_methods=analyze_payment_methods(payments),
        relationship_duration_days=duration,
        first_interaction_date=first,
        last_interaction_date=last,
        payment_timing=analyze_payment_timing(links, policy),
    )


def identify_purchase_patterns(invoices: list[InvoiceRecord]) -> PurchasePatterns:
    if not invoices:
        return PurchasePatterns(frequency_days=None, average_order_value=Decimal("0"), seasonal_trends=[])

    ordered = sorted(invoices, key=lambda item: item.doc_date)
    gaps = [
        (ordered[idx].doc_date - ordered[idx - 1].doc_date).days
        for idx in range(1, len(ordered))
    ]
    positive_gaps = [gap for gap in gaps if gap > 0]
    frequency = round_half_up(sum(positive_gaps) / len(positive_gaps)) if positive_gaps else None

    by_month: dict[int, list[Decimal]] = {}
    for invoice in ordered:
        by_month.setdefault(invoice.doc_date.month, []).append(invoice.doc_total)

    seasonal = []
    for month in range(1, 13):
        totals = by_month.get(month, [])
        seasonal.append(
            SeasonalMonth(
                month=calendar.month_name[month],
                count=len(totals),
                total=sum(totals, Decimal("0")),
                average=safe_mean(totals),
            )
        )

    return PurchasePatterns(
        frequency_days=frequency,
        average_order_value=safe_mean([invoice.net_total for invoice in ordered]),
        seasonal_trends=seasonal,
    )


def build_customer_journey(
    invoices: list[InvoiceRecord],
    payments: list[PaymentRecord],
    links: list[PaymentLinkRecord],
    *,
    today: date,
    policy: InsightsPolicy,
    period: str | None = None,
    fill_range: tuple[date, date] | None = None,
) -> CustomerJourney:
    metrics = compute_journey_metrics(invoices, payments, links, policy)

    days_since = None
    stage = None
    if metrics.last_interaction_date is not None:
        days_since = (today - metrics.last_interaction_date).days
        stage = classify_lifecycle(days_since, policy)

    linked: dict[int, list[PaymentLinkRecord]] = {}
    for link in links:
        linked.setdefault(link.invoice_number, []).append(link)

    return CustomerJourney(
        timeline=build_timeline(invoices, payments, links, policy),
        metrics=metrics,
        activity=activity_by_period(invoices, payments, period, fill_range=fill_range),
        purchase_patterns=identify_purchase_patterns(invoices),
        lifecycle_stage=stage,
        days_since_last_activity=days_since,
        linked_payments=linked,
    )


def build_interaction_timeline(
    invoices: list[InvoiceRecord],
    payments: list[PaymentRecord],
    links: list[PaymentLinkRecord],
) -> InteractionTimeline:
    events: list[InteractionEvent] = []
    for invoice in invoices:
        events.append(InteractionEvent("invoice_created", invoice.doc_date, str(invoice.doc_num), invoice.doc_total))
    for payment in payments:
        events.append(
            InteractionEvent(
                "payment_made",
                payment.doc_date,
                str(payment.doc_num),
                payment.doc_total if payment.doc_total is not None else payment_total(payment),
                payment_method=primary_payment_method(payment),
            )
        )
    for link in links:
        events.append(
            InteractionEvent(
                "invoice_payment",
                link.payment_date,
                f"{link.invoice_number}-{link.payment_number}",
                link.payment_amount,
                days_to_payment=payment_days(link),
            )
        )
    events.sort(key=lambda event: event.date)

    gaps = [(events[idx].date - events[idx - 1].date).days for idx in range(1, len(events))]
    positive_gaps = [gap for gap in gaps if gap > 0]

    return InteractionTimeline(
        events=events,
        total_interactions=len(events),
        first_interaction=events[0].date if events else None,
        last_interaction=events[-1].date if events else None,
        average_interaction_frequency=round_half_up(sum(positive_gaps) / len(positive_gaps)) if positive_gaps else None,
        invoice_count=len(invoices),
        payment_count=len(payments),
        payment_link_count=len(links),
    )
