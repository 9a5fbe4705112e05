from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from salesops.insights.numbers import round_half_up, safe_percent, safe_ratio
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import InvoiceRecord, PaymentLinkRecord, PaymentRecord


CASH = "Cash"
BANK_TRANSFER = "Bank Transfer"
CREDIT_CARD = "Credit Card"
CHECK = "Check"
OTHER = "Other"
UNKNOWN = "Unknown"

FULLY_PAID = "Fully Paid"
GOOD_PAYER = "Good Payer"
PARTIAL_PAYER = "Partial Payer"
SLOW_PAYER = "Slow Payer"
NO_PAYMENTS = "No Payments"
PAYMENT_PATTERNS = (FULLY_PAID, GOOD_PAYER, PARTIAL_PAYER, SLOW_PAYER, NO_PAYMENTS)


@dataclass(frozen=True, slots=True)
class PaymentMethodShare:
    method: str
    count: int
    amount: Decimal
    percentage: float


@dataclass(frozen=True, slots=True)
class PaymentTiming:
    early_payments: int
    on_time_payments: int
    late_payments: int
    early_percentage: float
    on_time_percentage: float
    late_percentage: float


@dataclass(frozen=True, slots=True)
class InvoiceSettlement:
    paid_amount: Decimal
    balance: Decimal
    is_paid: bool
    partially_paid: bool


def payment_total(payment: PaymentRecord) -> Decimal:
    """Sum every tender on the payment; fall back to the document total when none is recorded."""
    total = (
        payment.cash_sum
        + payment.transfer_sum
        + payment.check_sum
        + sum(payment.credit_card_sums, Decimal("0"))
        + sum(payment.check_sums, Decimal("0"))
    )
    has_tender = bool(
        payment.cash_sum or payment.transfer_sum or payment.check_sum or payment.credit_card_sums or payment.check_sums
    )
    if not has_tender:
        return payment.doc_total or Decimal("0")
    return total


def primary_payment_method(payment: PaymentRecord) -> str:
    if payment.cash_sum > 0:
        return CASH
    if payment.transfer_sum > 0:
        return BANK_TRANSFER
    if payment.check_sums or payment.check_sum > 0:
        return CHECK
    if payment.credit_card_sums or payment.credit_sum > 0:
        return CREDIT_CARD
    if payment.doc_total and payment.doc_total > 0:
        return OTHER
    return UNKNOWN


def payment_method_entries(payment: PaymentRecord) -> list[tuple[str, Decimal]]:
    """Every tender present on one payment counts as its own entry."""
    entries: list[tuple[str, Decimal]] = []
    if payment.cash_sum > 0:
        entries.append((CASH, payment.cash_sum))
    if payment.transfer_sum > 0:
        entries.append((BANK_TRANSFER, payment.transfer_sum))
    if payment.credit_card_sums or payment.credit_sum > 0:
        amount = sum(payment.credit_card_sums, Decimal("0")) if payment.credit_card_sums else payment.credit_sum
        entries.append((CREDIT_CARD, amount))
    if payment.check_sums or payment.check_sum > 0:
        amount = sum(payment.check_sums, Decimal("0")) if payment.check_sums else payment.check_sum
        entries.append((CHECK, amount))
    if not entries and payment.doc_total and payment.doc_total > 0:
        entries.append((OTHER, payment.doc_total))
    return entries


def analyze_payment_methods(payments: Iterable[PaymentRecord]) -> list[PaymentMethodShare]:
    counts: dict[str, int] = {}
    amounts: dict[str, Decimal] = {}
    total_entries = 0
    for payment in payments:
        for method, amount in payment_method_entries(payment):
            counts[method] = counts.get(method, 0) + 1
            amounts[method] = amounts.get(method, Decimal("0")) + amount
            total_entries += 1

    return [
        PaymentMethodShare(
            method=method,
            count=count,
            amount=amounts[method],
            percentage=safe_percent(count, total_entries),
        )
        for method, count in counts.items()
    ]


def linked_amounts_by_invoice(links: Iterable[PaymentLinkRecord]) -> dict[int, Decimal]:
    totals: dict[int, Decimal] = {}
    for link in links:
        totals[link.invoice_number] = totals.get(link.invoice_number, Decimal("0")) + link.payment_amount
    return totals


def settle_invoice(invoice: InvoiceRecord, linked_total: Decimal, policy: InsightsPolicy) -> InvoiceSettlement:
    # The ERP balance and the payment links can disagree; trust whichever saw more money.
    paid = max(invoice.paid_to_date, linked_total)
    is_paid = paid >= invoice.doc_total - policy.paid_epsilon
    return InvoiceSettlement(
        paid_amount=paid,
        balance=invoice.doc_total - paid,
        is_paid=is_paid,
        partially_paid=paid > 0 and not is_paid,
    )


def payment_days(link: PaymentLinkRecord) -> int:
    return (link.payment_date - link.invoice_date).days


def average_payment_days(links: Iterable[PaymentLinkRecord], policy: InsightsPolicy) -> int | None:
    valid = [days for days in (payment_days(link) for link in links) if 0 <= days < policy.max_payment_days]
    if not valid:
        return None
    return round_half_up(sum(valid) / len(valid))


def classify_payment_timing(days_to_payment: int, policy: InsightsPolicy) -> str:
    terms = policy.standard_payment_terms_days
    if days_to_payment <= 0 or days_to_payment < terms * policy.early_payment_share:
        return "Early"
    if days_to_payment <= terms:
        return "On Time"
    return "Late"


def analyze_payment_timing(links: Iterable[PaymentLinkRecord], policy: InsightsPolicy) -> PaymentTiming:
    tally = {"Early": 0, "On Time": 0, "Late": 0}
    for link in links:
        tally[classify_payment_timing(payment_days(link), policy)] += 1
    analyzed = sum(tally.values())
    return PaymentTiming(
        early_payments=tally["Early"],
        on_time_payments=tally["On Time"],
        late_payments=tally["Late"],
        early_percentage=safe_percent(tally["Early"], analyzed),
        on_time_percentage=safe_percent(tally["On Time"], analyzed),
        late_percentage=safe_percent(tally["Late"], analyzed),
    )


def classify_payment_pattern(total_spent: Decimal, total_paid: Decimal, policy: InsightsPolicy) -> str:
    if total_spent - total_paid <= 0:
        return FULLY_PAID
    ratio = safe_ratio(total_paid, total_spent)
    if ratio >= policy.good_payer_ratio:
        return GOOD_PAYER
    if ratio >= policy.partial_payer_ratio:
        return PARTIAL_PAYER
    if ratio > 0:
        return SLOW_PAYER
    return NO_PAYMENTS
