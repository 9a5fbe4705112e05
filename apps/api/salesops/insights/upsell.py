from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from functools import lru_cache

from salesops.insights.numbers import round_half_up, safe_mean
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import CustomerHistory, CustomerRecord, InvoiceRecord
from salesops.insights.rules import Rule, last_match


@dataclass(frozen=True, slots=True)
class UpsellSignals:
    invoice_count: int
    avg_order_value: Decimal
    avg_days_between_orders: float
    days_since_last_order: int
    is_due_for_order: bool
    purchase_growth_rate: float


@dataclass(frozen=True, slots=True)
class UpsellPlay:
    type: str
    recommendation: str
    product: str
    multiplier: Decimal
    value_floor: Decimal = Decimal("0")


@dataclass(frozen=True, slots=True)
class UpsellOpportunity:
    customer: CustomerRecord
    signals: UpsellSignals
    type: str
    recommendation: str
    product: str
    best_time_to_contact: str
    expected_value: int


NO_PLAY = UpsellPlay(type="", recommendation="", product="", multiplier=Decimal("0"))


@lru_cache(maxsize=8)
def upsell_rules(policy: InsightsPolicy) -> tuple[Rule[UpsellSignals, UpsellPlay], ...]:
    """Override chain for the opportunity type; later rules replace earlier ones."""
    return (
        Rule(
            "reorder",
            lambda s: s.is_due_for_order,
            UpsellPlay(
                type="Reorder",
                recommendation="Contact customer about reordering typical items",
                product="Premium or bulk version of regularly purchased items",
                multiplier=policy.reorder_multiplier,
            ),
        ),
        Rule(
            "premium_upsell",
            lambda s: s.avg_order_value > policy.premium_order_value,
            UpsellPlay(
                type="Premium Upsell",
                recommendation="Offer premium product upgrades based on high spending pattern",
                product="Enterprise-level solutions or exclusive premium options",
                multiplier=policy.premium_multiplier,
            ),
        ),
        Rule(
            "value_add_upsell",
            lambda s: policy.value_add_order_value < s.avg_order_value <= policy.premium_order_value,
            UpsellPlay(
                type="Value-Add Upsell",
                recommendation="Suggest add-on services or product upgrades",
                product="Add-on services, warranties, or complementary products",
                multiplier=policy.value_add_multiplier,
            ),
        ),
        Rule(
            "bundle_upgrade",
            lambda s: s.avg_order_value <= policy.value_add_order_value,
            UpsellPlay(
                type="Bundle Upgrade",
                recommendation="Promote discounted bundle upgrade",
                product="Bundle package with volume discount",
                multiplier=policy.bundle_multiplier,
            ),
        ),
        Rule(
            "growth_account_expansion",
            lambda s: s.purchase_growth_rate > policy.growth_expansion_rate,
            UpsellPlay(
                type="Growth Account Expansion",
                recommendation="Schedule account review to discuss expanded partnership",
                product="Comprehensive solution package",
                multiplier=policy.growth_expansion_multiplier,
            ),
        ),
        Rule(
            "value_recovery",
            lambda s: s.purchase_growth_rate < policy.value_recovery_rate,
            UpsellPlay(
                type="Value Recovery",
                recommendation="Proactive outreach to address potential issues",
                product="Simplified solution package with service guarantees",
                multiplier=policy.value_recovery_multiplier,
                value_floor=policy.value_recovery_floor,
            ),
        ),
    )


def purchase_growth_rate(newest_first: list[InvoiceRecord], policy: InsightsPolicy) -> float:
    """Percent change of the recent half's mean total over the older half's."""
    if len(newest_first) < policy.growth_rate_min_invoices:
        return 0.0
    split = math.ceil(len(newest_first) / 2)
    recent_avg = safe_mean([item.doc_total for item in newest_first[:split]])
    older_avg = safe_mean([item.doc_total for item in newest_first[split:]])
    if older_avg == 0:
        return 0.0
    return float((recent_avg - older_avg) / older_avg * 100)


def upsell_signals(invoices: list[InvoiceRecord], *, today: date, policy: InsightsPolicy) -> UpsellSignals | None:
    if len(invoices) < 2:
        return None

    newest_first = sorted(invoices, key=lambda item: item.doc_date, reverse=True)
    days_since_last = (today - newest_first[0].doc_date).days
    gaps = [
        (newest_first[idx - 1].doc_date - newest_first[idx].doc_date).days
        for idx in range(1, len(newest_first))
    ]
    avg_gap = sum(gaps) / len(gaps)

    # Same-day reorders leave no cadence to reason about.
    if days_since_last > policy.upsell_max_days_since_order or not avg_gap:
        return None

    return UpsellSignals(
        invoice_count=len(newest_first),
        avg_order_value=safe_mean([item.doc_total for item in newest_first]),
        avg_days_between_orders=avg_gap,
        days_since_last_order=days_since_last,
        is_due_for_order=days_since_last >= avg_gap * policy.due_for_order_factor,
        purchase_growth_rate=purchase_growth_rate(newest_first, policy),
    )


def choose_play(signals: UpsellSignals, policy: InsightsPolicy) -> UpsellPlay:
    return last_match(upsell_rules(policy), signals, NO_PLAY)


def derive_upsell_opportunity(
    customer: CustomerRecord,
    invoices: list[InvoiceRecord],
    *,
    today: date,
    policy: InsightsPolicy,
) -> UpsellOpportunity | None:
    signals = upsell_signals(invoices, today=today, policy=policy)
    if signals is None:
        return None

    play = choose_play(signals, policy)
    expected = max(signals.avg_order_value * play.multiplier, play.value_floor)
    if signals.is_due_for_order:
        best_time = "Immediately"
    else:
        best_time = f"In approximately {round_half_up(signals.avg_days_between_orders - signals.days_since_last_order)} days"

    return UpsellOpportunity(
        customer=customer,
        signals=signals,
        type=play.type,
        recommendation=play.recommendation,
        product=play.product,
        best_time_to_contact=best_time,
        expected_value=round_half_up(expected),
    )


def rank_upsell_opportunities(
    histories: Iterable[CustomerHistory],
    *,
    today: date,
    policy: InsightsPolicy,
    limit: int | None = None,
) -> list[UpsellOpportunity]:
    found = []
    for history in histories:
        opportunity = derive_upsell_opportunity(history.customer, history.invoices, today=today, policy=policy)
        if opportunity is not None:
            found.append(opportunity)
    found.sort(key=lambda item: (not item.signals.is_due_for_order, -item.expected_value))
    return found[: limit if limit is not None else policy.top_n]
