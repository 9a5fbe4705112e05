"""Heuristic thresholds and weights used by the insight derivations.

Every number that shapes a score, a tier or a classification lives here so
that one place can be tuned (through ``INSIGHTS_POLICY_OVERRIDES``) without
touching the derivation code.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from salesops.core.config import get_settings


@dataclass(frozen=True, slots=True)
class InsightsPolicy:
    # Customer potential score
    recency_weight: float = 0.4
    frequency_weight: float = 0.3
    spend_divisor: float = 1000.0
    cold_recency_days: int = 365
    top_n: int = 5

    # Opportunity tags
    loyalty_recency_days: int = 30
    reengagement_recency_days: int = 90
    vip_spend: Decimal = Decimal("10000")
    growth_annual_value: Decimal = Decimal("20000")

    # Upsell
    upsell_max_days_since_order: int = 120
    due_for_order_factor: float = 0.8
    growth_rate_min_invoices: int = 4
    premium_order_value: Decimal = Decimal("5000")
    value_add_order_value: Decimal = Decimal("1000")
    reorder_multiplier: Decimal = Decimal("1.2")
    premium_multiplier: Decimal = Decimal("0.3")
    value_add_multiplier: Decimal = Decimal("0.25")
    bundle_multiplier: Decimal = Decimal("0.5")
    growth_expansion_rate: float = 20.0
    growth_expansion_multiplier: Decimal = Decimal("2")
    value_recovery_rate: float = -10.0
    value_recovery_multiplier: Decimal = Decimal("0.5")
    value_recovery_floor: Decimal = Decimal("1000")

    # Cross-sell
    cross_sell_premium_spend: Decimal = Decimal("10000")
    cross_sell_complementary_spend: Decimal = Decimal("5000")
    cross_sell_value_share: Decimal = Decimal("0.3")

    # Lifecycle stage upper bounds, inclusive
    lifecycle_active_days: int = 30
    lifecycle_recent_days: int = 90
    lifecycle_lapsed_days: int = 180

    # Payment behaviour
    good_payer_ratio: float = 0.8
    partial_payer_ratio: float = 0.5
    paid_epsilon: Decimal = Decimal("0.01")
    standard_payment_terms_days: int = 30
    early_payment_share: float = 0.8
    max_payment_days: int = 365

    # Agent scoring
    recent_sales_window_days: int = 30
    velocity_months: int = 6
    top_performer_sales: Decimal = Decimal("50000")
    solid_performer_sales: Decimal = Decimal("25000")
    average_performer_sales: Decimal = Decimal("10000")
    low_conversion_rate: float = 30.0
    high_conversion_rate: float = 70.0
    small_deal_size: Decimal = Decimal("1000")
    large_deal_size: Decimal = Decimal("5000")
    slow_velocity: float = 2.0
    fast_velocity: float = 10.0
    light_customer_load: int = 5
    heavy_customer_load: int = 30
    expansion_min_invoices: int = 3
    expansion_top_accounts: int = 3
    expansion_value_share: Decimal = Decimal("0.5")

    # Business insights
    active_customer_days: int = 90
    positive_engagement_ratio: float = 0.7
    aov_benchmark_factor: Decimal = Decimal("0.9")
    placeholder_retention_rate: float = 70.0
    placeholder_sales_cycle_days: int = 15
    trend_months: int = 6
    top_list_size: int = 50


def build_insights_policy(overrides: dict[str, Any] | None = None) -> InsightsPolicy:
    policy = InsightsPolicy()
    if not overrides:
        return policy

    known = {item.name: item for item in dataclasses.fields(InsightsPolicy)}
    unknown = sorted(set(overrides) - set(known))
    if unknown:
        raise ValueError(f"Unknown insights policy fields: {', '.join(unknown)}")

    coerced: dict[str, Any] = {}
    for name, value in overrides.items():
        default = getattr(policy, name)
        if isinstance(default, Decimal):
            coerced[name] = Decimal(str(value))
        elif isinstance(default, bool):
            coerced[name] = bool(value)
        elif isinstance(default, int):
            coerced[name] = int(value)
        elif isinstance(default, float):
            coerced[name] = float(value)
        else:
            coerced[name] = value
    return dataclasses.replace(policy, **coerced)


def get_insights_policy() -> InsightsPolicy:
    return build_insights_policy(get_settings().insights_policy_overrides)
