from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from functools import lru_cache

from salesops.insights.numbers import round_half_up, safe_mean, safe_percent
from salesops.insights.periods import months_back
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import (
    AgentRecord,
    CallRecord,
    CustomerRecord,
    InvoiceRecord,
    QuotationRecord,
    SalesOrderRecord,
)
from salesops.insights.rules import Rule, last_match, matching


NEEDS_IMPROVEMENT = "Needs Improvement"
AVERAGE_PERFORMER = "Average Performer"
SOLID_PERFORMER = "Solid Performer"
TOP_PERFORMER = "Top Performer"

COACHING_PLAYBOOK: dict[str, tuple[str, ...]] = {
    TOP_PERFORMER: (
        "Consider for mentorship program to help other sales agents",
        "Review for potential advancement opportunities",
        "Provide additional resources to maximize growth potential",
    ),
    SOLID_PERFORMER: (
        "Provide additional product training to increase sales",
        "Set stretch goals with appropriate incentives",
        "Focus on account expansion strategies",
    ),
    AVERAGE_PERFORMER: (
        "Schedule regular coaching sessions",
        "Review sales techniques and offer additional training",
        "Implement structured prospecting plan",
    ),
    NEEDS_IMPROVEMENT: (
        "Implement performance improvement plan",
        "Provide close supervision and weekly check-ins",
        "Offer focused training on key skills gaps",
    ),
}


@dataclass(frozen=True, slots=True)
class PerformanceTier:
    name: str
    headline: str


@dataclass(frozen=True, slots=True)
class AgentMetrics:
    assigned_customers: int
    active_customers: int
    conversion_rate: float
    recent_sales: Decimal
    avg_deal_size: Decimal
    sales_velocity: float
    total_sales: Decimal
    performance_category: str


@dataclass(frozen=True, slots=True)
class AgentActivity:
    orders: int = 0
    order_amount: Decimal = Decimal("0")
    quotations: int = 0
    quotation_amount: Decimal = Decimal("0")
    inbound_calls: int = 0
    outbound_calls: int = 0
    missed_calls: int = 0
    call_duration_seconds: int = 0


@dataclass(frozen=True, slots=True)
class GrowthOpportunity:
    type: str
    description: str
    potential_value: int


@dataclass(frozen=True, slots=True)
class AgentPerformance:
    agent: AgentRecord
    window_start: date
    window_end: date
    metrics: AgentMetrics
    activity: AgentActivity
    insights: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    growth_opportunities: list[GrowthOpportunity] = field(default_factory=list)


@lru_cache(maxsize=8)
def tier_rules(policy: InsightsPolicy) -> tuple[Rule[Decimal, PerformanceTier], ...]:
    return (
        Rule("baseline", lambda sales: True, PerformanceTier(NEEDS_IMPROVEMENT, "Struggling to meet sales targets")),
        Rule(
            "average",
            lambda sales: sales > policy.average_performer_sales,
            PerformanceTier(AVERAGE_PERFORMER, "Meeting basic targets but has room to improve"),
        ),
        Rule(
            "solid",
            lambda sales: sales > policy.solid_performer_sales,
            PerformanceTier(SOLID_PERFORMER, "Meeting expectations with good results"),
        ),
        Rule(
            "top",
            lambda sales: sales > policy.top_performer_sales,
            PerformanceTier(TOP_PERFORMER, "Consistently exceeding sales targets"),
        ),
    )


@lru_cache(maxsize=8)
def advisory_rules(policy: InsightsPolicy) -> tuple[Rule[AgentMetrics, str], ...]:
    """Independent checks; every matching rule contributes its message."""
    return (
        Rule(
            "low_conversion",
            lambda m: m.conversion_rate < policy.low_conversion_rate,
            "Low customer conversion rate - may need help with closing techniques",
        ),
        Rule(
            "high_conversion",
            lambda m: m.conversion_rate > policy.high_conversion_rate,
            "Excellent conversion rate - consider having them share best practices",
        ),
        Rule(
            "small_deals",
            lambda m: m.avg_deal_size < policy.small_deal_size,
            "Low average deal size - focus on upselling strategies",
        ),
        Rule(
            "large_deals",
            lambda m: m.avg_deal_size > policy.large_deal_size,
            "High average deal value - excellent at selling premium solutions",
        ),
        Rule(
            "slow_velocity",
            lambda m: m.sales_velocity < policy.slow_velocity,
            "Low sales velocity - consider pipeline management training",
        ),
        Rule(
            "fast_velocity",
            lambda m: m.sales_velocity > policy.fast_velocity,
            "High deal flow - excellent at prospecting and closing",
        ),
        Rule(
            "light_load",
            lambda m: m.assigned_customers < policy.light_customer_load,
            "Low customer assignment - consider assigning more accounts",
        ),
        Rule(
            "heavy_load",
            lambda m: m.assigned_customers > policy.heavy_customer_load,
            "Very high customer load - may need support or redistribution",
        ),
    )


def classify_tier(recent_sales: Decimal, policy: InsightsPolicy) -> PerformanceTier:
    return last_match(tier_rules(policy), recent_sales, tier_rules(policy)[0].outcome)


def summarize_activity(
    orders: Iterable[SalesOrderRecord],
    quotations: Iterable[QuotationRecord],
    calls: Iterable[CallRecord],
) -> AgentActivity:
    order_list = list(orders)
    quotation_list = list(quotations)
    call_list = list(calls)
    return AgentActivity(
        orders=len(order_list),
        order_amount=sum((order.doc_total for order in order_list), Decimal("0")),
        quotations=len(quotation_list),
        quotation_amount=sum((quotation.doc_total for quotation in quotation_list), Decimal("0")),
        inbound_calls=sum(1 for call in call_list if call.direction == "in"),
        outbound_calls=sum(1 for call in call_list if call.direction == "out"),
        missed_calls=sum(1 for call in call_list if call.missed),
        call_duration_seconds=sum(call.duration_seconds for call in call_list),
    )


def _expansion_opportunity(
    customers: list[CustomerRecord],
    invoices: list[InvoiceRecord],
    avg_deal_size: Decimal,
    policy: InsightsPolicy,
) -> GrowthOpportunity | None:
    counts: dict[str, int] = {}
    for invoice in invoices:
        counts[invoice.card_code] = counts.get(invoice.card_code, 0) + 1
    repeat_accounts = [
        customer for customer in customers if counts.get(customer.card_code, 0) >= policy.expansion_min_invoices
    ][: policy.expansion_top_accounts]
    if not repeat_accounts:
        return None
    return GrowthOpportunity(
        type="Account Expansion",
        description=f"Focus on expanding {len(repeat_accounts)} key accounts",
        potential_value=round_half_up(avg_deal_size * len(repeat_accounts) * policy.expansion_value_share),
    )


def score_agent_performance(
    agent: AgentRecord,
    customers: Iterable[CustomerRecord],
    invoices: Iterable[InvoiceRecord],
    *,
    today: date,
    policy: InsightsPolicy,
    window: tuple[date, date] | None = None,
    orders: Iterable[SalesOrderRecord] = (),
    quotations: Iterable[QuotationRecord] = (),
    calls: Iterable[CallRecord] = (),
) -> AgentPerformance:
    """Score one agent from the invoices of the customers assigned to them.

    ``window`` bounds the recent-sales figure (inclusive); it defaults to the
    last ``recent_sales_window_days`` days ending today. Velocity always looks
    back ``velocity_months`` calendar months from today.
    """
    customer_list = list(customers)
    invoice_list = list(invoices)
    start, end = window if window is not None else (today - timedelta(days=policy.recent_sales_window_days), today)

    recent_sales = sum(
        (invoice.doc_total for invoice in invoice_list if start <= invoice.doc_date <= end),
        Decimal("0"),
    )
    active_codes = {invoice.card_code for invoice in invoice_list}
    velocity_start = months_back(today, policy.velocity_months)
    velocity_count = sum(1 for invoice in invoice_list if velocity_start <= invoice.doc_date <= today)
    avg_deal_size = safe_mean([invoice.doc_total for invoice in invoice_list])
    tier = classify_tier(recent_sales, policy)

    metrics = AgentMetrics(
        assigned_customers=len(customer_list),
        active_customers=len(active_codes),
        conversion_rate=safe_percent(len(active_codes), len(customer_list)),
        recent_sales=recent_sales,
        avg_deal_size=avg_deal_size,
        sales_velocity=velocity_count / policy.velocity_months if policy.velocity_months else 0.0,
        total_sales=sum((invoice.doc_total for invoice in invoice_list), Decimal("0")),
        performance_category=tier.name,
    )

    opportunity = _expansion_opportunity(customer_list, invoice_list, avg_deal_size, policy)
    return AgentPerformance(
        agent=agent,
        window_start=start,
        window_end=end,
        metrics=metrics,
        activity=summarize_activity(
            (order for order in orders if start <= order.doc_date <= end),
            (quotation for quotation in quotations if start <= quotation.doc_date <= end),
            (call for call in calls if start <= call.started_at.date() <= end),
        ),
        insights=[tier.headline, *matching(advisory_rules(policy), metrics)],
        recommendations=list(COACHING_PLAYBOOK[tier.name]),
        growth_opportunities=[opportunity] if opportunity is not None else [],
    )


def rank_agent_performance(scorecards: Iterable[AgentPerformance]) -> list[AgentPerformance]:
    return sorted(scorecards, key=lambda card: card.metrics.recent_sales, reverse=True)
