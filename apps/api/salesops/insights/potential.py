from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from salesops.insights.numbers import safe_mean
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import CustomerHistory, CustomerRecord, InvoiceRecord


@dataclass(frozen=True, slots=True)
class OpportunityTag:
    type: str
    description: str
    action: str


@dataclass(slots=True)
class CustomerPotential:
    customer: CustomerRecord
    total_spend: Decimal
    avg_order_value: Decimal
    purchase_frequency_days: float
    recency_days: int
    estimated_annual_value: Decimal
    invoice_count: int
    potential_score: float
    opportunities: list[OpportunityTag] = field(default_factory=list)


def purchase_frequency_days(invoices: Iterable[InvoiceRecord]) -> float:
    """Mean whole-day gap between consecutive invoices, oldest first."""
    ordered = sorted(invoices, key=lambda item: item.doc_date)
    if len(ordered) < 2:
        return 0.0
    gaps = [(ordered[idx].doc_date - ordered[idx - 1].doc_date).days for idx in range(1, len(ordered))]
    return sum(gaps) / len(gaps)


def score_customer_potential(
    customer: CustomerRecord,
    invoices: list[InvoiceRecord],
    *,
    today: date,
    policy: InsightsPolicy,
) -> CustomerPotential:
    totals = [invoice.doc_total for invoice in invoices]
    total_spend = sum(totals, Decimal("0"))
    avg_order_value = safe_mean(totals)
    frequency = purchase_frequency_days(invoices)

    if invoices:
        recency = (today - max(invoice.doc_date for invoice in invoices)).days
    else:
        recency = policy.cold_recency_days

    # Placeholder projection: one average order per frequency interval over a year.
    estimated_annual_value = Decimal("0")
    if frequency > 0:
        estimated_annual_value = avg_order_value * 365 / Decimal(str(frequency))

    score = (
        recency * policy.recency_weight
        + frequency * policy.frequency_weight
        - float(total_spend) / policy.spend_divisor
    )

    return CustomerPotential(
        customer=customer,
        total_spend=total_spend,
        avg_order_value=avg_order_value,
        purchase_frequency_days=frequency,
        recency_days=recency,
        estimated_annual_value=estimated_annual_value,
        invoice_count=len(invoices),
        potential_score=score,
    )


def opportunity_tags(potential: CustomerPotential, policy: InsightsPolicy) -> list[OpportunityTag]:
    tags: list[OpportunityTag] = []
    if potential.recency_days < policy.loyalty_recency_days:
        tags.append(
            OpportunityTag(
                type="loyalty",
                description="Regular buyer eligible for loyalty program",
                action="Offer exclusive access to new products or premium services",
            )
        )
    elif potential.recency_days < policy.reengagement_recency_days:
        tags.append(
            OpportunityTag(
                type="reengagement",
                description="Previous regular customer showing reduced activity",
                action="Personalized offer based on past purchase patterns",
            )
        )
    else:
        tags.append(
            OpportunityTag(
                type="reactivation",
                description="Previously valuable customer has become inactive",
                action="Targeted reactivation campaign with special incentives",
            )
        )

    if potential.total_spend > policy.vip_spend:
        tags.append(
            OpportunityTag(
                type="vip",
                description="High-value customer",
                action="Schedule quarterly business review meeting",
            )
        )

    if potential.estimated_annual_value > policy.growth_annual_value:
        tags.append(
            OpportunityTag(
                type="growth",
                description="High CLV potential",
                action="Develop custom expansion strategy to grow account share",
            )
        )
    return tags


def rank_high_potential_customers(
    histories: Iterable[CustomerHistory],
    *,
    today: date,
    policy: InsightsPolicy,
    limit: int | None = None,
) -> list[CustomerPotential]:
    """Score every customer with at least one invoice; lower scores rank first."""
    scored = [
        score_customer_potential(history.customer, history.invoices, today=today, policy=policy)
        for history in histories
        if history.invoices
    ]
    scored.sort(key=lambda item: item.potential_score)
    top = scored[: limit if limit is not None else policy.top_n]
    for item in top:
        item.opportunities = opportunity_tags(item, policy)
    return top
