from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from salesops.insights.performance import (
    COACHING_PLAYBOOK,
    classify_tier,
    rank_agent_performance,
    score_agent_performance,
)
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import (
    AgentRecord,
    CallRecord,
    CustomerRecord,
    InvoiceRecord,
    QuotationRecord,
    SalesOrderRecord,
)


TODAY = date(2024, 6, 30)
POLICY = InsightsPolicy()


def _agent(name: str = "Ana") -> AgentRecord:
    return AgentRecord(id=uuid.uuid4(), first_name=name, last_name="Lopez", email=f"{name.lower()}@example.com", role="sales_agent")


def _invoice(doc_num: int, card_code: str, days_ago: int, total: str) -> InvoiceRecord:
    return InvoiceRecord(
        doc_entry=doc_num,
        doc_num=doc_num,
        card_code=card_code,
        card_name=card_code,
        doc_date=TODAY - timedelta(days=days_ago),
        doc_total=Decimal(total),
    )


@pytest.mark.parametrize(
    ("sales", "tier"),
    [
        ("0", "Needs Improvement"),
        ("10000", "Needs Improvement"),
        ("10000.01", "Average Performer"),
        ("25000", "Average Performer"),
        ("25001", "Solid Performer"),
        ("50000", "Solid Performer"),
        ("50001", "Top Performer"),
    ],
)
def test_tier_thresholds_are_strict(sales: str, tier: str) -> None:
    assert classify_tier(Decimal(sales), POLICY).name == tier


def test_scorecard_metrics_advisories_and_expansion() -> None:
    customers = [CustomerRecord("A", "Alpha"), CustomerRecord("B", "Beta")]
    invoices = [_invoice(1, "A", 5, "20000"), _invoice(2, "A", 10, "20000"), _invoice(3, "A", 40, "20000")]

    card = score_agent_performance(_agent(), customers, invoices, today=TODAY, policy=POLICY)

    assert card.window_start == TODAY - timedelta(days=30)
    assert card.window_end == TODAY
    assert card.metrics.recent_sales == Decimal("40000")
    assert card.metrics.total_sales == Decimal("60000")
    assert card.metrics.conversion_rate == 50.0
    assert card.metrics.active_customers == 1
    assert card.metrics.sales_velocity == pytest.approx(0.5)
    assert card.metrics.performance_category == "Solid Performer"
    assert card.insights == [
        "Meeting expectations with good results",
        "High average deal value - excellent at selling premium solutions",
        "Low sales velocity - consider pipeline management training",
        "Low customer assignment - consider assigning more accounts",
    ]
    assert card.recommendations == list(COACHING_PLAYBOOK["Solid Performer"])
    assert len(card.growth_opportunities) == 1
    assert card.growth_opportunities[0].description == "Focus on expanding 1 key accounts"
    assert card.growth_opportunities[0].potential_value == 10000


def test_agent_without_customers_is_still_scored() -> None:
    card = score_agent_performance(_agent(), [], [], today=TODAY, policy=POLICY)

    assert card.metrics.conversion_rate == 0.0
    assert card.metrics.avg_deal_size == Decimal("0")
    assert card.metrics.performance_category == "Needs Improvement"
    assert card.insights[0] == "Struggling to meet sales targets"
    assert "Low customer conversion rate - may need help with closing techniques" in card.insights
    assert card.growth_opportunities == []


def test_custom_window_bounds_sales_and_activity() -> None:
    window = (date(2024, 1, 1), date(2024, 1, 31))
    invoices = [
        InvoiceRecord(1, 1, "A", "A", date(2024, 1, 15), Decimal("12000")),
        InvoiceRecord(2, 2, "A", "A", date(2024, 2, 1), Decimal("99999")),
    ]
    orders = [
        SalesOrderRecord(1, "A", date(2024, 1, 10), Decimal("300")),
        SalesOrderRecord(2, "A", date(2023, 12, 31), Decimal("700")),
    ]
    quotations = [QuotationRecord(1, "A", date(2024, 1, 31), Decimal("450"))]
    calls = [
        CallRecord(datetime(2024, 1, 5, 9, 0), "in", duration_seconds=60),
        CallRecord(datetime(2024, 1, 6, 9, 0), "out", missed=True),
        CallRecord(datetime(2024, 3, 1, 9, 0), "out", duration_seconds=600),
    ]

    card = score_agent_performance(
        _agent(),
        [CustomerRecord("A", "Alpha")],
        invoices,
        today=TODAY,
        policy=POLICY,
        window=window,
        orders=orders,
        quotations=quotations,
        calls=calls,
    )

    assert card.metrics.recent_sales == Decimal("12000")
    assert card.metrics.performance_category == "Average Performer"
    assert card.activity.orders == 1
    assert card.activity.order_amount == Decimal("300")
    assert card.activity.quotations == 1
    assert card.activity.inbound_calls == 1
    assert card.activity.outbound_calls == 1
    assert card.activity.missed_calls == 1
    assert card.activity.call_duration_seconds == 60


def test_ranking_by_recent_sales() -> None:
    slow = score_agent_performance(_agent("Slow"), [CustomerRecord("A", "A")], [_invoice(1, "A", 3, "100")], today=TODAY, policy=POLICY)
    fast = score_agent_performance(_agent("Fast"), [CustomerRecord("B", "B")], [_invoice(2, "B", 3, "900")], today=TODAY, policy=POLICY)
    idle = score_agent_performance(_agent("Idle"), [], [], today=TODAY, policy=POLICY)

    ranked = rank_agent_performance([slow, idle, fast])

    assert [card.agent.first_name for card in ranked] == ["Fast", "Slow", "Idle"]
