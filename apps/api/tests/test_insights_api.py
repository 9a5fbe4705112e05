from __future__ import annotations

import uuid
from collections.abc import Callable, Generator
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesops.core.clock import FixedClock, get_clock
from salesops.core.database import Base, get_db
from salesops.core.rbac import ActorUser, get_current_actor
from salesops.main import app
from salesops.sales.models import SalesCustomer, SalesInvoice, SalesPayment, SalesPaymentLink
from salesops.team.models import TeamUser


TODAY = date(2024, 6, 30)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _invoice(doc_entry: int, card_code: str, card_name: str, days_ago: int, total: str) -> SalesInvoice:
    return SalesInvoice(
        doc_entry=doc_entry,
        doc_num=doc_entry,
        card_code=card_code,
        card_name=card_name,
        doc_date=TODAY - timedelta(days=days_ago),
        doc_total=Decimal(total),
    )


@pytest.fixture()
def team(db_session: Session) -> dict[str, TeamUser]:
    admin = TeamUser(email="admin@example.com", first_name="Ada", last_name="Admin", role="admin")
    manager = TeamUser(email="maria@example.com", first_name="Maria", last_name="Manager", role="sales_manager")
    db_session.add_all([admin, manager])
    db_session.flush()
    agent = TeamUser(
        email="ana@example.com", first_name="Ana", last_name="Agent", role="sales_agent", manager_id=manager.id
    )
    outsider = TeamUser(email="otto@example.com", first_name="Otto", last_name="Outside", role="sales_agent")
    db_session.add_all([agent, outsider])
    db_session.flush()

    db_session.add_all(
        [
            SalesCustomer(card_code="C1", card_name="Harbor Cafe", assigned_to_id=agent.id),
            SalesCustomer(card_code="C2", card_name="City Market", assigned_to_id=outsider.id),
            SalesCustomer(card_code="C3", card_name="Dairy Farm Co", assigned_to_id=manager.id),
            _invoice(1, "C1", "Harbor Cafe", 10, "800"),
            _invoice(2, "C1", "Harbor Cafe", 40, "800"),
            _invoice(3, "C1", "Harbor Cafe", 70, "800"),
            _invoice(4, "C2", "City Market", 30, "2000"),
            _invoice(5, "C2", "City Market", 60, "2000"),
            _invoice(6, "C2", "City Market", 90, "2000"),
            _invoice(7, "C3", "Dairy Farm Co", 200, "500"),
            SalesPayment(
                doc_entry=100,
                doc_num=100,
                card_code="C1",
                card_name="Harbor Cafe",
                doc_date=TODAY - timedelta(days=5),
                cash_sum=Decimal("800"),
            ),
            SalesPaymentLink(
                payment_number=100,
                invoice_number=1,
                payment_amount=Decimal("800"),
                invoice_amount=Decimal("800"),
                payment_date=TODAY - timedelta(days=5),
                invoice_date=TODAY - timedelta(days=10),
                customer_code="C1",
            ),
        ]
    )
    db_session.commit()
    return {"admin": admin, "manager": manager, "agent": agent, "outsider": outsider}


@pytest.fixture()
def client(
    db_session: Session,
    team: dict[str, TeamUser],
) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    current = {"name": "admin"}

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_actor() -> ActorUser:
        user = team[current["name"]]
        return ActorUser(user_id=user.id, role=user.role, correlation_id="corr-insights")

    def set_actor(name: str) -> None:
        current["name"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_actor
    app.dependency_overrides[get_clock] = lambda: FixedClock(TODAY)
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def test_agent_recommendations_cover_own_customers_only(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    set_actor("agent")

    response = test_client.get("/api/insights/recommendations")

    assert response.status_code == 200
    feed = response.json()["data"]
    assert [item["customer"]["card_code"] for item in feed["high_potential_customers"]] == ["C1"]
    assert feed["high_potential_customers"][0]["opportunities"][0]["type"] == "loyalty"
    [upsell] = feed["upsell_opportunities"]
    assert upsell["type"] == "Bundle Upgrade"
    assert upsell["best_time_to_contact"] == "In approximately 20 days"
    assert upsell["expected_value"] == 400
    assert feed["cross_sell_suggestions"][0]["primary_category"] == "Food Products"
    assert feed["business_insights"]["metrics"]["total_customers"] == 1
    assert feed["performance_insights"] is None


def test_manager_recommendations_include_direct_reports(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, set_actor = client
    set_actor("manager")

    feed = test_client.get("/api/insights/recommendations").json()["data"]

    codes = {item["customer"]["card_code"] for item in feed["cross_sell_suggestions"]}
    assert codes == {"C1", "C3"}
    assert [card["agent"]["id"] for card in feed["performance_insights"]] == [str(team["agent"].id)]


def test_admin_recommendations_rank_all_sales_agents(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    feed = test_client.get("/api/insights/recommendations").json()["data"]

    assert feed["business_insights"]["metrics"]["total_customers"] == 3
    ranked = [(card["agent"]["first_name"], Decimal(str(card["metrics"]["recent_sales"]))) for card in feed["performance_insights"]]
    assert ranked == [("Otto", Decimal("2000")), ("Ana", Decimal("800"))]


def test_customer_journey_scope_and_metrics(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    set_actor("agent")

    assert test_client.get("/api/journeys/C2").status_code == 404
    assert test_client.get("/api/journeys/NOPE").status_code == 404

    response = test_client.get("/api/journeys/C1", params={"period": "fortnightly"})
    assert response.status_code == 200
    detail = response.json()["data"]
    assert detail["period"] == "quarterly"
    assert detail["customer"]["assigned_to_name"] == "Ana Agent"
    metrics = detail["journey"]["metrics"]
    assert Decimal(str(metrics["total_invoice_amount_gross"])) == Decimal("2400")
    assert Decimal(str(metrics["total_paid_amount"])) == Decimal("800")
    assert Decimal(str(metrics["outstanding_balance"])) == Decimal("1600")
    assert metrics["average_payment_days"] == 5
    assert detail["journey"]["lifecycle_stage"] == "Active"
    assert detail["journey"]["days_since_last_activity"] == 5


def test_customer_journey_weekly_window(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    response = test_client.get(
        "/api/journeys/C1",
        params={"period": "weekly", "start_date": "2024-06-01", "end_date": "2024-06-30"},
    )

    detail = response.json()["data"]
    assert detail["journey"]["metrics"]["total_invoices"] == 1
    weeks = [bucket["period"] for bucket in detail["journey"]["activity"]]
    assert weeks[0] == "2024-W22"
    assert weeks[-1] == "2024-W26"
    assert all(bucket["display_name"] for bucket in detail["journey"]["activity"])

    bad = test_client.get("/api/journeys/C1", params={"start_date": "2024-07-01", "end_date": "2024-06-01"})
    assert bad.status_code == 400
    assert bad.json()["message"] == "start_date must not be after end_date"


def test_interaction_timeline(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    timeline = test_client.get("/api/journeys/C1/timeline").json()["data"]

    assert timeline["invoice_count"] == 3
    assert timeline["payment_count"] == 1
    assert timeline["payment_link_count"] == 1
    assert timeline["events"][-1]["type"] in {"payment_made", "invoice_payment"}


def test_journey_summary_paginates_after_full_distribution(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    response = test_client.get("/api/journeys/summary", params={"limit": 2})

    body = response.json()
    assert [row["card_code"] for row in body["data"]["customers"]] == ["C2", "C1"]
    assert body["data"]["total_customers"] == 3
    assert body["data"]["lifecycle_distribution"] == {"Active": 2, "Recent": 0, "Lapsed": 0, "Inactive": 1}
    assert body["pagination"]["total_pages"] == 2

    by_name = test_client.get("/api/journeys/summary", params={"sort_by": "customer_name", "sort_order": "asc"})
    assert [row["customer_name"] for row in by_name.json()["data"]["customers"]] == [
        "City Market",
        "Dairy Farm Co",
        "Harbor Cafe",
    ]

    filtered = test_client.get("/api/journeys/summary", params={"min_invoice_count": 2, "min_amount": "3000"})
    assert [row["card_code"] for row in filtered.json()["data"]["customers"]] == ["C2"]

    searched = test_client.get("/api/journeys/summary", params={"q": "harbor"})
    assert [row["card_code"] for row in searched.json()["data"]["customers"]] == ["C1"]

    assert test_client.get("/api/journeys/summary", params={"sort_by": "favourite"}).status_code == 400


def test_journey_analytics_and_segments(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client

    analytics = test_client.get("/api/journeys/analytics").json()["data"]
    assert analytics["overall"]["total_customers"] == 3
    assert analytics["top_customers"][0]["card_code"] == "C2"

    segments = test_client.get("/api/journeys/segments", params={"min_amount": "1000", "max_amount": "5000"}).json()["data"]
    assert [item["card_code"] for item in segments["customers"]] == ["C1"]

    assert test_client.get("/api/journeys/segments", params={"min_amount": "10", "max_amount": "1"}).status_code == 400

    set_actor("agent")
    scoped = test_client.get("/api/journeys/analytics").json()["data"]
    assert scoped["overall"]["total_customers"] == 1


def test_agent_scorecard_visibility(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, set_actor = client
    set_actor("agent")

    assert test_client.get(f"/api/agents/{team['outsider'].id}/scorecard").status_code == 403
    assert test_client.get(f"/api/agents/{uuid.uuid4()}/scorecard").status_code == 404
    assert test_client.get(f"/api/agents/{team['admin'].id}/scorecard").status_code == 404

    own = test_client.get(f"/api/agents/{team['agent'].id}/scorecard")
    assert own.status_code == 200
    assert Decimal(str(own.json()["data"]["metrics"]["recent_sales"])) == Decimal("800")

    set_actor("manager")
    windowed = test_client.get(
        f"/api/agents/{team['agent'].id}/scorecard",
        params={"start_date": "2024-04-01", "end_date": "2024-05-31"},
    )
    assert windowed.status_code == 200
    data = windowed.json()["data"]
    assert data["window_start"] == "2024-04-01"
    assert Decimal(str(data["metrics"]["recent_sales"])) == Decimal("1600")


def test_agent_performance_scope(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, set_actor = client

    admin_view = test_client.get("/api/agents/performance").json()["data"]
    assert {card["agent"]["first_name"] for card in admin_view} == {"Ana", "Otto"}

    set_actor("agent")
    agent_view = test_client.get("/api/agents/performance").json()["data"]
    assert [card["agent"]["id"] for card in agent_view] == [str(team["agent"].id)]


def test_kpis_follow_visibility(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client

    everything = test_client.get("/api/sales/kpis").json()["data"]
    assert everything["total_invoices"] == 7
    assert everything["unique_customers"] == 3

    set_actor("manager")
    scoped = test_client.get("/api/sales/kpis").json()["data"]
    assert scoped["total_invoices"] == 4
    assert Decimal(str(scoped["total_revenue"])) == Decimal("2900")
