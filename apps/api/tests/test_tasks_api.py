from __future__ import annotations

import uuid
from collections.abc import Callable, Generator
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesops import events
from salesops.core.clock import FixedClock, get_clock
from salesops.core.database import Base, get_db
from salesops.core.rbac import ActorUser, get_current_actor
from salesops.main import app
from salesops.sales.models import SalesQuotation
from salesops.team.models import TeamUser
from salesops.workflow.models import WorkflowTask


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
    db_session.commit()
    return {"admin": admin, "manager": manager, "agent": agent, "outsider": outsider}


@pytest.fixture(autouse=True)
def clear_events() -> Generator[None, None, None]:
    events.published_events.clear()
    yield
    events.published_events.clear()


@pytest.fixture()
def client(
    db_session: Session,
    team: dict[str, TeamUser],
) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    current = {"name": "manager"}

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_actor() -> ActorUser:
        user = team[current["name"]]
        return ActorUser(user_id=user.id, role=user.role, correlation_id="corr-tasks")

    def set_actor(name: str) -> None:
        current["name"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_actor
    app.dependency_overrides[get_clock] = lambda: FixedClock(TODAY)
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def _create_task(test_client: TestClient, assignee: TeamUser, **extra) -> dict:
    response = test_client.post(
        "/api/tasks",
        json={"title": "Call about renewal", "due_date": "2024-07-05", "assigned_to_id": str(assignee.id), **extra},
    )
    assert response.status_code == 201
    return response.json()["data"]


def test_create_lead_schedules_follow_up_task(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    team: dict[str, TeamUser],
) -> None:
    test_client, set_actor = client
    set_actor("agent")

    response = test_client.post(
        "/api/leads",
        json={"full_name": "Jamie Rivera", "email": "jamie@example.com", "tags": ["hot", "hot", "partner"]},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Lead created"
    lead = body["data"]
    assert lead["next_follow_up"] == "2024-07-01"
    assert lead["assigned_to_id"] == str(team["agent"].id)
    assert lead["tags"] == ["hot", "partner"]

    task = db_session.scalar(select(WorkflowTask).where(WorkflowTask.lead_id == uuid.UUID(lead["id"])))
    assert task is not None
    assert task.title == "New lead: Jamie Rivera - Initial Contact"
    assert task.description.startswith("A new lead (Jamie Rivera) has been added to the system.")
    assert task.due_date == date(2024, 7, 1)
    assert task.status == "pending"
    assert task.assigned_to_id == team["agent"].id

    created = [item for item in events.published_events if item["event_type"] == "lead.created"]
    assert created and created[-1]["correlation_id"] == "corr-tasks"


def test_lead_assignee_must_be_sales_staff(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, _ = client

    response = test_client.post("/api/leads", json={"full_name": "X", "assigned_to_id": str(team["admin"].id)})

    assert response.status_code == 400
    assert response.json()["message"] == "assigned user must be an active sales agent or sales manager"


def test_leads_are_scoped_to_visible_users(
    client: tuple[TestClient, Callable[[str], None]],
) -> None:
    test_client, set_actor = client
    set_actor("agent")
    lead = test_client.post("/api/leads", json={"full_name": "Scoped Lead", "tags": ["warm"]}).json()["data"]

    set_actor("outsider")
    assert test_client.get(f"/api/leads/{lead['id']}").status_code == 403
    assert test_client.get("/api/leads").json()["data"] == []

    set_actor("manager")
    assert test_client.get(f"/api/leads/{lead['id']}").status_code == 200
    assert test_client.get(f"/api/leads/{uuid.uuid4()}").status_code == 404


def test_lead_tag_filter_counts_full_result(
    client: tuple[TestClient, Callable[[str], None]],
) -> None:
    test_client, _ = client
    for idx in range(3):
        test_client.post("/api/leads", json={"full_name": f"Hot {idx}", "tags": ["hot"]})
    test_client.post("/api/leads", json={"full_name": "Cold", "tags": ["cold"]})

    response = test_client.get("/api/leads", params={"tag": "hot", "limit": 2, "sort_by": "full_name", "sort_order": "asc"})

    body = response.json()
    assert [item["full_name"] for item in body["data"]] == ["Hot 0", "Hot 1"]
    assert body["pagination"]["total_items"] == 3
    assert body["pagination"]["has_next_page"] is True


def test_task_approval_state_machine(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, team["agent"])
    assert task["status"] == "pending"

    early_review = test_client.post(f"/api/tasks/{task['id']}/review", json={"action": "approve"})
    assert early_review.status_code == 409
    assert early_review.json()["message"] == "Cannot move task from pending to completed"

    set_actor("agent")
    requested = test_client.post(f"/api/tasks/{task['id']}/request-approval", json={"comments": "Customer agreed"})
    assert requested.status_code == 200
    assert requested.json()["message"] == "Approval requested"
    assert requested.json()["data"]["status"] == "pending_approval"
    assert requested.json()["data"]["comments"] == "Ana Agent (requested approval): Customer agreed"

    assert test_client.post(f"/api/tasks/{task['id']}/request-approval", json={}).status_code == 409
    assert test_client.post(f"/api/tasks/{task['id']}/review", json={"action": "approve"}).status_code == 403

    set_actor("manager")
    approved = test_client.post(f"/api/tasks/{task['id']}/review", json={"action": "approve", "comments": "Nice"})
    assert approved.status_code == 200
    assert approved.json()["message"] == "Task approved"
    assert approved.json()["data"]["status"] == "completed"
    assert approved.json()["data"]["completed_date"] == "2024-06-30"

    again = test_client.post(f"/api/tasks/{task['id']}/review", json={"action": "reject"})
    assert again.status_code == 409

    transitions = [item["payload"] for item in events.published_events if item["event_type"] == "task.status_changed"]
    assert [(item["from_status"], item["to_status"]) for item in transitions] == [
        ("pending", "pending_approval"),
        ("pending_approval", "completed"),
    ]


def test_rejected_task_has_no_completion_date(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, team["agent"])
    set_actor("agent")
    test_client.post(f"/api/tasks/{task['id']}/request-approval", json={})

    set_actor("manager")
    rejected = test_client.post(f"/api/tasks/{task['id']}/review", json={"action": "reject"})

    assert rejected.json()["message"] == "Task rejected"
    assert rejected.json()["data"]["status"] == "rejected"
    assert rejected.json()["data"]["completed_date"] is None


def test_only_assignee_requests_approval(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, _ = client
    task = _create_task(test_client, team["agent"])

    response = test_client.post(f"/api/tasks/{task['id']}/request-approval", json={})

    assert response.status_code == 403
    assert response.json()["message"] == "Only the assigned user can request approval"


def test_assignee_may_only_comment(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, team["agent"])

    set_actor("agent")
    denied = test_client.patch(f"/api/tasks/{task['id']}", json={"title": "Renamed"})
    assert denied.status_code == 403
    assert denied.json()["message"] == "You can only request approval or add comments to this task"

    commented = test_client.patch(f"/api/tasks/{task['id']}", json={"comments": "Left a voicemail"})
    assert commented.status_code == 200
    assert commented.json()["data"]["comments"] == "Ana Agent: Left a voicemail"

    assert test_client.delete(f"/api/tasks/{task['id']}").status_code == 403


def test_manager_edits_record_reassignment_and_due_date(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, _ = client
    task = _create_task(test_client, team["agent"])

    response = test_client.patch(
        f"/api/tasks/{task['id']}",
        json={"assigned_to_id": str(team["manager"].id), "due_date": "2024-07-10"},
    )

    assert response.status_code == 200
    comments = response.json()["data"]["comments"]
    assert "Maria Manager reassigned this task to Maria Manager." in comments
    assert "Maria Manager changed the due date from 2024-07-05 to 2024-07-10." in comments

    assert test_client.delete(f"/api/tasks/{task['id']}").status_code == 200
    assert test_client.get(f"/api/tasks/{task['id']}").status_code == 404


def test_task_requires_existing_lead(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, _ = client

    response = test_client.post(
        "/api/tasks",
        json={"title": "Orphan", "due_date": "2024-07-05", "lead_id": str(uuid.uuid4())},
    )

    assert response.status_code == 404
    assert response.json()["message"] == "lead not found"


def test_quotation_review_updates_quotation(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    team: dict[str, TeamUser],
) -> None:
    test_client, set_actor = client
    db_session.add(SalesQuotation(doc_entry=77, doc_num=770, card_code="C1", doc_date=TODAY, doc_total=Decimal("900")))
    db_session.commit()

    plain = _create_task(test_client, team["agent"])
    task = _create_task(test_client, team["agent"], type="approval", related_quotation_doc_entry=77)
    set_actor("agent")
    test_client.post(f"/api/tasks/{task['id']}/request-approval", json={})

    set_actor("manager")
    assert test_client.post(f"/api/tasks/{task['id']}/quotation-review", json={"action": "approve"}).status_code == 403

    set_actor("admin")
    not_quote = test_client.post(f"/api/tasks/{plain['id']}/quotation-review", json={"action": "approve"})
    assert not_quote.status_code == 400
    assert not_quote.json()["message"] == "This is not a quotation approval task"
    missing = test_client.post(f"/api/tasks/{uuid.uuid4()}/quotation-review", json={"action": "approve"})
    assert missing.status_code == 404

    reviewed = test_client.post(f"/api/tasks/{task['id']}/quotation-review", json={"action": "approve"})
    assert reviewed.status_code == 200
    body = reviewed.json()
    assert body["message"] == "Quotation approved"
    assert body["data"]["approval_status"] == "approved"
    assert body["data"]["task"]["status"] == "completed"

    quotation = db_session.scalar(select(SalesQuotation).where(SalesQuotation.doc_entry == 77))
    assert quotation is not None and quotation.approval_status == "approved"


def test_quotation_task_needs_known_quotation(
    client: tuple[TestClient, Callable[[str], None]],
) -> None:
    test_client, _ = client

    response = test_client.post(
        "/api/tasks",
        json={"title": "Approve quote", "due_date": "2024-07-05", "related_quotation_doc_entry": 404},
    )

    assert response.status_code == 404
    assert response.json()["message"] == "Related quotation not found"


def test_invalid_review_action_is_a_bad_request(
    client: tuple[TestClient, Callable[[str], None]],
    team: dict[str, TeamUser],
) -> None:
    test_client, _ = client
    task = _create_task(test_client, team["agent"])

    response = test_client.post(f"/api/tasks/{task['id']}/review", json={"action": "maybe"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_deals_are_scoped_by_owner(
    client: tuple[TestClient, Callable[[str], None]],
) -> None:
    test_client, set_actor = client
    set_actor("agent")
    created = test_client.post("/api/deals", json={"deal_name": "Cafe chain rollout", "amount": "12500.50"})
    assert created.status_code == 201
    deal = created.json()["data"]
    assert Decimal(str(deal["amount"])) == Decimal("12500.50")
    assert deal["pipeline"] == "Ecommerce Pipeline"

    set_actor("outsider")
    assert test_client.get(f"/api/deals/{deal['id']}").status_code == 403
    assert test_client.get("/api/deals").json()["pagination"]["total_items"] == 0

    set_actor("manager")
    updated = test_client.patch(f"/api/deals/{deal['id']}", json={"status": "closed_won", "probability": 100})
    assert updated.status_code == 200
    assert updated.json()["data"]["status"] == "closed_won"
    assert test_client.get("/api/deals", params={"sort_by": "amount"}).json()["pagination"]["total_items"] == 1
