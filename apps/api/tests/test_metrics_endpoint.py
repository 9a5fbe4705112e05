from __future__ import annotations

from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesops.core.auth import AuthUser, get_current_user
from salesops.core.config import get_settings
from salesops.core.database import Base, get_db
from salesops.main import app
from salesops.metrics import resolve_http_path_label
from salesops.team.models import TeamUser


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


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def manager(db_session: Session) -> TeamUser:
    user = TeamUser(email="metrics@example.com", first_name="Mae", last_name="Trics", role="sales_manager")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def client(
    db_session: Session,
    manager: TeamUser,
) -> Generator[tuple[TestClient, Callable[[list[str]], None]], None, None]:
    current = {"roles": ["sales_manager", "system.metrics.read"]}

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def set_roles(roles: list[str]) -> None:
        current["roles"] = roles

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: AuthUser(sub=str(manager.id), roles=current["roles"])

    with TestClient(app) as test_client:
        yield test_client, set_roles

    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_insight_and_task_metrics(
    client: tuple[TestClient, Callable[[list[str]], None]],
    manager: TeamUser,
) -> None:
    test_client, _ = client
    assert test_client.get("/api/health").status_code == 200
    assert test_client.get("/api/insights/recommendations").status_code == 200

    task = test_client.post(
        "/api/tasks",
        json={"title": "Quarterly review", "due_date": "2030-03-01", "assigned_to_id": str(manager.id)},
    )
    assert task.status_code == 201
    requested = test_client.post(f"/api/tasks/{task.json()['data']['id']}/request-approval", json={})
    assert requested.status_code == 200

    metrics = test_client.get("/api/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "insight_computation_seconds" in body
    assert "task_transitions_total" in body

    assert 'path="/api/health"' in body
    assert 'path="/api/tasks/{id}/request-approval"' in body
    assert 'component="potential"' in body
    assert 'from_status="pending",to_status="pending_approval"' in body


def test_metrics_require_permission(client: tuple[TestClient, Callable[[list[str]], None]]) -> None:
    test_client, set_roles = client
    set_roles(["sales_agent"])

    response = test_client.get("/api/metrics")

    assert response.status_code == 403
    assert response.json()["message"] == "Missing permission: system.metrics.read"


def test_admins_can_read_metrics(client: tuple[TestClient, Callable[[list[str]], None]]) -> None:
    test_client, set_roles = client
    set_roles(["admin"])

    assert test_client.get("/api/metrics").status_code == 200


def test_metrics_hidden_when_disabled(
    client: tuple[TestClient, Callable[[list[str]], None]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    test_client, _ = client
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    assert test_client.get("/api/metrics").status_code == 404


class _FakeRoute:
    path_format = "/api/journeys/{card_code}"


class _FakeUrl:
    path = "/api/journeys/C1"


class _FakeRequest:
    def __init__(self, with_route: bool, path: str = "/api/journeys/C1") -> None:
        self.scope = {"route": _FakeRoute()} if with_route else {}
        self.url = _FakeUrl()
        self.url.path = path


def test_path_label_prefers_route_template_and_masks_ids() -> None:
    assert resolve_http_path_label(_FakeRequest(with_route=True)) == "/api/journeys/{id}"
    assert (
        resolve_http_path_label(_FakeRequest(with_route=False, path="/api/tasks/7c9e6679-7425-40de-944b-e07fc1f90ae7"))
        == "/api/tasks/{id}"
    )
    assert resolve_http_path_label(_FakeRequest(with_route=False, path="/api/sales/invoices/42")) == "/api/sales/invoices/{id}"
