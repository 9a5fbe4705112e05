from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesops.core.auth import AuthUser, get_current_user
from salesops.core.config import get_settings
from salesops.core.database import Base, get_db
from salesops.logging import JsonLogFormatter
from salesops.main import app
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
def reset_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def manager(db_session: Session) -> TeamUser:
    user = TeamUser(email="log@example.com", first_name="Lou", last_name="Logger", role="sales_manager")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def client(db_session: Session, manager: TeamUser) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: AuthUser(sub=str(manager.id), roles=["sales_manager"])
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    task_id = uuid.uuid4()
    response = client.get(f"/api/tasks/{task_id}", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "salesops.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/tasks/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_slow_requests_log_at_warning(
    client: TestClient,
    caplog: pytest.LogCaptureFixture,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("SLOW_REQUEST_MS", "0")
    get_settings.cache_clear()
    caplog.set_level(logging.INFO)

    client.get("/api/health")

    slow = [record for record in caplog.records if record.getMessage() == "http.slow_request"]
    assert slow
    assert slow[-1].levelno == logging.WARNING


def test_task_transition_log_carries_task_and_correlation(
    client: TestClient,
    manager: TeamUser,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)

    created = client.post(
        "/api/tasks",
        json={"title": "Send pricing", "due_date": "2030-01-10", "assigned_to_id": str(manager.id)},
    )
    assert created.status_code == 201
    task_id = created.json()["data"]["id"]

    requested = client.post(
        f"/api/tasks/{task_id}/request-approval",
        json={"comments": "Ready"},
        headers={"X-Correlation-Id": "corr-transition"},
    )
    assert requested.status_code == 200

    transitions = [record for record in caplog.records if record.name == "salesops.workflow"]
    assert any(
        getattr(record, "task_id", None) == task_id
        and getattr(record, "from_status", None) == "pending"
        and getattr(record, "to_status", None) == "pending_approval"
        and getattr(record, "correlation_id", None) == "corr-transition"
        for record in transitions
    )


def test_json_formatter_keeps_known_fields_only() -> None:
    record = logging.makeLogRecord(
        {
            "name": "salesops.insights",
            "levelname": "INFO",
            "msg": "insights.recommendations",
            "correlation_id": "corr-json",
            "role": "admin",
            "customers": 3,
            "secret_token": "do-not-log",
            "error": "x" * 600,
        }
    )

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["logger"] == "salesops.insights"
    assert payload["msg"] == "insights.recommendations"
    assert payload["correlation_id"] == "corr-json"
    assert payload["fields"]["role"] == "admin"
    assert payload["fields"]["customers"] == 3
    assert "secret_token" not in payload["fields"]
    assert len(payload["fields"]["error"]) == 500
