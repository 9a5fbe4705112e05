from __future__ import annotations

from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesops.core.database import Base, get_db
from salesops.core.rbac import ActorUser, get_current_actor
from salesops.main import app
from salesops.team.models import TeamUser
from salesops.team.service import agents_managed_by, can_see_user, visible_user_ids


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
    director = TeamUser(email="dora@example.com", first_name="Dora", last_name="Director", role="sales_manager")
    db_session.add_all([admin, director])
    db_session.flush()
    manager = TeamUser(
        email="maria@example.com", first_name="Maria", last_name="Manager", role="sales_manager", manager_id=director.id
    )
    db_session.add(manager)
    db_session.flush()
    agent = TeamUser(
        email="ana@example.com", first_name="Ana", last_name="Agent", role="sales_agent", manager_id=manager.id
    )
    retired = TeamUser(
        email="rex@example.com",
        first_name="Rex",
        last_name="Retired",
        role="sales_agent",
        manager_id=manager.id,
        deactivated=True,
    )
    db_session.add_all([agent, retired])
    db_session.commit()
    return {"admin": admin, "director": director, "manager": manager, "agent": agent, "retired": retired}


def _actor(user: TeamUser) -> ActorUser:
    return ActorUser(user_id=user.id, role=user.role)


def test_manager_scope_is_self_plus_active_direct_reports(db_session: Session, team: dict[str, TeamUser]) -> None:
    assert agents_managed_by(db_session, team["manager"].id) == {team["agent"].id}
    assert visible_user_ids(db_session, _actor(team["manager"])) == {team["manager"].id, team["agent"].id}


def test_reports_of_reports_are_not_visible(db_session: Session, team: dict[str, TeamUser]) -> None:
    director = _actor(team["director"])

    assert visible_user_ids(db_session, director) == {team["director"].id, team["manager"].id}
    assert can_see_user(db_session, director, team["agent"].id) is False


def test_admin_sees_everyone_and_agent_sees_self(db_session: Session, team: dict[str, TeamUser]) -> None:
    assert visible_user_ids(db_session, _actor(team["admin"])) is None
    assert can_see_user(db_session, _actor(team["admin"]), None) is True
    assert visible_user_ids(db_session, _actor(team["agent"])) == {team["agent"].id}
    assert can_see_user(db_session, _actor(team["agent"]), None) is False


@pytest.fixture()
def client(
    db_session: Session,
    team: dict[str, TeamUser],
) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    current = {"name": "manager"}

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def set_actor(name: str) -> None:
        current["name"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = lambda: _actor(team[current["name"]])
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def test_team_members_listing_by_role(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client

    managed = test_client.get("/api/team/members")
    assert managed.status_code == 200
    assert managed.json()["message"] == "1 team members"
    assert [member["full_name"] for member in managed.json()["data"]] == ["Ana Agent"]

    set_actor("admin")
    everyone = test_client.get("/api/team/members")
    assert [member["full_name"] for member in everyone.json()["data"]] == ["Ana Agent", "Dora Director", "Maria Manager"]

    set_actor("agent")
    denied = test_client.get("/api/team/members")
    assert denied.status_code == 403
    assert denied.json()["message"] == "Only managers can list team members"
