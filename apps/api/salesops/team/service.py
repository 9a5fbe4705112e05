from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from salesops.core.rbac import ActorUser
from salesops.team.models import ROLE_SALES_AGENT, ROLE_SALES_MANAGER, TeamUser
from salesops.team.schemas import TeamMemberRead


def agents_managed_by(session: Session, manager_id: uuid.UUID) -> set[uuid.UUID]:
    """Direct reports only; reports of reports are not followed."""
    rows = session.scalars(
        select(TeamUser.id).where(TeamUser.manager_id == manager_id, TeamUser.deactivated.is_(False))
    ).all()
    return set(rows)


def visible_user_ids(session: Session, actor_user: ActorUser) -> set[uuid.UUID] | None:
    """User ids whose records the actor may read; ``None`` means everyone."""
    if actor_user.is_admin:
        return None
    if actor_user.is_manager:
        return {actor_user.user_id, *agents_managed_by(session, actor_user.user_id)}
    return {actor_user.user_id}


def can_see_user(session: Session, actor_user: ActorUser, user_id: uuid.UUID | None) -> bool:
    scope = visible_user_ids(session, actor_user)
    return scope is None or (user_id is not None and user_id in scope)


class TeamService:
    def list_members(self, session: Session, actor_user: ActorUser) -> list[TeamMemberRead]:
        stmt = select(TeamUser).where(TeamUser.deactivated.is_(False))
        if actor_user.is_admin:
            stmt = stmt.where(TeamUser.role.in_([ROLE_SALES_AGENT, ROLE_SALES_MANAGER]))
        elif actor_user.is_manager:
            stmt = stmt.where(TeamUser.manager_id == actor_user.user_id)
        else:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only managers can list team members")
        members = session.scalars(stmt.order_by(TeamUser.first_name, TeamUser.last_name)).all()
        return [self._to_read(member) for member in members]

    def get_user(self, session: Session, user_id: uuid.UUID) -> TeamUser:
        user = session.get(TeamUser, user_id)
        if user is None or user.deactivated:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
        return user

    def ensure_assignable(self, session: Session, user_id: uuid.UUID) -> TeamUser:
        user = session.get(TeamUser, user_id)
        if user is None or user.deactivated or user.role not in {ROLE_SALES_AGENT, ROLE_SALES_MANAGER}:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="assigned user must be an active sales agent or sales manager",
            )
        return user

    def _to_read(self, member: TeamUser) -> TeamMemberRead:
        return TeamMemberRead(
            id=member.id,
            email=member.email,
            first_name=member.first_name,
            last_name=member.last_name,
            full_name=member.full_name,
            phone=member.phone,
            role=member.role,
            manager_id=member.manager_id,
        )


team_service = TeamService()
