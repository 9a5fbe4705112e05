from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from salesops.api.envelope import Envelope, ok
from salesops.core.database import get_db
from salesops.core.rbac import ActorUser, get_current_actor
from salesops.team.schemas import TeamMemberRead
from salesops.team.service import team_service

router = APIRouter(prefix="/api/team", tags=["team"])


@router.get("/members", response_model=Envelope[list[TeamMemberRead]])
def list_team_members(
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    members = team_service.list_members(db, actor)
    return ok(members, message=f"{len(members)} team members")
