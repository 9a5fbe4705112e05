import uuid
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status

from salesops.context import bind_actor, get_correlation_id
from salesops.core.auth import AuthUser, get_current_user
from salesops.team.models import ROLE_ADMIN, ROLE_SALES_AGENT, ROLE_SALES_MANAGER, VALID_ROLES


@dataclass
class ActorUser:
    user_id: uuid.UUID
    role: str
    correlation_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_SALES_MANAGER

    @property
    def is_agent(self) -> bool:
        return self.role == ROLE_SALES_AGENT


def _resolve_role(roles: list[str]) -> str | None:
    normalized = [str(role).lower() for role in roles]
    # Highest privilege wins when a token carries several roles.
    for role in (ROLE_ADMIN, ROLE_SALES_MANAGER, ROLE_SALES_AGENT):
        if role in normalized:
            return role
    return None


async def get_current_actor(request: Request, auth_user: AuthUser = Depends(get_current_user)) -> ActorUser:
    role = _resolve_role(auth_user.roles)
    if role is None or role not in VALID_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Authentication required")
    try:
        user_id = uuid.UUID(auth_user.sub)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid user identity") from exc

    # Async so the binding is visible to the sync handler that runs after it.
    bind_actor(str(user_id), role)
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    return ActorUser(user_id=user_id, role=role, correlation_id=correlation_id)
