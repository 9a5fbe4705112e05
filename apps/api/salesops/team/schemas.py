from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel


class TeamMemberRead(BaseModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    full_name: str
    phone: str | None
    role: str
    manager_id: UUID | None
