from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from salesops.core.database import Base


ROLE_ADMIN = "admin"
ROLE_SALES_MANAGER = "sales_manager"
ROLE_SALES_AGENT = "sales_agent"
VALID_ROLES = {ROLE_ADMIN, ROLE_SALES_MANAGER, ROLE_SALES_AGENT}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TeamUser(Base):
    __tablename__ = "team_user"
    __table_args__ = (Index("ix_team_user_manager", "manager_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_SALES_AGENT, server_default=ROLE_SALES_AGENT)
    # Self reference; cycles are not prevented and lookups stay one level deep.
    manager_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("team_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    deactivated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
