from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, JSON, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from salesops.core.database import Base


LEAD_STATUSES = {"new", "contacted", "qualified", "converted", "lost"}
LEAD_TAGS = {"hot", "cold", "warm", "priority", "partner"}

TASK_PENDING = "pending"
TASK_PENDING_APPROVAL = "pending_approval"
TASK_COMPLETED = "completed"
TASK_REJECTED = "rejected"
TASK_STATUSES = {TASK_PENDING, TASK_PENDING_APPROVAL, TASK_COMPLETED, TASK_REJECTED}
TASK_PRIORITIES = {"low", "medium", "high"}
TASK_TYPES = {"follow-up", "call", "email", "meeting", "other", "approval"}

DEAL_STATUSES = {"open", "closed_won", "closed_lost"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowLead(Base):
    __tablename__ = "workflow_lead"
    __table_args__ = (Index("ix_workflow_lead_assigned_status", "assigned_to_id", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    company: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="new", server_default="new")
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    assigned_to_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("team_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_follow_up: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    tasks: Mapped[list[WorkflowTask]] = relationship(
        "WorkflowTask",
        back_populates="lead",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class WorkflowTask(Base):
    __tablename__ = "workflow_task"
    __table_args__ = (
        Index("ix_workflow_task_assigned_status", "assigned_to_id", "status"),
        Index("ix_workflow_task_due", "due_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    lead_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("workflow_lead.id", ondelete="CASCADE"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=TASK_PENDING, server_default=TASK_PENDING)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="medium", server_default="medium")
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="follow-up", server_default="follow-up")
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    assigned_to_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    created_by_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    related_quotation_doc_entry: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    lead: Mapped[WorkflowLead | None] = relationship("WorkflowLead", back_populates="tasks")


class WorkflowDeal(Base):
    __tablename__ = "workflow_deal"
    __table_args__ = (Index("ix_workflow_deal_owner_status", "owner_id", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    deal_name: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="EUR", server_default="EUR")
    pipeline: Mapped[str] = mapped_column(String(64), nullable=False, default="Ecommerce Pipeline")
    stage: Mapped[str | None] = mapped_column(String(64), nullable=True)
    probability: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="open", server_default="open")
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    card_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    close_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    owner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
