from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


LeadStatus = Literal["new", "contacted", "qualified", "converted", "lost"]
LeadTag = Literal["hot", "cold", "warm", "priority", "partner"]
TaskStatus = Literal["pending", "pending_approval", "completed", "rejected"]
TaskPriority = Literal["low", "medium", "high"]
TaskType = Literal["follow-up", "call", "email", "meeting", "other", "approval"]
DealStatus = Literal["open", "closed_won", "closed_lost"]
ReviewAction = Literal["approve", "reject"]


class LeadCreate(BaseModel):
    full_name: str = Field(min_length=1)
    email: EmailStr | None = None
    phone_number: str | None = None
    company: str | None = None
    status: LeadStatus = "new"
    tags: list[LeadTag] = Field(default_factory=list)
    assigned_to_id: UUID | None = None
    notes: str | None = None


class LeadUpdate(BaseModel):
    full_name: str | None = Field(default=None, min_length=1)
    email: EmailStr | None = None
    phone_number: str | None = None
    company: str | None = None
    status: LeadStatus | None = None
    tags: list[LeadTag] | None = None
    assigned_to_id: UUID | None = None
    notes: str | None = None
    next_follow_up: date | None = None


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    email: str | None
    phone_number: str | None
    company: str | None
    status: str
    tags: list[str]
    assigned_to_id: UUID | None
    created_by_id: UUID | None
    notes: str | None
    next_follow_up: date | None
    created_at: datetime
    updated_at: datetime


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    lead_id: UUID | None = None
    priority: TaskPriority = "medium"
    type: TaskType = "follow-up"
    due_date: date
    assigned_to_id: UUID | None = None
    related_quotation_doc_entry: int | None = None


class TaskUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    priority: TaskPriority | None = None
    type: TaskType | None = None
    due_date: date | None = None
    assigned_to_id: UUID | None = None
    comments: str | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None
    lead_id: UUID | None
    status: str
    priority: str
    type: str
    due_date: date
    completed_date: date | None
    assigned_to_id: UUID
    created_by_id: UUID
    comments: str | None
    related_quotation_doc_entry: int | None
    created_at: datetime
    updated_at: datetime


class ApprovalRequest(BaseModel):
    comments: str | None = None


class ReviewRequest(BaseModel):
    action: ReviewAction
    comments: str | None = None


class QuotationReviewRead(BaseModel):
    task: TaskRead
    quotation_doc_entry: int
    approval_status: str


class DealCreate(BaseModel):
    deal_name: str = Field(min_length=1)
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = "EUR"
    pipeline: str = "Ecommerce Pipeline"
    stage: str | None = None
    probability: int | None = Field(default=None, ge=0, le=100)
    status: DealStatus = "open"
    is_paid: bool = False
    card_code: str | None = None
    customer_name: str | None = None
    customer_email: EmailStr | None = None
    close_date: date | None = None
    owner_id: UUID | None = None


class DealUpdate(BaseModel):
    deal_name: str | None = Field(default=None, min_length=1)
    amount: Decimal | None = Field(default=None, ge=0)
    currency: str | None = None
    pipeline: str | None = None
    stage: str | None = None
    probability: int | None = Field(default=None, ge=0, le=100)
    status: DealStatus | None = None
    is_paid: bool | None = None
    card_code: str | None = None
    customer_name: str | None = None
    customer_email: EmailStr | None = None
    close_date: date | None = None
    owner_id: UUID | None = None


class DealRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    deal_name: str
    amount: Decimal
    currency: str
    pipeline: str
    stage: str | None
    probability: int | None
    status: str
    is_paid: bool
    card_code: str | None
    customer_name: str | None
    customer_email: str | None
    close_date: date | None
    owner_id: UUID | None
    created_at: datetime
    updated_at: datetime
