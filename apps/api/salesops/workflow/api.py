from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from salesops.api.envelope import Envelope, PageParams, ok, page_params, resolve_sort
from salesops.core.clock import Clock, get_clock
from salesops.core.database import get_db
from salesops.core.rbac import ActorUser, get_current_actor
from salesops.workflow.schemas import (
    ApprovalRequest,
    DealCreate,
    DealRead,
    DealUpdate,
    LeadCreate,
    LeadRead,
    LeadUpdate,
    QuotationReviewRead,
    ReviewRequest,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)
from salesops.workflow.service import (
    DEAL_SORT_FIELDS,
    LEAD_SORT_FIELDS,
    TASK_SORT_FIELDS,
    deal_service,
    lead_service,
    task_service,
)

router = APIRouter(prefix="/api", tags=["workflow"])


@router.post("/leads", response_model=Envelope[LeadRead], status_code=status.HTTP_201_CREATED)
def create_lead(
    payload: LeadCreate,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
) -> Envelope[Any]:
    return ok(lead_service.create_lead(db, actor, payload, today=clock.today()), message="Lead created")


@router.get("/leads", response_model=Envelope[list[LeadRead]])
def list_leads(
    status_filter: str | None = Query(default=None, alias="status"),
    tag: str | None = Query(default=None),
    assigned_to_id: uuid.UUID | None = Query(default=None),
    q: str | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    field, descending = resolve_sort(sort_by, sort_order, set(LEAD_SORT_FIELDS), "created_at")
    items, meta = lead_service.list_leads(
        db,
        actor,
        filters={"status": status_filter, "tag": tag, "assigned_to_id": assigned_to_id, "q": q},
        page=page,
        sort_by=field,
        descending=descending,
    )
    return ok(items, pagination=meta)


@router.get("/leads/{lead_id}", response_model=Envelope[LeadRead])
def get_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    return ok(lead_service.get_lead(db, actor, lead_id))


@router.patch("/leads/{lead_id}", response_model=Envelope[LeadRead])
def update_lead(
    lead_id: uuid.UUID,
    payload: LeadUpdate,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    return ok(lead_service.update_lead(db, actor, lead_id, payload), message="Lead updated")


@router.delete("/leads/{lead_id}", response_model=Envelope[None])
def delete_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    lead_service.delete_lead(db, actor, lead_id)
    return ok(message="Lead deleted")


@router.post("/tasks", response_model=Envelope[TaskRead], status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    return ok(task_service.create_task(db, actor, payload), message="Task created")


@router.get("/tasks", response_model=Envelope[list[TaskRead]])
def list_tasks(
    status_filter: str | None = Query(default=None, alias="status"),
    priority: str | None = Query(default=None),
    type_filter: str | None = Query(default=None, alias="type"),
    lead_id: uuid.UUID | None = Query(default=None),
    assigned_to_id: uuid.UUID | None = Query(default=None),
    q: str | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    field, descending = resolve_sort(sort_by, sort_order, set(TASK_SORT_FIELDS), "due_date")
    items, meta = task_service.list_tasks(
        db,
        actor,
        filters={
            "status": status_filter,
            "priority": priority,
            "type": type_filter,
            "lead_id": lead_id,
            "assigned_to_id": assigned_to_id,
            "q": q,
        },
        page=page,
        sort_by=field,
        descending=descending,
    )
    return ok(items, pagination=meta)


@router.get("/tasks/{task_id}", response_model=Envelope[TaskRead])
def get_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    return ok(task_service.get_task(db, actor, task_id))


@router.patch("/tasks/{task_id}", response_model=Envelope[TaskRead])
def update_task(
    task_id: uuid.UUID,
    payload: TaskUpdate,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    return ok(task_service.update_task(db, actor, task_id, payload), message="Task updated")


@router.delete("/tasks/{task_id}", response_model=Envelope[None])
def delete_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    task_service.delete_task(db, actor, task_id)
    return ok(message="Task deleted")


@router.post("/tasks/{task_id}/request-approval", response_model=Envelope[TaskRead])
def request_task_approval(
    task_id: uuid.UUID,
    payload: ApprovalRequest,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    task = task_service.request_approval(db, actor, task_id, payload.comments)
    return ok(task, message="Approval requested")


@router.post("/tasks/{task_id}/review", response_model=Envelope[TaskRead])
def review_task(
    task_id: uuid.UUID,
    payload: ReviewRequest,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
) -> Envelope[Any]:
    task = task_service.review_task(db, actor, task_id, payload.action, payload.comments, today=clock.today())
    return ok(task, message=f"Task {'approved' if payload.action == 'approve' else 'rejected'}")


@router.post("/tasks/{task_id}/quotation-review", response_model=Envelope[QuotationReviewRead])
def review_quotation(
    task_id: uuid.UUID,
    payload: ReviewRequest,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
) -> Envelope[Any]:
    result = task_service.review_quotation(db, actor, task_id, payload.action, payload.comments, today=clock.today())
    return ok(result, message=f"Quotation {result.approval_status}")


@router.post("/deals", response_model=Envelope[DealRead], status_code=status.HTTP_201_CREATED)
def create_deal(
    payload: DealCreate,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    return ok(deal_service.create_deal(db, actor, payload), message="Deal created")


@router.get("/deals", response_model=Envelope[list[DealRead]])
def list_deals(
    status_filter: str | None = Query(default=None, alias="status"),
    card_code: str | None = Query(default=None),
    q: str | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    field, descending = resolve_sort(sort_by, sort_order, set(DEAL_SORT_FIELDS), "created_at")
    items, meta = deal_service.list_deals(
        db,
        actor,
        filters={"status": status_filter, "card_code": card_code, "q": q},
        page=page,
        sort_by=field,
        descending=descending,
    )
    return ok(items, pagination=meta)


@router.get("/deals/{deal_id}", response_model=Envelope[DealRead])
def get_deal(
    deal_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    return ok(deal_service.get_deal(db, actor, deal_id))


@router.patch("/deals/{deal_id}", response_model=Envelope[DealRead])
def update_deal(
    deal_id: uuid.UUID,
    payload: DealUpdate,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    return ok(deal_service.update_deal(db, actor, deal_id, payload), message="Deal updated")


@router.delete("/deals/{deal_id}", response_model=Envelope[None])
def delete_deal(
    deal_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    deal_service.delete_deal(db, actor, deal_id)
    return ok(message="Deal deleted")
