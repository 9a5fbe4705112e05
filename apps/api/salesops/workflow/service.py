from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from salesops import events
from salesops.api.envelope import PageMeta, PageParams
from salesops.core.rbac import ActorUser
from salesops.metrics import observe_task_transition
from salesops.sales.models import SalesQuotation
from salesops.team.models import TeamUser
from salesops.team.service import team_service, visible_user_ids
from salesops.workflow.models import (
    TASK_COMPLETED,
    TASK_PENDING,
    TASK_PENDING_APPROVAL,
    TASK_REJECTED,
    WorkflowDeal,
    WorkflowLead,
    WorkflowTask,
)
from salesops.workflow.schemas import (
    DealCreate,
    DealRead,
    DealUpdate,
    LeadCreate,
    LeadRead,
    LeadUpdate,
    QuotationReviewRead,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)


logger = logging.getLogger("salesops.workflow")

# Allowed task status moves; anything else is a conflict.
TASK_TRANSITIONS: dict[str, set[str]] = {
    TASK_PENDING: {TASK_PENDING_APPROVAL},
    TASK_PENDING_APPROVAL: {TASK_COMPLETED, TASK_REJECTED},
    TASK_COMPLETED: set(),
    TASK_REJECTED: set(),
}

LEAD_SORT_FIELDS = {
    "created_at": WorkflowLead.created_at,
    "full_name": WorkflowLead.full_name,
    "status": WorkflowLead.status,
    "next_follow_up": WorkflowLead.next_follow_up,
}
TASK_SORT_FIELDS = {
    "due_date": WorkflowTask.due_date,
    "created_at": WorkflowTask.created_at,
    "priority": WorkflowTask.priority,
    "status": WorkflowTask.status,
}
DEAL_SORT_FIELDS = {
    "created_at": WorkflowDeal.created_at,
    "amount": WorkflowDeal.amount,
    "close_date": WorkflowDeal.close_date,
    "deal_name": WorkflowDeal.deal_name,
}


def _append_comment(existing: str | None, note: str) -> str:
    return f"{existing}\n\n{note}" if existing else note


def _actor_name(session: Session, actor_user: ActorUser) -> str:
    user = session.get(TeamUser, actor_user.user_id)
    return user.full_name if user is not None else str(actor_user.user_id)


def _page(session: Session, stmt: Select[Any], page: PageParams, order_by: Any) -> tuple[list[Any], PageMeta]:
    total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = session.scalars(stmt.order_by(order_by).offset(page.offset).limit(page.limit)).all()
    return list(rows), page.meta(total)


class LeadService:
    def create_lead(self, session: Session, actor_user: ActorUser, dto: LeadCreate, *, today: date) -> LeadRead:
        assignee_id = dto.assigned_to_id or actor_user.user_id
        if dto.assigned_to_id is not None:
            team_service.ensure_assignable(session, dto.assigned_to_id)

        follow_up = today + timedelta(days=1)
        lead = WorkflowLead(
            full_name=dto.full_name,
            email=str(dto.email) if dto.email is not None else None,
            phone_number=dto.phone_number,
            company=dto.company,
            status=dto.status,
            tags=list(dict.fromkeys(dto.tags)),
            assigned_to_id=assignee_id,
            created_by_id=actor_user.user_id,
            notes=dto.notes,
            next_follow_up=follow_up,
        )
        session.add(lead)
        session.flush()
        session.add(
            WorkflowTask(
                lead_id=lead.id,
                title=f"New lead: {dto.full_name} - Initial Contact",
                description=(
                    f"A new lead ({dto.full_name}) has been added to the system. "
                    "Please review their information and make initial contact."
                ),
                due_date=follow_up,
                priority="medium",
                type="follow-up",
                status=TASK_PENDING,
                assigned_to_id=assignee_id,
                created_by_id=actor_user.user_id,
            )
        )
        events.publish(
            "lead.created",
            {"lead_id": str(lead.id), "assigned_to_id": str(assignee_id)},
            actor_user_id=actor_user.user_id,
            correlation_id=actor_user.correlation_id,
        )
        session.commit()
        session.refresh(lead)
        return LeadRead.model_validate(lead)

    def list_leads(
        self,
        session: Session,
        actor_user: ActorUser,
        filters: dict[str, Any],
        page: PageParams,
        sort_by: str,
        descending: bool,
    ) -> tuple[list[LeadRead], PageMeta]:
        stmt: Select[tuple[WorkflowLead]] = select(WorkflowLead)
        scope = visible_user_ids(session, actor_user)
        if scope is not None:
            stmt = stmt.where(
                or_(WorkflowLead.assigned_to_id.in_(list(scope)), WorkflowLead.created_by_id.in_(list(scope)))
            )
        if filters.get("status"):
            stmt = stmt.where(WorkflowLead.status == filters["status"])
        if filters.get("assigned_to_id"):
            stmt = stmt.where(WorkflowLead.assigned_to_id == filters["assigned_to_id"])
        if filters.get("q"):
            pattern = f"%{filters['q']}%"
            stmt = stmt.where(
                WorkflowLead.full_name.ilike(pattern)
                | WorkflowLead.email.ilike(pattern)
                | WorkflowLead.company.ilike(pattern)
            )
        column = LEAD_SORT_FIELDS[sort_by]
        ordering = column.desc() if descending else column.asc()
        tag = filters.get("tag")
        if tag:
            # Tags live in a JSON column; match them after loading.
            tagged = [row for row in session.scalars(stmt.order_by(ordering)).all() if tag in (row.tags or [])]
            return [LeadRead.model_validate(row) for row in page.slice(tagged)], page.meta(len(tagged))
        rows, meta = _page(session, stmt, page, ordering)
        return [LeadRead.model_validate(row) for row in rows], meta

    def get_lead(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID) -> LeadRead:
        return LeadRead.model_validate(self._load_visible(session, actor_user, lead_id))

    def update_lead(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID, dto: LeadUpdate) -> LeadRead:
        lead = self._load_visible(session, actor_user, lead_id)
        payload = dto.model_dump(exclude_unset=True)
        if payload.get("assigned_to_id") is not None:
            team_service.ensure_assignable(session, payload["assigned_to_id"])
        if "email" in payload and payload["email"] is not None:
            payload["email"] = str(payload["email"])
        if "tags" in payload and payload["tags"] is not None:
            payload["tags"] = list(dict.fromkeys(payload["tags"]))
        for field_name, value in payload.items():
            if value is None and field_name in {"full_name", "status", "tags"}:
                continue
            setattr(lead, field_name, value)
        session.commit()
        session.refresh(lead)
        return LeadRead.model_validate(lead)

    def delete_lead(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID) -> None:
        lead = self._load_visible(session, actor_user, lead_id)
        session.delete(lead)
        session.commit()

    def _load_visible(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID) -> WorkflowLead:
        lead = session.get(WorkflowLead, lead_id)
        if lead is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="lead not found")
        scope = visible_user_ids(session, actor_user)
        if scope is not None and lead.assigned_to_id not in scope and lead.created_by_id not in scope:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this lead")
        return lead


class TaskService:
    def create_task(self, session: Session, actor_user: ActorUser, dto: TaskCreate) -> TaskRead:
        assignee_id = dto.assigned_to_id or actor_user.user_id
        if dto.assigned_to_id is not None:
            team_service.ensure_assignable(session, dto.assigned_to_id)
        if dto.lead_id is not None and session.get(WorkflowLead, dto.lead_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="lead not found")
        if dto.related_quotation_doc_entry is not None:
            self._load_quotation(session, dto.related_quotation_doc_entry)

        task = WorkflowTask(
            title=dto.title,
            description=dto.description,
            lead_id=dto.lead_id,
            status=TASK_PENDING,
            priority=dto.priority,
            type=dto.type,
            due_date=dto.due_date,
            assigned_to_id=assignee_id,
            created_by_id=actor_user.user_id,
            related_quotation_doc_entry=dto.related_quotation_doc_entry,
        )
        session.add(task)
        session.commit()
        session.refresh(task)
        return TaskRead.model_validate(task)

    def list_tasks(
        self,
        session: Session,
        actor_user: ActorUser,
        filters: dict[str, Any],
        page: PageParams,
        sort_by: str,
        descending: bool,
    ) -> tuple[list[TaskRead], PageMeta]:
        stmt: Select[tuple[WorkflowTask]] = select(WorkflowTask)
        scope = visible_user_ids(session, actor_user)
        if scope is not None:
            stmt = stmt.where(
                or_(WorkflowTask.assigned_to_id.in_(list(scope)), WorkflowTask.created_by_id.in_(list(scope)))
            )
        for key, column in (
            ("status", WorkflowTask.status),
            ("priority", WorkflowTask.priority),
            ("type", WorkflowTask.type),
            ("lead_id", WorkflowTask.lead_id),
            ("assigned_to_id", WorkflowTask.assigned_to_id),
        ):
            if filters.get(key):
                stmt = stmt.where(column == filters[key])
        if filters.get("q"):
            pattern = f"%{filters['q']}%"
            stmt = stmt.where(WorkflowTask.title.ilike(pattern) | WorkflowTask.description.ilike(pattern))
        column = TASK_SORT_FIELDS[sort_by]
        rows, meta = _page(session, stmt, page, column.desc() if descending else column.asc())
        return [TaskRead.model_validate(row) for row in rows], meta

    def get_task(self, session: Session, actor_user: ActorUser, task_id: uuid.UUID) -> TaskRead:
        return TaskRead.model_validate(self._load_visible(session, actor_user, task_id))

    def update_task(self, session: Session, actor_user: ActorUser, task_id: uuid.UUID, dto: TaskUpdate) -> TaskRead:
        task = self._load_visible(session, actor_user, task_id)
        payload = dto.model_dump(exclude_unset=True)
        is_creator = task.created_by_id == actor_user.user_id
        is_assignee = task.assigned_to_id == actor_user.user_id
        can_manage = actor_user.is_admin or actor_user.is_manager

        if not (can_manage or is_creator):
            if not is_assignee or set(payload) - {"comments"}:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You can only request approval or add comments to this task",
                )

        author = _actor_name(session, actor_user)
        comments = task.comments
        if payload.get("comments"):
            comments = _append_comment(comments, f"{author}: {payload.pop('comments')}")
        else:
            payload.pop("comments", None)

        new_assignee = payload.get("assigned_to_id")
        if new_assignee is not None and new_assignee != task.assigned_to_id:
            assignee = team_service.ensure_assignable(session, new_assignee)
            comments = _append_comment(comments, f"{author} reassigned this task to {assignee.full_name}.")
        new_due = payload.get("due_date")
        if new_due is not None and new_due != task.due_date:
            comments = _append_comment(
                comments, f"{author} changed the due date from {task.due_date.isoformat()} to {new_due.isoformat()}."
            )

        for field_name, value in payload.items():
            if value is None:
                continue
            setattr(task, field_name, value)
        task.comments = comments
        session.commit()
        session.refresh(task)
        return TaskRead.model_validate(task)

    def delete_task(self, session: Session, actor_user: ActorUser, task_id: uuid.UUID) -> None:
        task = self._load_visible(session, actor_user, task_id)
        if not (actor_user.is_admin or task.created_by_id == actor_user.user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the task creator or admin can delete this task",
            )
        session.delete(task)
        session.commit()

    def request_approval(
        self,
        session: Session,
        actor_user: ActorUser,
        task_id: uuid.UUID,
        comments: str | None,
    ) -> TaskRead:
        task = self._load_visible(session, actor_user, task_id)
        if task.assigned_to_id != actor_user.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the assigned user can request approval",
            )
        self._transition(session, actor_user, task, TASK_PENDING_APPROVAL, "requested approval", comments)
        session.commit()
        session.refresh(task)
        return TaskRead.model_validate(task)

    def review_task(
        self,
        session: Session,
        actor_user: ActorUser,
        task_id: uuid.UUID,
        action: str,
        comments: str | None,
        *,
        today: date,
    ) -> TaskRead:
        task = self._load_visible(session, actor_user, task_id)
        if task.created_by_id != actor_user.user_id and not actor_user.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the task creator or admin can approve or reject this task",
            )
        self._review(session, actor_user, task, action, comments, today=today)
        session.commit()
        session.refresh(task)
        return TaskRead.model_validate(task)

    def review_quotation(
        self,
        session: Session,
        actor_user: ActorUser,
        task_id: uuid.UUID,
        action: str,
        comments: str | None,
        *,
        today: date,
    ) -> QuotationReviewRead:
        task = session.get(WorkflowTask, task_id)
        if task is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="task not found")
        if task.related_quotation_doc_entry is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This is not a quotation approval task")
        if not actor_user.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can approve or reject quotations")
        quotation = self._load_quotation(session, task.related_quotation_doc_entry)

        self._review(session, actor_user, task, action, comments, today=today)
        quotation.approval_status = "approved" if action == "approve" else "rejected"
        session.commit()
        session.refresh(task)
        return QuotationReviewRead(
            task=TaskRead.model_validate(task),
            quotation_doc_entry=quotation.doc_entry,
            approval_status=quotation.approval_status,
        )

    def _review(
        self,
        session: Session,
        actor_user: ActorUser,
        task: WorkflowTask,
        action: str,
        comments: str | None,
        *,
        today: date,
    ) -> None:
        target = TASK_COMPLETED if action == "approve" else TASK_REJECTED
        self._transition(session, actor_user, task, target, action, comments)
        if target == TASK_COMPLETED:
            task.completed_date = today

    def _transition(
        self,
        session: Session,
        actor_user: ActorUser,
        task: WorkflowTask,
        target: str,
        label: str,
        comments: str | None,
    ) -> None:
        current = task.status
        if target not in TASK_TRANSITIONS.get(current, set()):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot move task from {current} to {target}",
            )
        if comments:
            task.comments = _append_comment(task.comments, f"{_actor_name(session, actor_user)} ({label}): {comments}")
        task.status = target
        observe_task_transition(current, target)
        logger.info(
            "workflow.task_transition",
            extra={"task_id": str(task.id), "from_status": current, "to_status": target},
        )
        events.publish(
            "task.status_changed",
            {
                "task_id": str(task.id),
                "from_status": current,
                "to_status": target,
                "assigned_to_id": str(task.assigned_to_id),
                "created_by_id": str(task.created_by_id),
            },
            actor_user_id=actor_user.user_id,
            correlation_id=actor_user.correlation_id,
        )

    def _load_quotation(self, session: Session, doc_entry: int) -> SalesQuotation:
        quotation = session.scalar(select(SalesQuotation).where(SalesQuotation.doc_entry == doc_entry))
        if quotation is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Related quotation not found")
        return quotation

    def _load_visible(self, session: Session, actor_user: ActorUser, task_id: uuid.UUID) -> WorkflowTask:
        task = session.get(WorkflowTask, task_id)
        if task is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="task not found")
        scope = visible_user_ids(session, actor_user)
        if scope is not None and task.assigned_to_id not in scope and task.created_by_id not in scope:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this task")
        return task


class DealService:
    def create_deal(self, session: Session, actor_user: ActorUser, dto: DealCreate) -> DealRead:
        payload = dto.model_dump()
        payload["owner_id"] = payload.get("owner_id") or actor_user.user_id
        if payload.get("customer_email") is not None:
            payload["customer_email"] = str(payload["customer_email"])
        deal = WorkflowDeal(**payload)
        session.add(deal)
        session.commit()
        session.refresh(deal)
        return DealRead.model_validate(deal)

    def list_deals(
        self,
        session: Session,
        actor_user: ActorUser,
        filters: dict[str, Any],
        page: PageParams,
        sort_by: str,
        descending: bool,
    ) -> tuple[list[DealRead], PageMeta]:
        stmt: Select[tuple[WorkflowDeal]] = select(WorkflowDeal)
        scope = visible_user_ids(session, actor_user)
        if scope is not None:
            stmt = stmt.where(WorkflowDeal.owner_id.in_(list(scope)))
        if filters.get("status"):
            stmt = stmt.where(WorkflowDeal.status == filters["status"])
        if filters.get("card_code"):
            stmt = stmt.where(WorkflowDeal.card_code == filters["card_code"])
        if filters.get("q"):
            pattern = f"%{filters['q']}%"
            stmt = stmt.where(WorkflowDeal.deal_name.ilike(pattern) | WorkflowDeal.customer_name.ilike(pattern))
        column = DEAL_SORT_FIELDS[sort_by]
        rows, meta = _page(session, stmt, page, column.desc() if descending else column.asc())
        return [DealRead.model_validate(row) for row in rows], meta

    def get_deal(self, session: Session, actor_user: ActorUser, deal_id: uuid.UUID) -> DealRead:
        return DealRead.model_validate(self._load_visible(session, actor_user, deal_id))

    def update_deal(self, session: Session, actor_user: ActorUser, deal_id: uuid.UUID, dto: DealUpdate) -> DealRead:
        deal = self._load_visible(session, actor_user, deal_id)
        payload = dto.model_dump(exclude_unset=True)
        if payload.get("customer_email") is not None:
            payload["customer_email"] = str(payload["customer_email"])
        for field_name, value in payload.items():
            if value is None and field_name in {"deal_name", "amount", "currency", "pipeline", "status", "is_paid"}:
                continue
            setattr(deal, field_name, value)
        session.commit()
        session.refresh(deal)
        return DealRead.model_validate(deal)

    def delete_deal(self, session: Session, actor_user: ActorUser, deal_id: uuid.UUID) -> None:
        deal = self._load_visible(session, actor_user, deal_id)
        session.delete(deal)
        session.commit()

    def _load_visible(self, session: Session, actor_user: ActorUser, deal_id: uuid.UUID) -> WorkflowDeal:
        deal = session.get(WorkflowDeal, deal_id)
        if deal is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="deal not found")
        scope = visible_user_ids(session, actor_user)
        if scope is not None and deal.owner_id not in scope:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this deal")
        return deal


lead_service = LeadService()
task_service = TaskService()
deal_service = DealService()
