from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import Numeric, Select, func, literal, select
from sqlalchemy.orm import Session, selectinload

from salesops.api.envelope import PageMeta, PageParams
from salesops.core.rbac import ActorUser
from salesops.insights.kpis import GlobalKpis, compute_global_kpis
from salesops.insights.policy import InsightsPolicy
from salesops.otel import insight_span
from salesops.metrics import observe_records_scanned
from salesops.sales.imports import InvoiceImportResult, import_invoices_csv
from salesops.sales.models import SalesCustomer, SalesInvoice
from salesops.sales.repository import sales_repository
from salesops.sales.schemas import InvoiceRead
from salesops.team.models import ROLE_ADMIN
from salesops.team.service import visible_user_ids


INVOICE_SORT_FIELDS = {
    "doc_date": SalesInvoice.doc_date,
    "doc_total": SalesInvoice.doc_total,
    "doc_num": SalesInvoice.doc_num,
    "card_name": SalesInvoice.card_name,
    "paid_to_date": SalesInvoice.paid_to_date,
}
PAYMENT_STATUSES = {"paid", "unpaid"}


def visible_card_codes(session: Session, actor_user: ActorUser) -> list[str] | None:
    """Card codes of customers assigned to users the actor can see; ``None`` for admins."""
    scope = visible_user_ids(session, actor_user)
    if scope is None:
        return None
    stmt = select(SalesCustomer.card_code).where(SalesCustomer.assigned_to_id.in_(list(scope)))
    return list(session.scalars(stmt).all())


class InvoiceService:
    def list_invoices(
        self,
        session: Session,
        actor_user: ActorUser,
        filters: dict[str, Any],
        page: PageParams,
        sort_by: str,
        descending: bool,
        policy: InsightsPolicy,
    ) -> tuple[list[InvoiceRead], PageMeta]:
        stmt: Select[tuple[SalesInvoice]] = select(SalesInvoice)
        codes = visible_card_codes(session, actor_user)
        if codes is not None:
            stmt = stmt.where(SalesInvoice.card_code.in_(codes))

        if filters.get("card_code"):
            stmt = stmt.where(SalesInvoice.card_code == filters["card_code"])
        if filters.get("q"):
            pattern = f"%{filters['q']}%"
            stmt = stmt.where(SalesInvoice.card_name.ilike(pattern) | SalesInvoice.card_code.ilike(pattern))
        if filters.get("start_date"):
            stmt = stmt.where(SalesInvoice.doc_date >= filters["start_date"])
        if filters.get("end_date"):
            stmt = stmt.where(SalesInvoice.doc_date <= filters["end_date"])
        if filters.get("min_amount") is not None:
            stmt = stmt.where(SalesInvoice.doc_total >= filters["min_amount"])
        if filters.get("max_amount") is not None:
            stmt = stmt.where(SalesInvoice.doc_total <= filters["max_amount"])
        payment_status = filters.get("payment_status")
        if payment_status:
            if payment_status not in PAYMENT_STATUSES:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="payment_status must be paid or unpaid")
            # Same tolerance as settlement and KPIs; rounded to cents so float-backed stores agree.
            outstanding = func.round(SalesInvoice.doc_total - SalesInvoice.paid_to_date, 2)
            epsilon = literal(policy.paid_epsilon, Numeric(18, 2))
            if payment_status == "paid":
                stmt = stmt.where(outstanding <= epsilon)
            else:
                stmt = stmt.where(outstanding > epsilon)

        total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        column = INVOICE_SORT_FIELDS[sort_by]
        ordered = stmt.order_by(column.desc() if descending else column.asc(), SalesInvoice.doc_entry.desc())
        rows = session.scalars(
            ordered.options(selectinload(SalesInvoice.lines)).offset(page.offset).limit(page.limit)
        ).all()
        return [InvoiceRead.model_validate(row) for row in rows], page.meta(total)

    def kpis(
        self,
        session: Session,
        actor_user: ActorUser,
        *,
        start: date | None,
        end: date | None,
        policy: InsightsPolicy,
    ) -> GlobalKpis:
        if start is not None and end is not None and start > end:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must not be after end_date")
        codes = visible_card_codes(session, actor_user)
        with insight_span("kpis", scoped=codes is not None):
            invoices = sales_repository.invoices(session, codes, start=start, end=end)
            observe_records_scanned("invoice", len(invoices))
            return compute_global_kpis(invoices, policy=policy)

    def import_invoices(self, session: Session, actor_user: ActorUser, csv_bytes: bytes) -> InvoiceImportResult:
        if actor_user.role != ROLE_ADMIN:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can import invoices")
        if not csv_bytes.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="file is empty")
        try:
            csv_bytes.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="file must be UTF-8 CSV") from exc
        return import_invoices_csv(session, csv_bytes)


invoice_service = InvoiceService()

