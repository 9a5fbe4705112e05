from __future__ import annotations

import uuid
from collections.abc import Collection
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session, selectinload

from salesops.insights.journey_summary import InvoiceAggregate, PaymentAggregate
from salesops.insights.records import (
    AgentRecord,
    AppliedInvoice,
    CallRecord,
    CustomerHistory,
    CustomerRecord,
    InvoiceLineRecord,
    InvoiceRecord,
    PaymentLinkRecord,
    PaymentRecord,
    QuotationRecord,
    SalesOrderRecord,
)
from salesops.sales.models import (
    SalesCall,
    SalesCustomer,
    SalesInvoice,
    SalesOrder,
    SalesPayment,
    SalesPaymentLink,
    SalesQuotation,
)
from salesops.team.models import TeamUser


def _dec(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def to_customer_record(row: SalesCustomer, assignee: TeamUser | None = None) -> CustomerRecord:
    return CustomerRecord(
        card_code=row.card_code,
        card_name=row.card_name,
        assigned_to_id=row.assigned_to_id,
        assigned_to_name=assignee.full_name if assignee is not None else None,
        status=row.status,
    )


def to_invoice_record(row: SalesInvoice) -> InvoiceRecord:
    return InvoiceRecord(
        doc_entry=row.doc_entry,
        doc_num=row.doc_num,
        card_code=row.card_code,
        card_name=row.card_name,
        doc_date=row.doc_date,
        doc_total=_dec(row.doc_total),
        vat_sum=_dec(row.vat_sum),
        paid_to_date=_dec(row.paid_to_date),
        lines=tuple(
            InvoiceLineRecord(
                item_code=line.item_code,
                description=line.description,
                quantity=_dec(line.quantity),
                price=_dec(line.price),
            )
            for line in row.lines
        ),
    )


def to_payment_record(row: SalesPayment) -> PaymentRecord:
    return PaymentRecord(
        doc_entry=row.doc_entry,
        doc_num=row.doc_num,
        card_code=row.card_code,
        doc_date=row.doc_date,
        doc_total=_dec(row.doc_total) if row.doc_total is not None else None,
        cash_sum=_dec(row.cash_sum),
        transfer_sum=_dec(row.transfer_sum),
        check_sum=_dec(row.check_sum),
        credit_sum=_dec(row.credit_sum),
        credit_card_sums=tuple(_dec(item) for item in row.credit_cards or []),
        check_sums=tuple(_dec(item) for item in row.checks or []),
        applied_invoices=tuple(
            AppliedInvoice(int(item["invoice_number"]), _dec(item.get("amount_applied")))
            for item in row.applied_invoices or []
            if isinstance(item, dict) and item.get("invoice_number") is not None
        ),
    )


def to_link_record(row: SalesPaymentLink) -> PaymentLinkRecord:
    return PaymentLinkRecord(
        payment_number=row.payment_number,
        invoice_number=row.invoice_number,
        payment_amount=_dec(row.payment_amount),
        invoice_amount=_dec(row.invoice_amount),
        payment_date=row.payment_date,
        invoice_date=row.invoice_date,
    )


def to_agent_record(row: TeamUser) -> AgentRecord:
    return AgentRecord(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        role=row.role,
        manager_id=row.manager_id,
    )


def _apply_dates(stmt: Select[Any], column: Any, start: date | None, end: date | None) -> Select[Any]:
    if start is not None:
        stmt = stmt.where(column >= start)
    if end is not None:
        stmt = stmt.where(column <= end)
    return stmt


class SalesRepository:
    def customers(self, session: Session, assigned_to: Collection[uuid.UUID] | None = None) -> list[CustomerRecord]:
        stmt = select(SalesCustomer, TeamUser).outerjoin(TeamUser, TeamUser.id == SalesCustomer.assigned_to_id)
        if assigned_to is not None:
            if not assigned_to:
                return []
            stmt = stmt.where(SalesCustomer.assigned_to_id.in_(list(assigned_to)))
        rows = session.execute(stmt.order_by(SalesCustomer.card_code)).all()
        return [to_customer_record(customer, assignee) for customer, assignee in rows]

    def customer(self, session: Session, card_code: str) -> SalesCustomer | None:
        return session.scalar(select(SalesCustomer).where(SalesCustomer.card_code == card_code))

    def invoices(
        self,
        session: Session,
        card_codes: Collection[str] | None = None,
        *,
        start: date | None = None,
        end: date | None = None,
        limit: int | None = None,
    ) -> list[InvoiceRecord]:
        stmt = select(SalesInvoice).options(selectinload(SalesInvoice.lines))
        if card_codes is not None:
            if not card_codes:
                return []
            stmt = stmt.where(SalesInvoice.card_code.in_(list(card_codes)))
        stmt = _apply_dates(stmt, SalesInvoice.doc_date, start, end)
        stmt = stmt.order_by(SalesInvoice.doc_date.desc(), SalesInvoice.doc_entry.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return [to_invoice_record(row) for row in session.scalars(stmt).all()]

    def payments(
        self,
        session: Session,
        card_codes: Collection[str] | None = None,
        *,
        start: date | None = None,
        end: date | None = None,
        limit: int | None = None,
    ) -> list[PaymentRecord]:
        stmt = select(SalesPayment)
        if card_codes is not None:
            if not card_codes:
                return []
            stmt = stmt.where(SalesPayment.card_code.in_(list(card_codes)))
        stmt = _apply_dates(stmt, SalesPayment.doc_date, start, end)
        stmt = stmt.order_by(SalesPayment.doc_date.desc(), SalesPayment.doc_entry.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return [to_payment_record(row) for row in session.scalars(stmt).all()]

    def links_for_invoices(self, session: Session, invoice_numbers: Collection[int]) -> list[PaymentLinkRecord]:
        if not invoice_numbers:
            return []
        stmt = (
            select(SalesPaymentLink)
            .where(SalesPaymentLink.invoice_number.in_(list(invoice_numbers)))
            .order_by(SalesPaymentLink.payment_date)
        )
        return [to_link_record(row) for row in session.scalars(stmt).all()]

    def customer_histories(
        self,
        session: Session,
        customers: list[CustomerRecord],
        *,
        invoice_cap: int,
        payment_cap: int,
    ) -> list[CustomerHistory]:
        """Attach the most recent invoices and payments (up to the caps) to each customer."""
        codes = [customer.card_code for customer in customers]
        histories = {customer.card_code: CustomerHistory(customer=customer) for customer in customers}
        for invoice in self.invoices(session, codes, limit=invoice_cap):
            histories[invoice.card_code].invoices.append(invoice)
        for payment in self.payments(session, codes, limit=payment_cap):
            histories[payment.card_code].payments.append(payment)
        return list(histories.values())

    def invoice_aggregates(
        self,
        session: Session,
        card_codes: Collection[str] | None = None,
        *,
        search: str | None = None,
    ) -> list[InvoiceAggregate]:
        stmt = select(
            SalesInvoice.card_code,
            func.max(SalesInvoice.card_name),
            func.min(SalesInvoice.doc_date),
            func.max(SalesInvoice.doc_date),
            func.count(SalesInvoice.id),
            func.coalesce(func.sum(SalesInvoice.doc_total), 0),
            func.coalesce(func.sum(SalesInvoice.paid_to_date), 0),
        ).group_by(SalesInvoice.card_code)
        if card_codes is not None:
            if not card_codes:
                return []
            stmt = stmt.where(SalesInvoice.card_code.in_(list(card_codes)))
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(SalesInvoice.card_code.ilike(pattern) | SalesInvoice.card_name.ilike(pattern))
        return [
            InvoiceAggregate(
                card_code=card_code,
                card_name=card_name or "",
                first_invoice=first,
                last_invoice=last,
                invoice_count=int(count),
                total_spent=_dec(spent),
                total_paid=_dec(paid),
            )
            for card_code, card_name, first, last, count, spent, paid in session.execute(stmt).all()
        ]

    def payment_aggregates(self, session: Session, card_codes: Collection[str]) -> dict[str, PaymentAggregate]:
        if not card_codes:
            return {}
        stmt = (
            select(
                SalesPayment.card_code,
                func.count(SalesPayment.id),
                func.min(SalesPayment.doc_date),
                func.max(SalesPayment.doc_date),
            )
            .where(SalesPayment.card_code.in_(list(card_codes)))
            .group_by(SalesPayment.card_code)
        )
        return {
            card_code: PaymentAggregate(card_code, int(count), first, last)
            for card_code, count, first, last in session.execute(stmt).all()
        }

    def agents(self, session: Session, agent_ids: Collection[uuid.UUID] | None = None) -> list[AgentRecord]:
        stmt = select(TeamUser).where(TeamUser.deactivated.is_(False))
        if agent_ids is not None:
            if not agent_ids:
                return []
            stmt = stmt.where(TeamUser.id.in_(list(agent_ids)))
        rows = session.scalars(stmt.order_by(TeamUser.first_name, TeamUser.last_name)).all()
        return [to_agent_record(row) for row in rows]

    def orders_for_agent(self, session: Session, agent_id: uuid.UUID, start: date, end: date) -> list[SalesOrderRecord]:
        stmt = _apply_dates(select(SalesOrder).where(SalesOrder.sales_person_id == agent_id), SalesOrder.doc_date, start, end)
        return [
            SalesOrderRecord(row.doc_entry, row.card_code, row.doc_date, _dec(row.doc_total))
            for row in session.scalars(stmt).all()
        ]

    def quotations_for_agent(self, session: Session, agent_id: uuid.UUID, start: date, end: date) -> list[QuotationRecord]:
        stmt = _apply_dates(
            select(SalesQuotation).where(SalesQuotation.sales_person_id == agent_id),
            SalesQuotation.doc_date,
            start,
            end,
        )
        return [
            QuotationRecord(row.doc_entry, row.card_code, row.doc_date, _dec(row.doc_total), row.approval_status)
            for row in session.scalars(stmt).all()
        ]

    def calls_for_agent(self, session: Session, agent_id: uuid.UUID, start: date, end: date) -> list[CallRecord]:
        stmt = select(SalesCall).where(
            SalesCall.agent_id == agent_id,
            SalesCall.started_at >= datetime.combine(start, time.min, tzinfo=timezone.utc),
            SalesCall.started_at <= datetime.combine(end, time.max, tzinfo=timezone.utc),
        )
        return [
            CallRecord(row.started_at, row.direction, row.missed, row.duration_seconds)
            for row in session.scalars(stmt).all()
        ]


sales_repository = SalesRepository()
