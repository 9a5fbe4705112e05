from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from salesops.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SalesCustomer(Base):
    __tablename__ = "sales_customer"
    __table_args__ = (Index("ix_sales_customer_assigned_to", "assigned_to_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    card_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    card_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", server_default="active")
    assigned_to_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("team_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class SalesInvoice(Base):
    __tablename__ = "sales_invoice"
    __table_args__ = (
        Index("ix_sales_invoice_card_date", "card_code", "doc_date"),
        Index("ix_sales_invoice_doc_num", "doc_num"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    doc_entry: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    doc_num: Mapped[int] = mapped_column(Integer, nullable=False)
    card_code: Mapped[str] = mapped_column(String(64), nullable=False)
    card_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    doc_date: Mapped[date] = mapped_column(Date, nullable=False)
    doc_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    vat_sum: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    paid_to_date: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD", server_default="USD")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    lines: Mapped[list[SalesInvoiceLine]] = relationship(
        "SalesInvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="SalesInvoiceLine.line_num",
    )


class SalesInvoiceLine(Base):
    __tablename__ = "sales_invoice_line"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sales_invoice.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_num: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    item_code: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=Decimal("0"))
    price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    line_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))

    invoice: Mapped[SalesInvoice] = relationship("SalesInvoice", back_populates="lines")


class SalesPayment(Base):
    __tablename__ = "sales_payment"
    __table_args__ = (Index("ix_sales_payment_card_date", "card_code", "doc_date"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    doc_entry: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    doc_num: Mapped[int] = mapped_column(Integer, nullable=False)
    card_code: Mapped[str] = mapped_column(String(64), nullable=False)
    card_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    doc_date: Mapped[date] = mapped_column(Date, nullable=False)
    doc_total: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    cash_sum: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    transfer_sum: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    check_sum: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    credit_sum: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    # Lists of per-card and per-check amounts as exported by the ERP.
    credit_cards: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    checks: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    # [{"invoice_number": int, "amount_applied": str}]
    applied_invoices: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class SalesPaymentLink(Base):
    __tablename__ = "sales_payment_link"
    __table_args__ = (
        Index("ix_sales_payment_link_invoice", "invoice_number"),
        Index("ix_sales_payment_link_payment", "payment_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    invoice_number: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    invoice_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    customer_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class SalesOrder(Base):
    __tablename__ = "sales_order"
    __table_args__ = (Index("ix_sales_order_card_date", "card_code", "doc_date"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    doc_entry: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    doc_num: Mapped[int] = mapped_column(Integer, nullable=False)
    card_code: Mapped[str] = mapped_column(String(64), nullable=False)
    doc_date: Mapped[date] = mapped_column(Date, nullable=False)
    doc_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    sales_person_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("team_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class SalesQuotation(Base):
    __tablename__ = "sales_quotation"
    __table_args__ = (Index("ix_sales_quotation_card_date", "card_code", "doc_date"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    doc_entry: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    doc_num: Mapped[int] = mapped_column(Integer, nullable=False)
    card_code: Mapped[str] = mapped_column(String(64), nullable=False)
    doc_date: Mapped[date] = mapped_column(Date, nullable=False)
    doc_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    approval_status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", server_default="pending")
    sales_person_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("team_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class SalesCall(Base):
    __tablename__ = "sales_call"
    __table_args__ = (Index("ix_sales_call_agent_started", "agent_id", "started_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("team_user.id", ondelete="CASCADE"),
        nullable=False,
    )
    card_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False, default="out")
    missed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
