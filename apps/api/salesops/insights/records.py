from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class CustomerRecord:
    card_code: str
    card_name: str
    assigned_to_id: uuid.UUID | None = None
    assigned_to_name: str | None = None
    status: str = "active"


@dataclass(frozen=True, slots=True)
class InvoiceLineRecord:
    item_code: str
    description: str
    quantity: Decimal
    price: Decimal

    @property
    def amount(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True, slots=True)
class InvoiceRecord:
    doc_entry: int
    doc_num: int
    card_code: str
    card_name: str
    doc_date: date
    doc_total: Decimal
    vat_sum: Decimal = Decimal("0")
    paid_to_date: Decimal = Decimal("0")
    lines: tuple[InvoiceLineRecord, ...] = ()

    @property
    def net_total(self) -> Decimal:
        return self.doc_total - self.vat_sum


@dataclass(frozen=True, slots=True)
class AppliedInvoice:
    invoice_number: int
    amount_applied: Decimal


@dataclass(frozen=True, slots=True)
class PaymentRecord:
    doc_entry: int
    doc_num: int
    card_code: str
    doc_date: date
    doc_total: Decimal | None = None
    cash_sum: Decimal = Decimal("0")
    transfer_sum: Decimal = Decimal("0")
    check_sum: Decimal = Decimal("0")
    credit_sum: Decimal = Decimal("0")
    credit_card_sums: tuple[Decimal, ...] = ()
    check_sums: tuple[Decimal, ...] = ()
    applied_invoices: tuple[AppliedInvoice, ...] = ()


@dataclass(frozen=True, slots=True)
class PaymentLinkRecord:
    payment_number: int
    invoice_number: int
    payment_amount: Decimal
    invoice_amount: Decimal
    payment_date: date
    invoice_date: date


@dataclass(frozen=True, slots=True)
class AgentRecord:
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    role: str
    manager_id: uuid.UUID | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True, slots=True)
class SalesOrderRecord:
    doc_entry: int
    card_code: str
    doc_date: date
    doc_total: Decimal


@dataclass(frozen=True, slots=True)
class QuotationRecord:
    doc_entry: int
    card_code: str
    doc_date: date
    doc_total: Decimal
    approval_status: str = "pending"


@dataclass(frozen=True, slots=True)
class CallRecord:
    started_at: datetime
    direction: str
    missed: bool = False
    duration_seconds: int = 0


@dataclass(slots=True)
class CustomerHistory:
    """A customer together with everything recorded against its card code."""

    customer: CustomerRecord
    invoices: list[InvoiceRecord] = field(default_factory=list)
    payments: list[PaymentRecord] = field(default_factory=list)
