from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class InvoiceLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    line_num: int
    item_code: str
    description: str
    quantity: Decimal
    price: Decimal
    line_total: Decimal


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    doc_entry: int
    doc_num: int
    card_code: str
    card_name: str
    doc_date: date
    doc_total: Decimal
    vat_sum: Decimal
    paid_to_date: Decimal
    currency: str
    lines: list[InvoiceLineRead]


class FailedRowRead(BaseModel):
    row_number: int
    reason: str


class InvoiceImportRead(BaseModel):
    total_rows_processed: int
    total_invoices_in_file: int
    existing_invoices: int
    new_invoices_inserted: int
    skipped_invoices: int
    failed_rows: list[FailedRowRead]
    inserted_doc_nums: list[int]
    processing_time_seconds: float
