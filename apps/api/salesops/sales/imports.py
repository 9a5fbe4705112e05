"""Bulk invoice import from the ERP's CSV export.

The export carries one row per invoice line; rows sharing ``Document Internal
ID`` belong to the same invoice and the first of them provides the header
fields. Invoices whose internal id is already stored are left untouched.
"""

from __future__ import annotations

import csv
import io
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from salesops.metrics import observe_import_rows
from salesops.sales.models import SalesInvoice, SalesInvoiceLine


logger = logging.getLogger("salesops.sales.import")

COL_INTERNAL_ID = "Document Internal ID"
COL_DOC_NUM = "Document Number"
COL_CARD_CODE = "Customer/Supplier No."
COL_CARD_NAME = "Customer/Supplier Name"
COL_DOC_TOTAL = "Document Total"
COL_PAID = "Paid to Date"
COL_TAX = "Total Tax"
COL_POSTING_DATE = "Posting Date"
COL_CURRENCY = "Price Currency"
COL_ROW_NUMBER = "Row Number"
COL_ITEM = "Item No."
COL_ITEM_DESCRIPTION = "Item/Service Description"
COL_QUANTITY = "Quantity"
COL_UNIT_PRICE = "Unit Price"
COL_ROW_TOTAL = "Row Total"

DEFAULT_CURRENCY = "EUR"


@dataclass
class FailedRow:
    row_number: int
    reason: str


@dataclass
class InvoiceImportResult:
    total_rows_processed: int = 0
    total_invoices_in_file: int = 0
    existing_invoices: int = 0
    new_invoices_inserted: int = 0
    skipped_invoices: int = 0
    failed_rows: list[FailedRow] = field(default_factory=list)
    inserted_doc_nums: list[int] = field(default_factory=list)
    processing_time_seconds: float = 0.0


@dataclass
class _InvoiceGroup:
    doc_entry: int
    header_row: int
    header: dict[str, str]
    lines: list[SalesInvoiceLine] = field(default_factory=list)


def parse_posting_date(raw: str) -> date:
    """Accept ``dd/mm/yy``, ``dd/mm/yyyy`` and ISO dates."""
    value = raw.strip()
    if not value:
        raise ValueError("missing posting date")
    parts = value.split("/")
    if len(parts) == 3:
        day, month, year = (int(part) for part in parts)
        if year < 100:
            year += 2000
        return date(year, month, day)
    return datetime.fromisoformat(value).date()


def _amount(row: dict[str, str], column: str) -> Decimal:
    raw = (row.get(column) or "").strip().replace(",", "")
    if not raw:
        return Decimal("0")
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise ValueError(f"{column} is not a number: {raw!r}") from exc


def _integer(row: dict[str, str], column: str, default: int | None = None) -> int:
    raw = (row.get(column) or "").strip()
    if not raw:
        if default is None:
            raise ValueError(f"{column} is required")
        return default
    try:
        return int(Decimal(raw))
    except InvalidOperation as exc:
        raise ValueError(f"{column} is not an integer: {raw!r}") from exc


def _group_rows(reader: csv.DictReader, result: InvoiceImportResult) -> dict[int, _InvoiceGroup]:
    groups: dict[int, _InvoiceGroup] = {}
    for index, raw_row in enumerate(reader, start=2):
        result.total_rows_processed += 1
        row = {key: (value.strip() if isinstance(value, str) else "") for key, value in raw_row.items() if key}
        if not row.get(COL_INTERNAL_ID):
            result.failed_rows.append(FailedRow(index, f"{COL_INTERNAL_ID} is required"))
            continue
        try:
            doc_entry = _integer(row, COL_INTERNAL_ID)
            group = groups.get(doc_entry)
            if group is None:
                group = groups[doc_entry] = _InvoiceGroup(doc_entry=doc_entry, header_row=index, header=row)
            if row.get(COL_ITEM) and row.get(COL_ITEM_DESCRIPTION):
                quantity = _amount(row, COL_QUANTITY)
                price = _amount(row, COL_UNIT_PRICE)
                group.lines.append(
                    SalesInvoiceLine(
                        line_num=_integer(row, COL_ROW_NUMBER, default=len(group.lines)),
                        item_code=row[COL_ITEM],
                        description=row[COL_ITEM_DESCRIPTION],
                        quantity=quantity,
                        price=price,
                        line_total=_amount(row, COL_ROW_TOTAL) if row.get(COL_ROW_TOTAL) else price * quantity,
                    )
                )
        except ValueError as exc:
            result.failed_rows.append(FailedRow(index, str(exc)))
    return groups


def _build_invoice(group: _InvoiceGroup) -> SalesInvoice:
    row = group.header
    return SalesInvoice(
        doc_entry=group.doc_entry,
        doc_num=_integer(row, COL_DOC_NUM, default=group.doc_entry),
        card_code=row.get(COL_CARD_CODE, ""),
        card_name=row.get(COL_CARD_NAME, ""),
        doc_date=parse_posting_date(row.get(COL_POSTING_DATE, "")),
        doc_total=_amount(row, COL_DOC_TOTAL),
        vat_sum=_amount(row, COL_TAX),
        paid_to_date=_amount(row, COL_PAID),
        currency=row.get(COL_CURRENCY) or DEFAULT_CURRENCY,
        lines=group.lines,
    )


def import_invoices_csv(session: Session, csv_bytes: bytes) -> InvoiceImportResult:
    started = time.perf_counter()
    result = InvoiceImportResult()
    reader = csv.DictReader(io.StringIO(csv_bytes.decode("utf-8-sig")))
    groups = _group_rows(reader, result)
    result.total_invoices_in_file = len(groups)

    existing: set[int] = set()
    if groups:
        existing = set(session.scalars(select(SalesInvoice.doc_entry).where(SalesInvoice.doc_entry.in_(list(groups)))).all())
    result.existing_invoices = len(existing)

    for doc_entry, group in groups.items():
        if doc_entry in existing:
            continue
        try:
            invoice = _build_invoice(group)
        except ValueError as exc:
            result.failed_rows.append(FailedRow(group.header_row, str(exc)))
            continue
        session.add(invoice)
        result.inserted_doc_nums.append(invoice.doc_num)

    session.commit()
    result.new_invoices_inserted = len(result.inserted_doc_nums)
    result.skipped_invoices = result.total_invoices_in_file - result.new_invoices_inserted
    result.processing_time_seconds = round(time.perf_counter() - started, 2)

    observe_import_rows("inserted", result.new_invoices_inserted)
    observe_import_rows("skipped", result.existing_invoices)
    observe_import_rows("failed", len(result.failed_rows))
    logger.info(
        "sales.invoice_import",
        extra={
            "rows": result.total_rows_processed,
            "inserted": result.new_invoices_inserted,
            "skipped": result.skipped_invoices,
            "failed": len(result.failed_rows),
        },
    )
    return result


def summarize_result(result: InvoiceImportResult) -> dict[str, Any]:
    return {
        "total_rows_processed": result.total_rows_processed,
        "total_invoices_in_file": result.total_invoices_in_file,
        "existing_invoices": result.existing_invoices,
        "new_invoices_inserted": result.new_invoices_inserted,
        "skipped_invoices": result.skipped_invoices,
        "failed_rows": [{"row_number": item.row_number, "reason": item.reason} for item in result.failed_rows],
        "inserted_doc_nums": result.inserted_doc_nums,
        "processing_time_seconds": result.processing_time_seconds,
    }
