from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from salesops.api.envelope import Envelope, PageParams, ok, page_params, resolve_sort
from salesops.core.database import get_db
from salesops.core.rbac import ActorUser, get_current_actor
from salesops.insights.policy import InsightsPolicy, get_insights_policy
from salesops.sales.imports import summarize_result
from salesops.sales.schemas import InvoiceImportRead, InvoiceRead
from salesops.sales.service import INVOICE_SORT_FIELDS, invoice_service

router = APIRouter(prefix="/api/sales", tags=["sales"])


@router.get("/invoices", response_model=Envelope[list[InvoiceRead]])
def list_invoices(
    card_code: str | None = Query(default=None),
    q: str | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    min_amount: Decimal | None = Query(default=None),
    max_amount: Decimal | None = Query(default=None),
    payment_status: str | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    policy: InsightsPolicy = Depends(get_insights_policy),
) -> Envelope[Any]:
    field, descending = resolve_sort(sort_by, sort_order, set(INVOICE_SORT_FIELDS), "doc_date")
    items, meta = invoice_service.list_invoices(
        db,
        actor,
        filters={
            "card_code": card_code,
            "q": q,
            "start_date": start_date,
            "end_date": end_date,
            "min_amount": min_amount,
            "max_amount": max_amount,
            "payment_status": payment_status,
        },
        page=page,
        sort_by=field,
        descending=descending,
        policy=policy,
    )
    return ok(items, pagination=meta)


@router.get("/kpis")
def get_kpis(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    policy: InsightsPolicy = Depends(get_insights_policy),
) -> Envelope[Any]:
    return ok(invoice_service.kpis(db, actor, start=start_date, end=end_date, policy=policy))


@router.post("/invoices/import", response_model=Envelope[InvoiceImportRead])
def import_invoices(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    filename = (file.filename or "").lower()
    if filename and not filename.endswith(".csv"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="only .csv files are supported")
    payload = file.file.read()
    result = invoice_service.import_invoices(db, actor, payload)
    return ok(summarize_result(result), message="Invoice import completed")
