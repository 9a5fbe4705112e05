from __future__ import annotations

import logging
import math
from typing import Any, Generic, TypeVar

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from salesops.core.config import get_settings


logger = logging.getLogger("salesops.errors")

T = TypeVar("T")

SORT_ORDERS = {"asc", "desc"}


class PageMeta(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    page_size: int
    has_next_page: bool
    has_prev_page: bool


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T | None = None
    message: str | None = None
    error: str | None = None
    pagination: PageMeta | None = None


class PageParams(BaseModel):
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def slice(self, items: list[T]) -> list[T]:
        return items[self.offset : self.offset + self.limit]

    def meta(self, total_items: int) -> PageMeta:
        total_pages = math.ceil(total_items / self.limit) if total_items else 0
        return PageMeta(
            current_page=self.page,
            total_pages=total_pages,
            total_items=total_items,
            page_size=self.limit,
            has_next_page=self.page < total_pages,
            has_prev_page=self.page > 1,
        )


def page_params(
    page: int = Query(default=1),
    limit: int = Query(default=10),
) -> PageParams:
    if page < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="page must be at least 1")
    if limit < 1 or limit > 100:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="limit must be between 1 and 100")
    return PageParams(page=page, limit=limit)


def resolve_sort(sort_by: str | None, sort_order: str | None, allowed: set[str], default: str) -> tuple[str, bool]:
    """Validate a sort request; returns the field and whether it sorts descending."""
    field = sort_by or default
    if field not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"sort_by must be one of: {', '.join(sorted(allowed))}",
        )
    order = (sort_order or "desc").lower()
    if order not in SORT_ORDERS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="sort_order must be asc or desc")
    return field, order == "desc"


def ok(data: Any = None, message: str | None = None, pagination: PageMeta | None = None) -> Envelope[Any]:
    return Envelope(success=True, data=data, message=message, pagination=pagination)


def error_response(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    payload = Envelope[Any](success=False, message=message, error=error)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "request failed"
    error = None if isinstance(exc.detail, str) else str(exc.detail)
    return error_response(exc.status_code, message, error)


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part not in {"body", "query", "path"})
        problems.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return error_response(status.HTTP_400_BAD_REQUEST, "; ".join(problems) or "invalid request")


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "http.unhandled",
        extra={"method": request.method, "path": request.url.path, "error": str(exc)[:500]},
    )
    detail = None if get_settings().is_production else str(exc)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", detail)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
