from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

insight_computation_seconds = Histogram(
    "insight_computation_seconds",
    "Time spent deriving insights, by component",
    ["component"],
)

insight_records_scanned_total = Counter(
    "insight_records_scanned_total",
    "Records fed into insight derivations, by record kind",
    ["kind"],
)

invoice_import_rows_total = Counter(
    "invoice_import_rows_total",
    "Invoice import rows by outcome",
    ["outcome"],
)

task_transitions_total = Counter(
    "task_transitions_total",
    "Task status transitions",
    ["from_status", "to_status"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_insight_computation(component: str, duration: float) -> None:
    insight_computation_seconds.labels(component=component).observe(duration)


def observe_records_scanned(kind: str, count: int) -> None:
    if count > 0:
        insight_records_scanned_total.labels(kind=kind).inc(count)


def observe_import_rows(outcome: str, count: int) -> None:
    if count > 0:
        invoice_import_rows_total.labels(outcome=outcome).inc(count)


def observe_task_transition(from_status: str, to_status: str) -> None:
    task_transitions_total.labels(from_status=from_status, to_status=to_status).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
