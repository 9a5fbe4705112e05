from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from salesops.api.envelope import install_exception_handlers
from salesops.api.routes import router as api_router
from salesops.core.config import get_settings
from salesops.core.events import DomainEvent, event_bus
from salesops.logging import configure_logging
from salesops.middleware.correlation_id import CorrelationIdMiddleware
from salesops.middleware.request_logging import RequestLoggingMiddleware
from salesops.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("salesops.lifecycle")
notifications_logger = logging.getLogger("salesops.notifications")
_subscriptions_registered = False


def _on_system_started(event: DomainEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name, "event_payload": event.payload})


def _on_task_status_changed(event: DomainEvent) -> None:
    payload = event.payload.get("payload", {})
    to_status = payload.get("to_status")
    # Approval requests go to the task creator, decisions go back to the assignee.
    recipient = payload.get("created_by_id") if to_status == "pending_approval" else payload.get("assigned_to_id")
    notifications_logger.info(
        "notification.task_status",
        extra={
            "task_id": payload.get("task_id"),
            "from_status": payload.get("from_status"),
            "to_status": to_status,
            "recipient_id": recipient,
        },
    )


def _on_lead_created(event: DomainEvent) -> None:
    payload = event.payload.get("payload", {})
    notifications_logger.info(
        "notification.lead_assigned",
        extra={"lead_id": payload.get("lead_id"), "recipient_id": payload.get("assigned_to_id")},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        event_bus.subscribe("task.status_changed", _on_task_status_changed)
        event_bus.subscribe("lead.created", _on_lead_created)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
install_exception_handlers(app)
app.include_router(api_router)

if settings.otel_enabled:
    setup_otel("api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
