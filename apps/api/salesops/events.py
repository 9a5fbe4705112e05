from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from salesops.context import get_actor_role, get_correlation_id
from salesops.core.events import event_bus

EVENT_VERSION = 1

published_events: list[dict[str, Any]] = []


def build_envelope(
    event_type: str,
    payload: dict[str, Any],
    *,
    actor_user_id: uuid.UUID | str | None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    envelope: dict[str, Any] = {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "actor_user_id": str(actor_user_id) if actor_user_id is not None else None,
        "correlation_id": correlation_id or get_correlation_id(),
        "version": EVENT_VERSION,
        "payload": payload,
    }
    role = get_actor_role()
    if role is not None:
        envelope["meta"] = {"actor_role": role}
    return envelope


def publish(
    event_type: str,
    payload: dict[str, Any],
    *,
    actor_user_id: uuid.UUID | str | None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Record a workflow event and fan it out to in-process subscribers."""
    envelope = build_envelope(event_type, payload, actor_user_id=actor_user_id, correlation_id=correlation_id)
    published_events.append(envelope)
    event_bus.publish(event_type, envelope)
    return envelope
