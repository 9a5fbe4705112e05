from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

ANY_EVENT = "*"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DomainEvent:
    name: str
    payload: dict[str, Any]
    received_at: datetime = field(default_factory=_utcnow)


EventHandler = Callable[[DomainEvent], None]


class DomainEventBus:
    """Synchronous fan-out; handlers run in the publishing request."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        if handler not in self._handlers[event_name]:
            self._handlers[event_name].append(handler)

    def handlers_for(self, event_name: str) -> list[EventHandler]:
        return [*self._handlers.get(event_name, []), *self._handlers.get(ANY_EVENT, [])]

    def publish(self, event_name: str, payload: dict[str, Any]) -> DomainEvent:
        event = DomainEvent(name=event_name, payload=payload)
        for handler in self.handlers_for(event_name):
            handler(event)
        return event


event_bus = DomainEventBus()
