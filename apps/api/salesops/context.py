from __future__ import annotations

from contextvars import ContextVar, Token

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
actor_var: ContextVar[tuple[str, str] | None] = ContextVar("actor", default=None)


def set_correlation_id(value: str | None) -> Token[str | None]:
    return correlation_id_var.set(value)


def reset_correlation_id(token: Token[str | None]) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


def bind_actor(user_id: str | None, role: str | None = None) -> Token[tuple[str, str] | None]:
    """Attach the resolved sales actor to log lines and events for the rest of the request."""
    if user_id is None:
        return actor_var.set(None)
    return actor_var.set((user_id, role or ""))


def reset_actor(token: Token[tuple[str, str] | None]) -> None:
    actor_var.reset(token)


def get_actor_id() -> str | None:
    actor = actor_var.get()
    return actor[0] if actor is not None else None


def get_actor_role() -> str | None:
    actor = actor_var.get()
    if actor is None or not actor[1]:
        return None
    return actor[1]
