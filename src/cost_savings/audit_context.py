"""Audit context: correlation id and acting user for a CLI command or API request."""

from __future__ import annotations

import uuid
from contextvars import ContextVar

DEFAULT_ACTOR = "system"

_correlation_id: ContextVar[str | None] = ContextVar("cost_savings_correlation_id", default=None)
_actor: ContextVar[str | None] = ContextVar("cost_savings_actor", default=None)


def set_audit_context(correlation_id: str | None, actor: str | None = None) -> None:
    _correlation_id.set(correlation_id)
    _actor.set(actor)


def set_actor(actor: str) -> None:
    """Bind the acting user (e.g. after API key auth); correlation id is kept."""
    _actor.set(actor)


def get_correlation_id() -> str:
    """Current correlation id. Generated and pinned on first use when unset."""
    cid = _correlation_id.get()
    if cid is None:
        cid = str(uuid.uuid4())
        _correlation_id.set(cid)
    return cid


def get_actor() -> str:
    return _actor.get() or DEFAULT_ACTOR


def get_audit_context() -> tuple[str, str]:
    """Return (correlation_id, actor)."""
    return get_correlation_id(), get_actor()
