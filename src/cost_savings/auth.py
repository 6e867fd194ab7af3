"""API key authentication: binds the audit actor and enforces read_only vs read_write."""

from __future__ import annotations

import os
from contextvars import ContextVar

from fastapi import HTTPException
from starlette.requests import Request

from cost_savings.audit_context import set_actor

# Used only when COSTSAV_API_KEYS is unset (local development)
_DEFAULT_DEV_KEYS = {"dev": "dev_key"}
READ_ONLY = "read_only"
READ_WRITE = "read_write"

_current_scope: ContextVar[str] = ContextVar("cost_savings_api_scope", default=READ_WRITE)


def parse_api_keys_env() -> tuple[dict[str, str], dict[str, str]]:
    """Parse COSTSAV_API_KEYS ('name:key[:scope],...') into (key -> actor, key -> scope)."""
    raw = os.environ.get("COSTSAV_API_KEYS", "").strip()
    key_to_actor: dict[str, str] = {}
    key_to_scope: dict[str, str] = {}
    for part in raw.split(","):
        parts = [p.strip() for p in part.split(":")]
        if len(parts) < 2 or not parts[0] or not parts[1]:
            continue
        name, key = parts[0], parts[1]
        scope = parts[2] if len(parts) > 2 else READ_WRITE
        key_to_actor[key] = name
        key_to_scope[key] = scope if scope in (READ_ONLY, READ_WRITE) else READ_WRITE
    if not key_to_actor:
        key_to_actor = {v: k for k, v in _DEFAULT_DEV_KEYS.items()}
        key_to_scope = {v: READ_WRITE for v in _DEFAULT_DEV_KEYS.values()}
    return key_to_actor, key_to_scope


def require_api_key(request: Request) -> str:
    """Validate X-API-Key; set audit actor and scope; return actor name. 401 otherwise."""
    key_to_actor, key_to_scope = parse_api_keys_env()
    api_key = request.headers.get("X-API-Key")
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key")
    actor = key_to_actor.get(api_key)
    if not actor:
        raise HTTPException(status_code=401, detail="Invalid API key")
    _current_scope.set(key_to_scope.get(api_key, READ_WRITE))
    set_actor(actor)
    return actor


def require_api_key_write(request: Request) -> str:
    """Valid key with write scope (403 for read_only). Used by every mutating route."""
    actor = require_api_key(request)
    if _current_scope.get() == READ_ONLY:
        raise HTTPException(status_code=403, detail="Insufficient scope: write required")
    return actor
