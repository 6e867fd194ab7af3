"""SQLAlchemy 2.x engine and session (SQLite and Postgres)."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from logging import getLogger

from sqlalchemy import create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from cost_savings.models import AuditLog, Base

logger = getLogger(__name__)

# Module-level engine/session_factory; set via init_db()
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def _audit_row_canonical(row: AuditLog) -> str:
    """Canonical string for hashing (excludes id, prev_hash, row_hash)."""
    # Stored naive (UTC); drop tzinfo so freshly built rows hash like reloaded ones
    ts_str = row.ts.replace(tzinfo=None).isoformat() if row.ts else ""
    details = json.dumps(row.details_json or {}, sort_keys=True, default=str)
    return f"{row.correlation_id or ''}|{row.action}|{row.entity_type}|{row.entity_id}|{ts_str}|{row.actor}|{details}"


def _compute_audit_chain(session: Session) -> None:
    """Set prev_hash and row_hash on new AuditLog instances (tamper evidence)."""
    new_logs = [o for o in session.new if isinstance(o, AuditLog)]
    if not new_logs:
        return
    stmt = select(AuditLog.row_hash).order_by(AuditLog.id.desc()).limit(1)
    prev_hash: str | None = session.execute(stmt).scalar_one_or_none()
    for row in new_logs:
        if row.ts is None:
            row.ts = datetime.now(UTC)
        row.prev_hash = prev_hash
        payload = (prev_hash or "") + _audit_row_canonical(row)
        row.row_hash = hashlib.sha256(payload.encode()).hexdigest()
        prev_hash = row.row_hash


def verify_audit_chain(session: Session) -> list[int]:
    """Return ids of audit rows whose hash does not match the chain (empty when intact)."""
    broken: list[int] = []
    prev_hash: str | None = None
    for row in session.execute(select(AuditLog).order_by(AuditLog.id)).scalars():
        expected = hashlib.sha256(
            ((prev_hash or "") + _audit_row_canonical(row)).encode()
        ).hexdigest()
        if row.prev_hash != prev_hash or row.row_hash != expected:
            broken.append(row.id)
        prev_hash = row.row_hash
    return broken


def _before_flush_audit_chain(session, flush_context, instances) -> None:
    _compute_audit_chain(session)


def init_db(database_url: str, echo: bool = False) -> None:
    """Create engine and session factory. Call once at startup.
    SQLite: create_all. Postgres: engine only (schema via Alembic).
    """
    global _engine, _SessionLocal
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(database_url, echo=echo, connect_args=connect_args)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    if not event.contains(Session, "before_flush", _before_flush_audit_chain):
        event.listen(Session, "before_flush", _before_flush_audit_chain)
    if is_sqlite:
        Base.metadata.create_all(bind=_engine)
    logger.info("Database initialized (dialect=%s)", _engine.dialect.name)


def get_engine() -> Engine:
    """Return the global engine. Raises if init_db() was not called."""
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _SessionLocal


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope for a block."""
    factory = get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
