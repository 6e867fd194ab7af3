"""Pytest fixtures: temporary config, SQLite database, sample patient."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

# Tests always run on their own SQLite file
os.environ.pop("DATABASE_URL", None)
os.environ.pop("COSTSAV_DATABASE_URL", None)

from cost_savings.audit_context import set_audit_context
from cost_savings.config import get_config
from cost_savings.db import init_db, session_scope
from cost_savings.models import Patient


@pytest.fixture
def config_path(tmp_path: Path) -> str:
    """Return path to a temporary config dir with default.yaml."""
    cfg_dir = tmp_path / "config"
    cfg_dir.mkdir()
    db_file = tmp_path / "cost_savings_test.db"
    (cfg_dir / "default.yaml").write_text(
        f"""
app:
  log_level: INFO
database:
  url: "sqlite:///{db_file}"
  echo: false
cases:
  default_currency: ARS
  default_projected_period_months: 6
reporting:
  output_dir: "{tmp_path / 'reports'}"
"""
    )
    return str(cfg_dir / "default.yaml")


@pytest.fixture
def db(config_path: str) -> str:
    """Initialize the database for config_path; return its URL."""
    config = get_config(config_path)
    url = config["database"]["url"]
    init_db(url, echo=False)
    set_audit_context("test-run", "tester")
    return url


@pytest.fixture
def db_session(db: str):
    """Yield a session inside a transactional scope (committed on exit)."""
    with session_scope() as session:
        yield session


@pytest.fixture
def patient_id(db: str) -> int:
    with session_scope() as session:
        p = Patient(first_name="Ana", last_name="Pérez", document_number="30111222")
        session.add(p)
        session.flush()
        return p.id
