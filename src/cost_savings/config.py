"""Configuration loading from YAML + environment overrides."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_yaml(path: str | Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


class AppSettings(BaseSettings):
    """Process-level settings read from COSTSAV_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="COSTSAV_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    config_path: str = Field(default="config/default.yaml", alias="COSTSAV_CONFIG_PATH")
    log_level: str | None = Field(default=None, alias="COSTSAV_LOG_LEVEL")
    database_url: str | None = Field(default=None, alias="COSTSAV_DATABASE_URL")
    api_host: str = Field(default="0.0.0.0", alias="COSTSAV_API_HOST")
    api_port: int = Field(default=8000, alias="COSTSAV_API_PORT")


def validate_cases_config(config: dict[str, Any]) -> None:
    """Raise ValueError if case defaults cannot produce a usable projection."""
    cases = config.get("cases") or {}
    months = cases.get("default_projected_period_months", 12)
    if not isinstance(months, int) or months < 1:
        raise ValueError(
            f"cases.default_projected_period_months must be an integer >= 1, got {months!r}"
        )
    currency = cases.get("default_currency", "ARS")
    if currency not in ("ARS", "USD"):
        raise ValueError(f"cases.default_currency must be ARS or USD, got {currency!r}")


def get_config(config_path: str | None = None) -> dict[str, Any]:
    """Load merged config from YAML and apply env overrides via AppSettings."""
    settings = AppSettings()
    path = config_path or settings.config_path
    if not Path(path).exists():
        base = _default_config()
    else:
        base = _deep_merge(_default_config(), _load_yaml(path))
        config_dir = Path(path).parent
        dev_path = config_dir / "dev.yaml"
        if dev_path.exists() and os.environ.get("COSTSAV_ENV") == "dev":
            base = _deep_merge(base, _load_yaml(dev_path))
        local_path = config_dir / "local.yaml"
        if local_path.exists():
            base = _deep_merge(base, _load_yaml(local_path))
    # DATABASE_URL is the usual name in containers; COSTSAV_DATABASE_URL wins over the file
    db_url = os.environ.get("DATABASE_URL") or settings.database_url
    if db_url:
        base.setdefault("database", {})["url"] = db_url
    if settings.log_level:
        base.setdefault("app", {})["log_level"] = settings.log_level
    validate_cases_config(base)
    return base


def _default_config() -> dict[str, Any]:
    return {
        "app": {"name": "cost-savings", "env": "default", "log_level": "INFO"},
        "database": {"url": "sqlite:///./data/cost_savings.db", "echo": False},
        "cases": {"default_currency": "ARS", "default_projected_period_months": 12},
        "reporting": {"output_dir": "./reports"},
        "api": {"host": "0.0.0.0", "port": 8000},
    }


def get_config_hash(config: dict[str, Any]) -> str:
    """SHA256 of resolved config (canonical key order), stored with generated reports."""
    canonical = yaml.dump(config, default_flow_style=False, sort_keys=True, allow_unicode=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
