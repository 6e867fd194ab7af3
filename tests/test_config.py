"""Tests for config loading and env overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from cost_savings.config import get_config, get_config_hash, validate_cases_config


def test_get_config_loads_file(config_path: str) -> None:
    config = get_config(config_path)
    assert config["cases"]["default_projected_period_months"] == 6
    assert config["database"]["url"].startswith("sqlite:///")
    # Defaults fill sections the file leaves out
    assert config["api"]["port"] == 8000


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    config = get_config(str(tmp_path / "missing.yaml"))
    assert config["cases"] == {"default_currency": "ARS", "default_projected_period_months": 12}


def test_local_yaml_overrides(config_path: str) -> None:
    local = Path(config_path).parent / "local.yaml"
    local.write_text("cases:\n  default_currency: USD\n")
    config = get_config(config_path)
    assert config["cases"]["default_currency"] == "USD"
    assert config["cases"]["default_projected_period_months"] == 6


def test_dev_yaml_only_with_env(config_path: str, monkeypatch: pytest.MonkeyPatch) -> None:
    dev = Path(config_path).parent / "dev.yaml"
    dev.write_text("app:\n  log_level: DEBUG\n")
    assert get_config(config_path)["app"]["log_level"] == "INFO"
    monkeypatch.setenv("COSTSAV_ENV", "dev")
    assert get_config(config_path)["app"]["log_level"] == "DEBUG"


def test_env_overrides(config_path: str, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COSTSAV_DATABASE_URL", "sqlite:///other.db")
    monkeypatch.setenv("COSTSAV_LOG_LEVEL", "WARNING")
    config = get_config(config_path)
    assert config["database"]["url"] == "sqlite:///other.db"
    assert config["app"]["log_level"] == "WARNING"
    monkeypatch.setenv("DATABASE_URL", "postgresql://u@h/db")
    assert get_config(config_path)["database"]["url"] == "postgresql://u@h/db"


@pytest.mark.parametrize(
    "cases",
    [
        {"default_projected_period_months": 0},
        {"default_projected_period_months": "12"},
        {"default_currency": "EUR"},
    ],
)
def test_validate_cases_config_rejects(cases: dict) -> None:
    with pytest.raises(ValueError):
        validate_cases_config({"cases": cases})


def test_invalid_file_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("cases:\n  default_projected_period_months: -3\n")
    with pytest.raises(ValueError, match="default_projected_period_months"):
        get_config(str(path))


def test_config_hash_is_order_independent() -> None:
    a = {"x": 1, "y": {"b": 2, "a": 1}}
    b = {"y": {"a": 1, "b": 2}, "x": 1}
    assert get_config_hash(a) == get_config_hash(b)
    assert get_config_hash(a) != get_config_hash({"x": 2})
