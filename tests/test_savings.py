"""Unit tests for savings derivation and currency conversion."""

import math

import pytest

from cost_savings.case_lifecycle import COMPLETADO, EN_EVALUACION, INTERVENIDO
from cost_savings.savings import (
    ars_equivalents,
    auto_status_from_cost,
    compute_savings,
    conversion_available,
    convert_to_ars,
    efficiency_band,
    gauge_percentage,
    initial_projected_cost,
    upside_savings,
)


def _example(**overrides):
    args = {
        "initial_monthly_cost": 1000,
        "projected_period_months": 6,
        "initial_cost": 6000,
        "current_monthly_cost": 700,
        "intervention_cost": 200,
    }
    args.update(overrides)
    return compute_savings(**args)


def test_compute_savings_example() -> None:
    b = _example()
    assert b.current_projected_cost == 4200
    assert b.monthly_savings == 300
    assert b.projected_savings == 1600
    assert b.savings_percentage == pytest.approx(26.6667, rel=1e-4)
    assert b.initial_cost == 6000
    assert b.has_current_cost


def test_zero_initial_cost_gives_zero_percentage() -> None:
    b = _example(initial_cost=0)
    assert b.savings_percentage == 0
    b = _example(initial_cost=0, current_monthly_cost=5000, intervention_cost=99)
    assert b.savings_percentage == 0


def test_negative_savings_are_not_clamped() -> None:
    b = _example(current_monthly_cost=1200)
    assert b.monthly_savings == -200
    assert b.projected_savings == 6000 - 7200 - 200
    assert b.savings_percentage < 0


def test_missing_current_cost_is_flagged() -> None:
    b = _example(current_monthly_cost=None)
    assert not b.has_current_cost
    assert b.current_projected_cost == 0
    assert b.monthly_savings == 1000
    assert b.projected_savings == 5800


def test_non_finite_inputs_rejected() -> None:
    with pytest.raises(ValueError, match="intervention_cost"):
        _example(intervention_cost=math.nan)
    with pytest.raises(ValueError, match="current_monthly_cost"):
        _example(current_monthly_cost=math.inf)


def test_initial_projected_cost() -> None:
    assert initial_projected_cost(1000, 6) == 6000


def test_ars_case_needs_no_conversion() -> None:
    assert convert_to_ars(150.0, "ARS", None) == 150.0
    assert convert_to_ars(150.0, "ARS", 0) == 150.0
    assert conversion_available("ARS", None)


def test_usd_conversion_with_valid_rate() -> None:
    assert convert_to_ars(10.0, "USD", 900) == 9000.0
    ars = ars_equivalents(_example(), "USD", 1000)
    assert ars.available
    assert ars.exchange_rate == 1000
    assert ars.projected_savings == 1_600_000
    assert ars.monthly_savings == 300_000
    assert ars.initial_cost == 6_000_000
    assert ars.current_projected_cost == 4_200_000


def test_usd_conversion_unavailable_with_zero_rate() -> None:
    assert convert_to_ars(10.0, "USD", 0) is None
    assert convert_to_ars(10.0, "USD", -3) is None
    assert convert_to_ars(10.0, "USD", None) is None
    ars = ars_equivalents(_example(), "USD", 0)
    assert not ars.available
    assert ars.projected_savings is None
    assert ars.monthly_savings is None
    assert ars.exchange_rate is None


def test_unknown_currency_rejected() -> None:
    with pytest.raises(ValueError, match="currency_type"):
        convert_to_ars(1.0, "EUR", 1.0)


def test_presentation_clamps() -> None:
    assert upside_savings(-50) == 0
    assert upside_savings(1600) == 1600
    assert upside_savings(None) == 0
    assert gauge_percentage(-12.5) == 0
    assert gauge_percentage(140) == 100
    assert gauge_percentage(26.67) == 26.67
    assert gauge_percentage(None) == 0


def test_clamps_leave_breakdown_untouched() -> None:
    b = _example(current_monthly_cost=1200)
    gauge_percentage(b.savings_percentage)
    upside_savings(b.projected_savings)
    assert b.savings_percentage < 0
    assert b.projected_savings < 0


def test_efficiency_band() -> None:
    assert efficiency_band(75) == "alta"
    assert efficiency_band(60) == "media"
    assert efficiency_band(31) == "media"
    assert efficiency_band(30) == "baja"
    assert efficiency_band(0.1) == "baja"
    assert efficiency_band(0) == "sin_ahorro"
    assert efficiency_band(-20) == "sin_ahorro"


def test_auto_status_from_cost() -> None:
    assert auto_status_from_cost(0, 1000) == EN_EVALUACION
    assert auto_status_from_cost(-1, 1000) == EN_EVALUACION
    assert auto_status_from_cost(500, 1000) == COMPLETADO
    assert auto_status_from_cost(1000, 1000) == INTERVENIDO
    assert auto_status_from_cost(1500, 1000) == INTERVENIDO
