"""Cost-savings derivation: projected costs, savings, percentage and ARS conversion."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass

from cost_savings.case_lifecycle import COMPLETADO, EN_EVALUACION, INTERVENIDO

CURRENCY_ARS = "ARS"
CURRENCY_USD = "USD"
CURRENCY_VALUES = frozenset({CURRENCY_ARS, CURRENCY_USD})

# Monetary outputs that get a parallel ARS value for USD cases.
ARS_CONVERTED_FIELDS = (
    "initial_cost",
    "current_projected_cost",
    "monthly_savings",
    "projected_savings",
)


@dataclass(frozen=True)
class SavingsBreakdown:
    """Derived fields of a case. Always produced by compute_savings, never set by hand."""

    initial_cost: float
    current_projected_cost: float
    monthly_savings: float
    projected_savings: float
    savings_percentage: float
    has_current_cost: bool

    def to_dict(self) -> dict[str, float | bool]:
        return asdict(self)


@dataclass(frozen=True)
class ArsEquivalents:
    """ARS view of a breakdown. Values are None when conversion is unavailable."""

    available: bool
    exchange_rate: float | None
    initial_cost: float | None
    current_projected_cost: float | None
    monthly_savings: float | None
    projected_savings: float | None

    def to_dict(self) -> dict[str, float | bool | None]:
        return asdict(self)


def _finite(value: float, field: str) -> float:
    v = float(value)
    if math.isnan(v) or math.isinf(v):
        raise ValueError(f"{field} must be a finite number")
    return v


def initial_projected_cost(initial_monthly_cost: float, projected_period_months: float) -> float:
    """Baseline total: initial monthly cost extrapolated over the projected period."""
    return _finite(initial_monthly_cost, "initial_monthly_cost") * _finite(
        projected_period_months, "projected_period_months"
    )


def compute_savings(
    initial_monthly_cost: float,
    projected_period_months: float,
    initial_cost: float,
    current_monthly_cost: float | None,
    intervention_cost: float,
) -> SavingsBreakdown:
    """
    Recompute every derived field from raw inputs.

    A missing current_monthly_cost counts as 0 in the arithmetic; has_current_cost
    tells callers it was not recorded. Negative savings are returned as-is.
    savings_percentage is 0 when initial_cost is not positive.
    """
    initial_monthly = _finite(initial_monthly_cost, "initial_monthly_cost")
    months = _finite(projected_period_months, "projected_period_months")
    initial_total = _finite(initial_cost, "initial_cost")
    intervention = _finite(intervention_cost, "intervention_cost")
    has_current = current_monthly_cost is not None
    current_monthly = (
        _finite(current_monthly_cost, "current_monthly_cost") if has_current else 0.0
    )

    current_projected = current_monthly * months
    monthly_savings = initial_monthly - current_monthly
    projected_savings = initial_total - current_projected - intervention
    percentage = (projected_savings / initial_total) * 100 if initial_total > 0 else 0.0
    return SavingsBreakdown(
        initial_cost=initial_total,
        current_projected_cost=current_projected,
        monthly_savings=monthly_savings,
        projected_savings=projected_savings,
        savings_percentage=percentage,
        has_current_cost=has_current,
    )


def conversion_available(currency_type: str, exchange_rate: float | None) -> bool:
    """ARS values can be shown: ARS cases always, USD cases only with a positive rate."""
    if currency_type not in CURRENCY_VALUES:
        raise ValueError(f"currency_type must be one of {sorted(CURRENCY_VALUES)}")
    if currency_type == CURRENCY_ARS:
        return True
    return exchange_rate is not None and exchange_rate > 0


def convert_to_ars(
    value: float | None, currency_type: str, exchange_rate: float | None
) -> float | None:
    """
    ARS-denominated value. None signals "unavailable" (USD with a non-positive rate)
    or a missing input, never a legitimate zero.
    """
    if not conversion_available(currency_type, exchange_rate):
        return None
    if value is None:
        return None
    if currency_type == CURRENCY_ARS:
        return float(value)
    return float(value) * float(exchange_rate)  # type: ignore[arg-type]


def ars_equivalents(
    breakdown: SavingsBreakdown, currency_type: str, exchange_rate: float | None
) -> ArsEquivalents:
    available = conversion_available(currency_type, exchange_rate)
    values = {
        name: convert_to_ars(getattr(breakdown, name), currency_type, exchange_rate)
        for name in ARS_CONVERTED_FIELDS
    }
    rate = 1.0 if currency_type == CURRENCY_ARS else (exchange_rate if available else None)
    return ArsEquivalents(available=available, exchange_rate=rate, **values)


def upside_savings(value: float | None) -> float:
    """Savings shown on the summary badge: negatives display as 0."""
    return max(0.0, float(value or 0.0))


def gauge_percentage(value: float | None) -> float:
    """Clamp a savings percentage to [0, 100] for a gauge; the stored value is untouched."""
    return max(0.0, min(100.0, float(value or 0.0)))


def efficiency_band(percentage: float | None, high: float = 60, medium: float = 30) -> str:
    """Return alta / media / baja / sin_ahorro for the clamped percentage."""
    pct = gauge_percentage(percentage)
    if pct > high:
        return "alta"
    if pct > medium:
        return "media"
    if pct > 0:
        return "baja"
    return "sin_ahorro"


def auto_status_from_cost(current_cost: float, initial_cost: float) -> str:
    """
    Status assigned when post-intervention results are recorded.

    This is a separate policy from case_lifecycle.validate_transition: it does not
    consult the transition table and can, for example, move a case straight from
    en_evaluacion to completado. Callers that save results rely on that.
    """
    if current_cost <= 0:
        return EN_EVALUACION
    if current_cost < initial_cost:
        return COMPLETADO
    return INTERVENIDO
