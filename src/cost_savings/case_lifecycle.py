"""Cost-savings case lifecycle: status set, transition table and transition validation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

EN_EVALUACION = "en_evaluacion"
INTERVENIDO = "intervenido"
COMPLETADO = "completado"
SIN_OPTIMIZACION = "sin_optimizacion"

CASE_STATUS_VALUES = frozenset({EN_EVALUACION, INTERVENIDO, COMPLETADO, SIN_OPTIMIZACION})
INITIAL_CASE_STATUS = EN_EVALUACION

STATUS_LABELS: Mapping[str, str] = {
    EN_EVALUACION: "En Evaluación",
    INTERVENIDO: "Intervenido",
    COMPLETADO: "Completado",
    SIN_OPTIMIZACION: "Sin Optimización",
}

# Ordered as shown in the status menu. COMPLETADO is terminal.
VALID_CASE_TRANSITIONS: Mapping[str, tuple[str, ...]] = {
    EN_EVALUACION: (INTERVENIDO, SIN_OPTIMIZACION),
    INTERVENIDO: (COMPLETADO, EN_EVALUACION),
    COMPLETADO: (),
    SIN_OPTIMIZACION: (EN_EVALUACION,),
}

TRANSITION_LABELS: Mapping[tuple[str, str], str] = {
    (EN_EVALUACION, INTERVENIDO): "Registrar Intervención",
    (EN_EVALUACION, SIN_OPTIMIZACION): "Marcar Sin Optimización",
    (INTERVENIDO, COMPLETADO): "Completar Caso",
    (INTERVENIDO, EN_EVALUACION): "Volver a Evaluación",
    (SIN_OPTIMIZACION, EN_EVALUACION): "Reabrir Caso",
}

SAME_STATUS_ERROR = "El estado es el mismo"
MISSING_CURRENT_COST_ERROR = "Debe cargar el costo mensual actual antes de completar el caso"
COST_INCREASE_WARNING = "El costo actual es mayor o igual al inicial. Se requerirá justificación."
SAVINGS_POTENTIAL_WARNING = (
    "El caso tiene potencial de ahorro. ¿Está seguro de marcar como sin optimización?"
)


@dataclass(frozen=True)
class CaseSnapshot:
    """Fields of a case the transition rules look at."""

    current_monthly_cost: float | None
    initial_monthly_cost: float


@dataclass(frozen=True)
class TransitionValidation:
    """Outcome of validate_transition. Invalid results carry error; warnings are advisory."""

    valid: bool
    error: str | None = None
    warning: str | None = None

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {"valid": self.valid}
        if self.error is not None:
            out["error"] = self.error
        if self.warning is not None:
            out["warning"] = self.warning
        return out


def _check_status(value: str, field: str) -> None:
    if value not in CASE_STATUS_VALUES:
        raise ValueError(f"{field} status must be one of {sorted(CASE_STATUS_VALUES)}, got {value!r}")


def available_transitions(current: str) -> frozenset[str]:
    """Statuses reachable from current in one step (empty for COMPLETADO)."""
    _check_status(current, "Current")
    return frozenset(VALID_CASE_TRANSITIONS[current])


def can_transition(current: str, target: str) -> bool:
    _check_status(target, "Target")
    return target in available_transitions(current)


def requires_justification(target: str) -> bool:
    """True when moving into target needs a free-text justification before commit."""
    _check_status(target, "Target")
    return target == SIN_OPTIMIZACION


def transition_label(current: str, target: str) -> str:
    """Menu text for an edge; falls back to the target status label."""
    _check_status(current, "Current")
    _check_status(target, "Target")
    return TRANSITION_LABELS.get((current, target), STATUS_LABELS[target])


def transition_options(current: str) -> list[tuple[str, str]]:
    """(target, label) pairs for the outbound edges of current, in menu order."""
    _check_status(current, "Current")
    return [(t, transition_label(current, t)) for t in VALID_CASE_TRANSITIONS[current]]


def validate_transition(
    current: str,
    target: str,
    snapshot: CaseSnapshot | None = None,
) -> TransitionValidation:
    """
    Decide whether current -> target is allowed for a case.

    Business rule violations come back as an invalid result with an error message.
    Cost-based rules only run when a snapshot is given. Raises ValueError only for
    statuses outside the closed set.
    """
    _check_status(current, "Current")
    _check_status(target, "Target")
    if current == target:
        return TransitionValidation(valid=False, error=SAME_STATUS_ERROR)
    if not can_transition(current, target):
        return TransitionValidation(
            valid=False,
            error=(
                f'No puede cambiar de "{STATUS_LABELS[current]}" a "{STATUS_LABELS[target]}"'
            ),
        )
    if snapshot is None:
        return TransitionValidation(valid=True)

    current_cost = snapshot.current_monthly_cost
    if target == COMPLETADO:
        if current_cost is None or current_cost <= 0:
            return TransitionValidation(valid=False, error=MISSING_CURRENT_COST_ERROR)
        if current_cost >= snapshot.initial_monthly_cost:
            return TransitionValidation(valid=True, warning=COST_INCREASE_WARNING)
    if target == SIN_OPTIMIZACION:
        if current_cost is not None and current_cost < snapshot.initial_monthly_cost:
            return TransitionValidation(valid=True, warning=SAVINGS_POTENTIAL_WARNING)
    return TransitionValidation(valid=True)
