"""Case orchestration: persist cost inputs, derived fields, status changes and history.

Status decisions come from case_lifecycle and savings; this module only applies
them to the database and records timeline and audit rows.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from cost_savings.audit_context import get_actor, get_correlation_id
from cost_savings.case_lifecycle import (
    COMPLETADO,
    INITIAL_CASE_STATUS,
    CaseSnapshot,
    TransitionValidation,
    requires_justification,
    validate_transition,
)
from cost_savings.models import AuditLog, CostSavingsCase, Patient, TimelineEvent
from cost_savings.savings import (
    CURRENCY_USD,
    CURRENCY_VALUES,
    auto_status_from_cost,
    compute_savings,
    convert_to_ars,
    initial_projected_cost,
)

log = logging.getLogger(__name__)

COMPLETED_RESULTS_ERROR = "El caso está completado y no admite nuevos resultados"

EVENT_TITLES = {
    "created": "Caso Creado",
    "status_change": "Cambio de Estado",
    "intervention": "Intervención Registrada",
    "note": "Nota Agregada",
    "completed": "Caso Completado",
}


class CaseServiceError(Exception):
    """Base for errors raised while applying a change to a case."""


class PatientNotFoundError(CaseServiceError):
    pass


class CaseNotFoundError(CaseServiceError):
    pass


class InvalidCaseInputError(CaseServiceError, ValueError):
    pass


class TransitionRejected(CaseServiceError):
    """validate_transition returned an invalid result."""

    def __init__(self, validation: TransitionValidation) -> None:
        super().__init__(validation.error or "Invalid transition")
        self.validation = validation


class ConfirmationRequired(CaseServiceError):
    """The transition is allowed but carries a warning the user has not confirmed."""

    def __init__(self, validation: TransitionValidation) -> None:
        super().__init__(validation.warning or "Confirmation required")
        self.validation = validation


class JustificationRequired(CaseServiceError):
    def __init__(self) -> None:
        super().__init__("Debe ingresar una justificación")


class ConcurrentUpdateError(CaseServiceError):
    """The case changed after it was read; reload and retry."""


def _audit(session: Session, action: str, entity_type: str, entity_id: Any, details: dict) -> None:
    session.add(
        AuditLog(
            correlation_id=get_correlation_id(),
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor=get_actor(),
            details_json=details or None,
        )
    )


def _timeline(
    session: Session,
    case: CostSavingsCase,
    event_type: str,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> TimelineEvent:
    event = TimelineEvent(
        case_id=case.id,
        event_type=event_type,
        event_date=datetime.now(UTC),
        actor=get_actor(),
        description=description,
        metadata_json=metadata,
        correlation_id=get_correlation_id(),
    )
    session.add(event)
    return event


def _flush(session: Session) -> None:
    try:
        session.flush()
    except StaleDataError as e:
        raise ConcurrentUpdateError("El caso fue modificado por otro usuario") from e


def snapshot_of(case: CostSavingsCase) -> CaseSnapshot:
    return CaseSnapshot(
        current_monthly_cost=case.current_monthly_cost,
        initial_monthly_cost=case.initial_monthly_cost,
    )


def recompute_derived_fields(case: CostSavingsCase) -> None:
    """Overwrite every derived column from the case's raw inputs."""
    baseline = initial_projected_cost(case.initial_monthly_cost, case.projected_period_months)
    breakdown = compute_savings(
        initial_monthly_cost=case.initial_monthly_cost,
        projected_period_months=case.projected_period_months,
        initial_cost=baseline,
        current_monthly_cost=case.current_monthly_cost,
        intervention_cost=case.intervention_cost,
    )
    case.initial_projected_cost = breakdown.initial_cost
    case.current_projected_cost = breakdown.current_projected_cost
    case.monthly_savings = breakdown.monthly_savings
    case.projected_savings = breakdown.projected_savings
    case.savings_percentage = breakdown.savings_percentage
    case.projected_savings_ars = convert_to_ars(
        breakdown.projected_savings, case.currency_type, case.exchange_rate
    )


_REQUIRED_INPUTS = (
    "currency_type",
    "exchange_rate",
    "initial_monthly_cost",
    "projected_period_months",
    "intervention_cost",
)
_NUMERIC_INPUTS = (
    "exchange_rate",
    "initial_monthly_cost",
    "current_monthly_cost",
    "intervention_cost",
)


def _validate_raw_inputs(case: CostSavingsCase) -> None:
    missing = [name for name in _REQUIRED_INPUTS if getattr(case, name) is None]
    if missing:
        raise InvalidCaseInputError(f"Fields cannot be null: {missing}")
    for name in _NUMERIC_INPUTS:
        value = getattr(case, name)
        if value is not None and not math.isfinite(value):
            raise InvalidCaseInputError(f"{name} must be a finite number")
    if case.currency_type not in CURRENCY_VALUES:
        raise InvalidCaseInputError(f"currency_type must be one of {sorted(CURRENCY_VALUES)}")
    if case.currency_type == CURRENCY_USD and not (case.exchange_rate or 0) > 0:
        raise InvalidCaseInputError("exchange_rate must be > 0 for USD cases")
    if case.initial_monthly_cost < 0 or case.intervention_cost < 0:
        raise InvalidCaseInputError("costs must be >= 0")
    if case.current_monthly_cost is not None and case.current_monthly_cost < 0:
        raise InvalidCaseInputError("current_monthly_cost must be >= 0")
    if case.projected_period_months < 1:
        raise InvalidCaseInputError("projected_period_months must be >= 1")


# --- Patients ---
def create_patient(session: Session, **fields: Any) -> Patient:
    patient = Patient(**fields)
    session.add(patient)
    session.flush()
    _audit(session, "patient_create", "patient", patient.id, {})
    log.info("Created patient id=%s", patient.id)
    return patient


def list_patients(session: Session, active_only: bool = True, limit: int = 100) -> list[Patient]:
    stmt = select(Patient).order_by(Patient.last_name, Patient.first_name).limit(limit)
    if active_only:
        stmt = stmt.where(Patient.is_active.is_(True))
    return list(session.execute(stmt).scalars().all())


def deactivate_patient(session: Session, patient_id: int) -> Patient:
    patient = session.get(Patient, patient_id)
    if patient is None:
        raise PatientNotFoundError(f"Patient {patient_id} not found")
    patient.is_active = False
    _audit(session, "patient_deactivate", "patient", patient_id, {})
    session.flush()
    return patient


# --- Cases ---
def get_case(session: Session, case_id: int) -> CostSavingsCase:
    case = session.get(CostSavingsCase, case_id)
    if case is None:
        raise CaseNotFoundError(f"Case {case_id} not found")
    return case


def list_cases(
    session: Session,
    status: str | None = None,
    search: str | None = None,
    limit: int = 100,
) -> list[CostSavingsCase]:
    """Newest first; search matches diagnosis, intervention type or patient name."""
    stmt = (
        select(CostSavingsCase)
        .join(Patient, Patient.id == CostSavingsCase.patient_id)
        .order_by(CostSavingsCase.created_at.desc(), CostSavingsCase.id.desc())
        .limit(limit)
    )
    if status is not None:
        stmt = stmt.where(CostSavingsCase.status == status)
    if search:
        term = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                CostSavingsCase.diagnosis.ilike(term),
                CostSavingsCase.intervention_type.ilike(term),
                (Patient.first_name + " " + Patient.last_name).ilike(term),
            )
        )
    return list(session.execute(stmt).scalars().all())


def create_case(
    session: Session,
    patient_id: int,
    diagnosis: str,
    intervention_type: str,
    initial_monthly_cost: float,
    projected_period_months: int,
    intervention_cost: float = 0.0,
    currency_type: str = "ARS",
    exchange_rate: float = 1.0,
    current_monthly_cost: float | None = None,
    intervention_description: str | None = None,
    evaluating_doctor: str | None = None,
) -> CostSavingsCase:
    """Create a case in the initial status with derived fields filled in. Audited."""
    if session.get(Patient, patient_id) is None:
        raise PatientNotFoundError(f"Patient {patient_id} not found")
    case = CostSavingsCase(
        patient_id=patient_id,
        diagnosis=diagnosis,
        intervention_type=intervention_type,
        intervention_description=intervention_description,
        evaluating_doctor=evaluating_doctor,
        status=INITIAL_CASE_STATUS,
        currency_type=currency_type,
        exchange_rate=exchange_rate,
        initial_monthly_cost=initial_monthly_cost,
        current_monthly_cost=current_monthly_cost,
        projected_period_months=projected_period_months,
        intervention_cost=intervention_cost,
        correlation_id=get_correlation_id(),
        actor=get_actor(),
    )
    _validate_raw_inputs(case)
    recompute_derived_fields(case)
    session.add(case)
    session.flush()
    _timeline(session, case, "created", metadata={"new_status": case.status})
    _audit(
        session,
        "case_create",
        "case",
        case.id,
        {"patient_id": patient_id, "currency_type": currency_type, "status": case.status},
    )
    session.flush()
    log.info("Created case id=%s patient_id=%s", case.id, patient_id)
    return case


def update_cost_inputs(session: Session, case_id: int, **changes: Any) -> CostSavingsCase:
    """
    Apply raw-input changes (current_monthly_cost, intervention_cost,
    projected_period_months, currency_type, exchange_rate) and recompute
    derived fields. Status is not touched.
    """
    allowed = {
        "current_monthly_cost",
        "intervention_cost",
        "projected_period_months",
        "currency_type",
        "exchange_rate",
    }
    unknown = set(changes) - allowed
    if unknown:
        raise InvalidCaseInputError(f"Cannot update fields: {sorted(unknown)}")
    case = get_case(session, case_id)
    details: dict[str, Any] = {}
    for name, value in changes.items():
        details[f"old_{name}"] = getattr(case, name)
        details[f"new_{name}"] = value
        setattr(case, name, value)
    _validate_raw_inputs(case)
    recompute_derived_fields(case)
    case.correlation_id = get_correlation_id()
    case.actor = get_actor()
    _audit(session, "case_cost_update", "case", case_id, details)
    _flush(session)
    return case


def change_status(
    session: Session,
    case_id: int,
    target: str,
    confirm: bool = False,
    justification: str | None = None,
    expected_version: int | None = None,
) -> CostSavingsCase:
    """
    Validate and commit a status change.

    Raises TransitionRejected for invalid results, ConfirmationRequired when a
    warning was not confirmed, JustificationRequired when a warning was confirmed
    or the target needs one and no justification text was given.
    """
    case = get_case(session, case_id)
    if expected_version is not None and expected_version != case.version:
        raise ConcurrentUpdateError(
            f"Case {case_id} is at version {case.version}, expected {expected_version}"
        )
    validation = validate_transition(case.status, target, snapshot_of(case))
    if not validation.valid:
        raise TransitionRejected(validation)
    if validation.warning and not confirm:
        raise ConfirmationRequired(validation)
    text = (justification or "").strip() or None
    if (validation.warning or requires_justification(target)) and text is None:
        raise JustificationRequired()

    old_status = case.status
    case.status = target
    case.justification_for_increase = text
    case.correlation_id = get_correlation_id()
    case.actor = get_actor()
    metadata: dict[str, Any] = {"old_status": old_status, "new_status": target}
    if text is not None:
        metadata["justification"] = text
    _timeline(session, case, "status_change", description=validation.warning, metadata=metadata)
    _audit(
        session,
        "case_status_change",
        "case",
        case_id,
        {"old_status": old_status, "new_status": target, "justified": text is not None},
    )
    _flush(session)
    log.info("Case id=%s status %s -> %s", case_id, old_status, target)
    return case


def record_results(
    session: Session, case_id: int, current_monthly_cost: float
) -> CostSavingsCase:
    """
    Store post-intervention cost and set status from savings.auto_status_from_cost.

    Does not go through validate_transition: saving results may move a case
    along an edge the status menu does not offer.
    Completed cases are terminal and are rejected before anything changes.
    """
    case = get_case(session, case_id)
    if case.status == COMPLETADO:
        raise TransitionRejected(TransitionValidation(valid=False, error=COMPLETED_RESULTS_ERROR))
    old_status = case.status
    old_cost = case.current_monthly_cost
    case.current_monthly_cost = current_monthly_cost
    _validate_raw_inputs(case)
    recompute_derived_fields(case)
    new_status = auto_status_from_cost(current_monthly_cost, case.initial_monthly_cost)
    case.status = new_status
    case.correlation_id = get_correlation_id()
    case.actor = get_actor()
    _timeline(
        session,
        case,
        "intervention",
        metadata={
            "old_status": old_status,
            "new_status": new_status,
            "current_monthly_cost": current_monthly_cost,
        },
    )
    if new_status == COMPLETADO:
        _timeline(session, case, "completed", metadata={"new_status": new_status})
    _audit(
        session,
        "case_results_update",
        "case",
        case_id,
        {
            "old_current_monthly_cost": old_cost,
            "new_current_monthly_cost": current_monthly_cost,
            "old_status": old_status,
            "new_status": new_status,
        },
    )
    _flush(session)
    log.info("Case id=%s results recorded, status %s -> %s", case_id, old_status, new_status)
    return case


def add_note(session: Session, case_id: int, note: str) -> TimelineEvent:
    case = get_case(session, case_id)
    event = _timeline(session, case, "note", description=note)
    session.flush()
    _audit(session, "case_note_add", "case", case_id, {"timeline_event_id": event.id})
    session.flush()
    return event


def get_timeline(session: Session, case_id: int) -> list[TimelineEvent]:
    """Events for a case, newest first."""
    get_case(session, case_id)
    stmt = (
        select(TimelineEvent)
        .where(TimelineEvent.case_id == case_id)
        .order_by(TimelineEvent.event_date.desc(), TimelineEvent.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def event_title(event_type: str) -> str:
    return EVENT_TITLES.get(event_type, event_type)
