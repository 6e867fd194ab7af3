"""Patients and cases routers."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from cost_savings import case_service
from cost_savings.audit_context import set_actor
from cost_savings.auth import require_api_key_write
from cost_savings.case_lifecycle import (
    CASE_STATUS_VALUES,
    STATUS_LABELS,
    requires_justification,
    transition_options,
    validate_transition,
)
from cost_savings.db import session_scope
from cost_savings.models import CostSavingsCase, TimelineEvent
from cost_savings.schemas import (
    CaseCostUpdateRequest,
    CaseCreateRequest,
    CaseNoteRequest,
    CaseResponse,
    CaseResultsRequest,
    PatientCreate,
    PatientResponse,
    StatusChangeRequest,
    TimelineEventResponse,
    TransitionOptionResponse,
    TransitionValidationResponse,
)

cases_router = APIRouter(tags=["cases"])
patients_router = APIRouter(tags=["patients"])


def _case_to_response(case: CostSavingsCase) -> CaseResponse:
    return CaseResponse(
        id=case.id,
        patient_id=case.patient_id,
        diagnosis=case.diagnosis,
        intervention_type=case.intervention_type,
        intervention_description=case.intervention_description,
        evaluating_doctor=case.evaluating_doctor,
        status=case.status,
        status_label=STATUS_LABELS[case.status],
        justification_for_increase=case.justification_for_increase,
        currency_type=case.currency_type,
        exchange_rate=case.exchange_rate,
        initial_monthly_cost=case.initial_monthly_cost,
        current_monthly_cost=case.current_monthly_cost,
        projected_period_months=case.projected_period_months,
        intervention_cost=case.intervention_cost,
        initial_projected_cost=case.initial_projected_cost,
        current_projected_cost=case.current_projected_cost,
        monthly_savings=case.monthly_savings,
        projected_savings=case.projected_savings,
        savings_percentage=case.savings_percentage,
        projected_savings_ars=case.projected_savings_ars,
        version=case.version,
        created_at=case.created_at,
        updated_at=case.updated_at,
        correlation_id=case.correlation_id,
        actor=case.actor,
    )


def _event_to_response(event: TimelineEvent) -> TimelineEventResponse:
    return TimelineEventResponse(
        id=event.id,
        case_id=event.case_id,
        event_type=event.event_type,
        title=case_service.event_title(event.event_type),
        event_date=event.event_date,
        actor=event.actor,
        description=event.description,
        metadata_json=event.metadata_json,
    )


def _http_error(err: case_service.CaseServiceError) -> HTTPException:
    """Map service errors to HTTP status codes."""
    if isinstance(err, case_service.CaseNotFoundError | case_service.PatientNotFoundError):
        return HTTPException(status_code=404, detail=str(err))
    if isinstance(err, case_service.TransitionRejected):
        return HTTPException(status_code=400, detail=err.validation.to_dict())
    if isinstance(err, case_service.ConfirmationRequired):
        return HTTPException(
            status_code=409,
            detail={**err.validation.to_dict(), "requires_confirmation": True},
        )
    if isinstance(err, case_service.JustificationRequired):
        return HTTPException(
            status_code=409, detail={"error": str(err), "requires_justification": True}
        )
    if isinstance(err, case_service.ConcurrentUpdateError):
        return HTTPException(status_code=409, detail=str(err))
    return HTTPException(status_code=400, detail=str(err))


# --- Patients ---
@patients_router.post("/patients", response_model=PatientResponse)
def create_patient(
    body: PatientCreate, actor: str = Depends(require_api_key_write)
) -> PatientResponse:
    # Dependencies run in a worker thread; bind the actor where the service runs
    set_actor(actor)
    from sqlalchemy.exc import IntegrityError

    try:
        with session_scope() as session:
            patient = case_service.create_patient(session, **body.model_dump())
            return PatientResponse.model_validate(patient)
    except IntegrityError as e:
        raise HTTPException(status_code=409, detail="Patient document_number already exists") from e


@patients_router.get("/patients", response_model=list[PatientResponse])
def list_patients(
    include_inactive: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
) -> list[PatientResponse]:
    with session_scope() as session:
        patients = case_service.list_patients(
            session, active_only=not include_inactive, limit=limit
        )
        return [PatientResponse.model_validate(p) for p in patients]


@patients_router.delete("/patients/{patient_id}", response_model=PatientResponse)
def deactivate_patient(
    patient_id: int, actor: str = Depends(require_api_key_write)
) -> PatientResponse:
    """Soft delete: patient is hidden from listings, cases are kept."""
    set_actor(actor)
    try:
        with session_scope() as session:
            patient = case_service.deactivate_patient(session, patient_id)
            return PatientResponse.model_validate(patient)
    except case_service.CaseServiceError as e:
        raise _http_error(e) from e


# --- Cases ---
@cases_router.post("/cases", response_model=CaseResponse)
def create_case(
    body: CaseCreateRequest, actor: str = Depends(require_api_key_write)
) -> CaseResponse:
    """Create a case in en_evaluacion with derived fields computed. Audited."""
    set_actor(actor)
    from cost_savings.config import get_config

    fields = body.model_dump()
    if fields["projected_period_months"] is None:
        cases_cfg = get_config().get("cases", {})
        fields["projected_period_months"] = int(
            cases_cfg.get("default_projected_period_months", 12)
        )
    try:
        with session_scope() as session:
            case = case_service.create_case(session, **fields)
            return _case_to_response(case)
    except case_service.CaseServiceError as e:
        raise _http_error(e) from e


@cases_router.get("/cases", response_model=list[CaseResponse])
def list_cases(
    status: str | None = Query(None),
    search: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> list[CaseResponse]:
    if status is not None and status not in CASE_STATUS_VALUES:
        raise HTTPException(
            status_code=400, detail=f"status must be one of {sorted(CASE_STATUS_VALUES)}"
        )
    with session_scope() as session:
        cases = case_service.list_cases(session, status=status, search=search, limit=limit)
        return [_case_to_response(c) for c in cases]


@cases_router.get("/cases/{case_id}", response_model=CaseResponse)
def get_case(case_id: int) -> CaseResponse:
    try:
        with session_scope() as session:
            return _case_to_response(case_service.get_case(session, case_id))
    except case_service.CaseServiceError as e:
        raise _http_error(e) from e


@cases_router.patch("/cases/{case_id}/costs", response_model=CaseResponse)
def update_costs(
    case_id: int, body: CaseCostUpdateRequest, actor: str = Depends(require_api_key_write)
) -> CaseResponse:
    """Change raw cost inputs; derived fields are recomputed. Audited."""
    set_actor(actor)
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Provide at least one field to update")
    try:
        with session_scope() as session:
            case = case_service.update_cost_inputs(session, case_id, **changes)
            return _case_to_response(case)
    except case_service.CaseServiceError as e:
        raise _http_error(e) from e


@cases_router.get("/cases/{case_id}/transitions", response_model=list[TransitionOptionResponse])
def list_transitions(case_id: int) -> list[TransitionOptionResponse]:
    """Status menu for a case: each allowed target with its pre-validation."""
    try:
        with session_scope() as session:
            case = case_service.get_case(session, case_id)
            snapshot = case_service.snapshot_of(case)
            return [
                TransitionOptionResponse(
                    status=target,
                    label=label,
                    requires_justification=requires_justification(target),
                    validation=TransitionValidationResponse(
                        **validate_transition(case.status, target, snapshot).to_dict()
                    ),
                )
                for target, label in transition_options(case.status)
            ]
    except case_service.CaseServiceError as e:
        raise _http_error(e) from e


@cases_router.post("/cases/{case_id}/status", response_model=CaseResponse)
def change_status(
    case_id: int, body: StatusChangeRequest, actor: str = Depends(require_api_key_write)
) -> CaseResponse:
    """Validated status change. 409 asks the client for confirmation or justification."""
    set_actor(actor)
    try:
        with session_scope() as session:
            case = case_service.change_status(
                session,
                case_id,
                body.status,
                confirm=body.confirm,
                justification=body.justification,
                expected_version=body.expected_version,
            )
            return _case_to_response(case)
    except case_service.CaseServiceError as e:
        raise _http_error(e) from e


@cases_router.put("/cases/{case_id}/results", response_model=CaseResponse)
def record_results(
    case_id: int, body: CaseResultsRequest, actor: str = Depends(require_api_key_write)
) -> CaseResponse:
    """Save post-intervention monthly cost; status is set automatically from the result."""
    set_actor(actor)
    try:
        with session_scope() as session:
            case = case_service.record_results(session, case_id, body.current_monthly_cost)
            return _case_to_response(case)
    except case_service.CaseServiceError as e:
        raise _http_error(e) from e


@cases_router.post("/cases/{case_id}/notes", response_model=TimelineEventResponse)
def add_note(
    case_id: int, body: CaseNoteRequest, actor: str = Depends(require_api_key_write)
) -> TimelineEventResponse:
    set_actor(actor)
    try:
        with session_scope() as session:
            return _event_to_response(case_service.add_note(session, case_id, body.note))
    except case_service.CaseServiceError as e:
        raise _http_error(e) from e


@cases_router.get("/cases/{case_id}/timeline", response_model=list[TimelineEventResponse])
def get_timeline(case_id: int) -> list[TimelineEventResponse]:
    try:
        with session_scope() as session:
            return [_event_to_response(e) for e in case_service.get_timeline(session, case_id)]
    except case_service.CaseServiceError as e:
        raise _http_error(e) from e
