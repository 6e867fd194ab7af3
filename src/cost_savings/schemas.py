"""Pydantic v2 schemas for API and validation."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from cost_savings.case_lifecycle import CASE_STATUS_VALUES
from cost_savings.savings import CURRENCY_USD, CURRENCY_VALUES


def _check_currency(currency_type: str, exchange_rate: float | None) -> None:
    if currency_type not in CURRENCY_VALUES:
        raise ValueError(f"currency_type must be one of {sorted(CURRENCY_VALUES)}")
    if currency_type == CURRENCY_USD and (exchange_rate is None or exchange_rate <= 0):
        raise ValueError("exchange_rate must be > 0 for USD cases")


# --- Patients ---
class PatientCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=128)
    last_name: str = Field(..., min_length=1, max_length=128)
    document_number: str = Field(..., min_length=1, max_length=32)
    insurance_provider: str | None = None
    is_judicial_case: bool = False
    judicial_file_number: str | None = None


class PatientResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    document_number: str
    insurance_provider: str | None
    is_judicial_case: bool
    judicial_file_number: str | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Cost inputs / preview ---
class SavingsPreviewRequest(BaseModel):
    """Raw inputs as the wizard collects them. initial_cost defaults to monthly * months."""

    initial_monthly_cost: float = Field(..., ge=0, allow_inf_nan=False)
    projected_period_months: int = Field(..., ge=1)
    initial_cost: float | None = Field(None, ge=0, allow_inf_nan=False)
    current_monthly_cost: float | None = Field(None, ge=0, allow_inf_nan=False)
    intervention_cost: float = Field(0.0, ge=0, allow_inf_nan=False)
    currency_type: str = "ARS"
    exchange_rate: float | None = Field(None, allow_inf_nan=False)

    @field_validator("currency_type")
    @classmethod
    def currency_enum(cls, v: str) -> str:
        if v not in CURRENCY_VALUES:
            raise ValueError(f"currency_type must be one of {sorted(CURRENCY_VALUES)}")
        return v


class SavingsResponse(BaseModel):
    initial_cost: float
    current_projected_cost: float
    monthly_savings: float
    projected_savings: float
    savings_percentage: float
    has_current_cost: bool


class ArsEquivalentsResponse(BaseModel):
    available: bool
    exchange_rate: float | None
    initial_cost: float | None
    current_projected_cost: float | None
    monthly_savings: float | None
    projected_savings: float | None


class SavingsPreviewResponse(BaseModel):
    savings: SavingsResponse
    ars: ArsEquivalentsResponse
    upside_savings: float
    gauge_percentage: float
    efficiency_band: str


# --- Cases ---
class CaseCreateRequest(BaseModel):
    """Body for POST /cases (wizard output)."""

    patient_id: int
    diagnosis: str = Field(..., min_length=1)
    intervention_type: str = Field(..., min_length=1, max_length=64)
    intervention_description: str | None = None
    evaluating_doctor: str | None = None
    currency_type: str = "ARS"
    exchange_rate: float = Field(1.0, allow_inf_nan=False)
    initial_monthly_cost: float = Field(..., ge=0, allow_inf_nan=False)
    projected_period_months: int | None = Field(None, ge=1)
    intervention_cost: float = Field(0.0, ge=0, allow_inf_nan=False)
    current_monthly_cost: float | None = Field(None, ge=0, allow_inf_nan=False)

    @model_validator(mode="after")
    def check_currency(self) -> CaseCreateRequest:
        _check_currency(self.currency_type, self.exchange_rate)
        return self


class CaseCostUpdateRequest(BaseModel):
    """Body for PATCH /cases/{id}/costs. Only provided fields change; derived fields follow."""

    current_monthly_cost: float | None = Field(None, ge=0, allow_inf_nan=False)
    intervention_cost: float | None = Field(None, ge=0, allow_inf_nan=False)
    projected_period_months: int | None = Field(None, ge=1)
    currency_type: str | None = None
    exchange_rate: float | None = Field(None, allow_inf_nan=False)

    @field_validator("currency_type")
    @classmethod
    def currency_enum(cls, v: str | None) -> str | None:
        if v is not None and v not in CURRENCY_VALUES:
            raise ValueError(f"currency_type must be one of {sorted(CURRENCY_VALUES)}")
        return v

    @model_validator(mode="after")
    def no_null_for_required(self) -> CaseCostUpdateRequest:
        # Only current_monthly_cost may be cleared; the other columns are NOT NULL
        nulls = sorted(
            name
            for name in self.model_fields_set
            if name != "current_monthly_cost" and getattr(self, name) is None
        )
        if nulls:
            raise ValueError(f"Fields cannot be null: {nulls}")
        return self


class StatusChangeRequest(BaseModel):
    """Body for POST /cases/{id}/status."""

    status: str
    confirm: bool = False
    justification: str | None = None
    expected_version: int | None = None

    @field_validator("status")
    @classmethod
    def status_enum(cls, v: str) -> str:
        if v not in CASE_STATUS_VALUES:
            raise ValueError(f"status must be one of {sorted(CASE_STATUS_VALUES)}")
        return v


class CaseResultsRequest(BaseModel):
    """Body for PUT /cases/{id}/results."""

    current_monthly_cost: float = Field(..., ge=0, allow_inf_nan=False)


class CaseNoteRequest(BaseModel):
    note: str = Field(..., min_length=1)


class TransitionValidationResponse(BaseModel):
    valid: bool
    error: str | None = None
    warning: str | None = None


class TransitionOptionResponse(BaseModel):
    status: str
    label: str
    requires_justification: bool
    validation: TransitionValidationResponse


class TimelineEventResponse(BaseModel):
    id: int
    case_id: int
    event_type: str
    title: str
    event_date: datetime
    actor: str
    description: str | None
    metadata_json: dict[str, Any] | None


class CaseResponse(BaseModel):
    id: int
    patient_id: int
    diagnosis: str
    intervention_type: str
    intervention_description: str | None
    evaluating_doctor: str | None
    status: str
    status_label: str
    justification_for_increase: str | None
    currency_type: str
    exchange_rate: float
    initial_monthly_cost: float
    current_monthly_cost: float | None
    projected_period_months: int
    intervention_cost: float
    initial_projected_cost: float
    current_projected_cost: float
    monthly_savings: float
    projected_savings: float
    savings_percentage: float
    projected_savings_ars: float | None
    version: int
    created_at: datetime
    updated_at: datetime | None
    correlation_id: str | None
    actor: str | None


# --- Reporting ---
class ReportSummaryResponse(BaseModel):
    total_cases: int
    total_projected_savings: float
    avg_savings_percentage: float
    consolidated_savings_ars: float
    cases_without_conversion: int
    cases_by_currency: dict[str, int]
    cases_by_status: dict[str, int]
    savings_by_doctor: dict[str, dict[str, float]]
