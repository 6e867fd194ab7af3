"""SQLAlchemy 2.x ORM models for patients, cost-savings cases and their history."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from cost_savings.case_lifecycle import INITIAL_CASE_STATUS


class Base(DeclarativeBase):
    """Declarative base for all models."""

    pass


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    document_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    insurance_provider: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_judicial_case: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    judicial_file_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    cases: Mapped[list[CostSavingsCase]] = relationship(
        "CostSavingsCase", back_populates="patient"
    )


class CostSavingsCase(Base):
    """
    One intervention case. Raw cost inputs are authored; the derived columns
    (current_projected_cost .. projected_savings_ars) are only written from
    savings.compute_savings via case_service.
    """

    __tablename__ = "cost_savings_cases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False, index=True)
    diagnosis: Mapped[str] = mapped_column(Text, nullable=False)
    intervention_type: Mapped[str] = mapped_column(String(64), nullable=False)
    intervention_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    evaluating_doctor: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=INITIAL_CASE_STATUS, index=True
    )
    justification_for_increase: Mapped[str | None] = mapped_column(Text, nullable=True)

    currency_type: Mapped[str] = mapped_column(String(3), nullable=False, default="ARS")
    exchange_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    initial_monthly_cost: Mapped[float] = mapped_column(Float, nullable=False)
    current_monthly_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    projected_period_months: Mapped[int] = mapped_column(Integer, nullable=False)
    intervention_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    initial_projected_cost: Mapped[float] = mapped_column(Float, nullable=False)
    current_projected_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    monthly_savings: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    projected_savings: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    savings_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    projected_savings_ars: Mapped[float | None] = mapped_column(Float, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, onupdate=lambda: datetime.now(UTC)
    )
    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    actor: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Optimistic lock: UPDATEs carry "WHERE version = <read version>"
    __mapper_args__ = {"version_id_col": version}

    patient: Mapped[Patient] = relationship("Patient", back_populates="cases")
    timeline: Mapped[list[TimelineEvent]] = relationship(
        "TimelineEvent", back_populates="case", order_by="TimelineEvent.id"
    )


class TimelineEvent(Base):
    """Case history shown to users: created, status_change, intervention, note, completed."""

    __tablename__ = "cost_savings_timeline"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    case_id: Mapped[int] = mapped_column(
        ForeignKey("cost_savings_cases.id"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    event_date: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    actor: Mapped[str] = mapped_column(String(128), nullable=False, default="system")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    case: Mapped[CostSavingsCase] = relationship("CostSavingsCase", back_populates="timeline")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(128), nullable=False)
    ts: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    actor: Mapped[str] = mapped_column(String(128), default="system", nullable=False)
    details_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    row_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
