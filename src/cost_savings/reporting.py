"""Case export (JSON + CSV) and KPI summary.

Reads the stored derived fields as they are; nothing here recomputes savings.
"""

from __future__ import annotations

import csv
import json
import time
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from cost_savings import BUILD_VERSION, ENGINE_VERSION
from cost_savings.audit_context import get_actor, get_correlation_id
from cost_savings.case_lifecycle import STATUS_LABELS
from cost_savings.config import get_config, get_config_hash
from cost_savings.models import AuditLog, CostSavingsCase

UNASSIGNED_DOCTOR = "Sin asignar"

CSV_FIELDS = [
    "case_id",
    "patient",
    "document_number",
    "diagnosis",
    "status",
    "status_label",
    "currency_type",
    "exchange_rate",
    "initial_monthly_cost",
    "current_monthly_cost",
    "initial_projected_cost",
    "current_projected_cost",
    "monthly_savings",
    "projected_savings",
    "projected_savings_ars",
    "savings_percentage",
    "intervention_type",
    "intervention_cost",
    "evaluating_doctor",
    "created_at",
]


def _case_record(case: CostSavingsCase) -> dict[str, Any]:
    patient = case.patient
    return {
        "case_id": case.id,
        "patient": f"{patient.first_name} {patient.last_name}" if patient else None,
        "document_number": patient.document_number if patient else None,
        "diagnosis": case.diagnosis,
        "status": case.status,
        "status_label": STATUS_LABELS.get(case.status, case.status),
        "currency_type": case.currency_type,
        "exchange_rate": case.exchange_rate,
        "initial_monthly_cost": case.initial_monthly_cost,
        "current_monthly_cost": case.current_monthly_cost,
        "initial_projected_cost": case.initial_projected_cost,
        "current_projected_cost": case.current_projected_cost,
        "monthly_savings": case.monthly_savings,
        "projected_savings": case.projected_savings,
        "projected_savings_ars": case.projected_savings_ars,
        "savings_percentage": round(case.savings_percentage, 2),
        "intervention_type": case.intervention_type,
        "intervention_cost": case.intervention_cost,
        "evaluating_doctor": case.evaluating_doctor,
        "created_at": case.created_at.isoformat() if case.created_at else None,
    }


def build_case_records(session: Session, status: str | None = None) -> list[dict[str, Any]]:
    """One flat record per case, oldest first."""
    stmt = (
        select(CostSavingsCase)
        .options(joinedload(CostSavingsCase.patient))
        .order_by(CostSavingsCase.created_at, CostSavingsCase.id)
    )
    if status is not None:
        stmt = stmt.where(CostSavingsCase.status == status)
    return [_case_record(c) for c in session.execute(stmt).scalars().all()]


def summarize_cases(records: list[dict[str, Any]]) -> dict[str, Any]:
    """
    KPIs over exported records. Consolidated ARS savings add the stored ARS value
    of each case; USD cases without a usable rate are counted, not added as 0.
    """
    total = len(records)
    total_savings = sum(r["projected_savings"] or 0.0 for r in records)
    avg_pct = sum(r["savings_percentage"] or 0.0 for r in records) / total if total else 0.0
    consolidated = 0.0
    without_conversion = 0
    by_doctor: dict[str, dict[str, float]] = {}
    for r in records:
        if r["projected_savings_ars"] is None:
            without_conversion += 1
        else:
            consolidated += r["projected_savings_ars"]
        doctor = r["evaluating_doctor"] or UNASSIGNED_DOCTOR
        stats = by_doctor.setdefault(doctor, {"cases": 0, "total_savings": 0.0})
        stats["cases"] += 1
        stats["total_savings"] += r["projected_savings"] or 0.0
    for stats in by_doctor.values():
        stats["avg_savings_per_case"] = stats["total_savings"] / stats["cases"]
    return {
        "total_cases": total,
        "total_projected_savings": total_savings,
        "avg_savings_percentage": avg_pct,
        "consolidated_savings_ars": consolidated,
        "cases_without_conversion": without_conversion,
        "cases_by_currency": dict(Counter(r["currency_type"] for r in records)),
        "cases_by_status": dict(Counter(r["status"] for r in records)),
        "savings_by_doctor": by_doctor,
    }


def generate_case_report(
    session: Session,
    output_dir: str | Path,
    output_prefix: str = "cost_savings",
    status: str | None = None,
    config_path: str | None = None,
) -> tuple[str, str]:
    """
    Write case records + summary as JSON and records as CSV.
    Adds a generate_report audit row. Returns (path_json, path_csv).
    """
    start = time.perf_counter()
    config_hash = get_config_hash(get_config(config_path))
    path = Path(output_dir)
    path.mkdir(parents=True, exist_ok=True)
    ts_suffix = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    json_path = path / f"{output_prefix}_{ts_suffix}.json"
    csv_path = path / f"{output_prefix}_{ts_suffix}.csv"

    records = build_case_records(session, status=status)
    summary = summarize_cases(records)

    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(
            {
                "generated_at": datetime.now(UTC).isoformat(),
                "summary": summary,
                "cases": records,
            },
            f,
            indent=2,
            ensure_ascii=False,
        )

    with open(csv_path, "w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=CSV_FIELDS, extrasaction="ignore")
        w.writeheader()
        w.writerows(records)

    duration = time.perf_counter() - start
    session.add(
        AuditLog(
            correlation_id=get_correlation_id(),
            action="generate_report",
            entity_type="report",
            entity_id=ts_suffix,
            actor=get_actor(),
            details_json={
                "case_count": len(records),
                "status_filter": status,
                "duration_seconds": round(duration, 3),
                "config_hash": config_hash,
                "build_version": BUILD_VERSION,
                "engine_version": ENGINE_VERSION,
                "output_json": str(json_path),
                "output_csv": str(csv_path),
            },
        )
    )
    return str(json_path), str(csv_path)
