"""Typer CLI: patients, cases, status changes, results, notes, reports and the API server."""

from __future__ import annotations

import os
import uuid
from pathlib import Path

import typer
from sqlalchemy.exc import IntegrityError

from cost_savings import case_service
from cost_savings.audit_context import set_audit_context
from cost_savings.case_lifecycle import (
    CASE_STATUS_VALUES,
    STATUS_LABELS,
    requires_justification,
    transition_options,
    validate_transition,
)
from cost_savings.config import get_config
from cost_savings.db import init_db, session_scope, verify_audit_chain
from cost_savings.logging_config import setup_logging
from cost_savings.reporting import generate_case_report
from cost_savings.savings import (
    ars_equivalents,
    compute_savings,
    efficiency_band,
    initial_projected_cost,
)

app = typer.Typer(help="Cost savings case management CLI")


def _ensure_db(config_path: str | None = None) -> None:
    config = get_config(config_path)
    db_url = config.get("database", {}).get("url", "sqlite:///./data/cost_savings.db")
    if db_url.startswith("sqlite:///") and ":memory:" not in db_url:
        Path(db_url.replace("sqlite:///", "")).parent.mkdir(parents=True, exist_ok=True)
    setup_logging(config.get("app", {}).get("log_level", "INFO"))
    init_db(db_url, echo=config.get("database", {}).get("echo", False))
    set_audit_context(str(uuid.uuid4()), os.environ.get("COSTSAV_ACTOR", "cli"))


def _fail(message: str) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(1)


@app.command("create-patient")
def create_patient_cmd(
    first_name: str = typer.Option(..., "--first-name"),
    last_name: str = typer.Option(..., "--last-name"),
    document_number: str = typer.Option(..., "--document", help="National ID number"),
    insurance_provider: str | None = typer.Option(None, "--insurance"),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Register a patient (audited)."""
    _ensure_db(config)
    try:
        with session_scope() as session:
            patient = case_service.create_patient(
                session,
                first_name=first_name,
                last_name=last_name,
                document_number=document_number,
                insurance_provider=insurance_provider,
            )
            patient_id = patient.id
    except IntegrityError:
        _fail(f"A patient with document {document_number} already exists")
    typer.echo(f"Created patient {patient_id}")


@app.command("create-case")
def create_case_cmd(
    patient_id: int = typer.Option(..., "--patient-id"),
    diagnosis: str = typer.Option(..., "--diagnosis"),
    intervention_type: str = typer.Option(..., "--intervention-type"),
    initial_monthly_cost: float = typer.Option(..., "--initial-monthly-cost"),
    months: int | None = typer.Option(None, "--months", help="Projected period in months"),
    intervention_cost: float = typer.Option(0.0, "--intervention-cost"),
    currency: str | None = typer.Option(None, "--currency", help="ARS | USD"),
    exchange_rate: float = typer.Option(1.0, "--exchange-rate", help="USD -> ARS rate"),
    doctor: str | None = typer.Option(None, "--doctor", help="Evaluating doctor"),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Create a case in en_evaluacion with derived savings (audited)."""
    _ensure_db(config)
    cases_cfg = get_config(config).get("cases", {})
    try:
        with session_scope() as session:
            case = case_service.create_case(
                session,
                patient_id=patient_id,
                diagnosis=diagnosis,
                intervention_type=intervention_type,
                initial_monthly_cost=initial_monthly_cost,
                projected_period_months=months
                or int(cases_cfg.get("default_projected_period_months", 12)),
                intervention_cost=intervention_cost,
                currency_type=currency or cases_cfg.get("default_currency", "ARS"),
                exchange_rate=exchange_rate,
                evaluating_doctor=doctor,
            )
            case_id, status = case.id, case.status
    except case_service.CaseServiceError as e:
        _fail(str(e))
    typer.echo(f"Created case {case_id} (status={status})")


@app.command("show-case")
def show_case_cmd(
    case_id: int = typer.Option(..., "--id", help="Case ID"),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Print stored values, ARS equivalents and the status menu of a case."""
    _ensure_db(config)
    try:
        with session_scope() as session:
            case = case_service.get_case(session, case_id)
            typer.echo(f"Case {case.id}: {STATUS_LABELS[case.status]} ({case.status})")
            typer.echo(f"  currency: {case.currency_type} (rate {case.exchange_rate})")
            typer.echo(f"  initial monthly cost: {case.initial_monthly_cost:.2f}")
            current = (
                "not recorded"
                if case.current_monthly_cost is None
                else f"{case.current_monthly_cost:.2f}"
            )
            typer.echo(f"  current monthly cost: {current}")
            typer.echo(f"  monthly savings: {case.monthly_savings:.2f}")
            typer.echo(f"  projected savings: {case.projected_savings:.2f}")
            typer.echo(f"  savings %: {case.savings_percentage:.1f}")
            if case.projected_savings_ars is not None and case.currency_type == "USD":
                typer.echo(f"  projected savings (ARS): {case.projected_savings_ars:.2f}")
            snapshot = case_service.snapshot_of(case)
            options = transition_options(case.status)
            if not options:
                typer.echo("  no further transitions")
            for target, label in options:
                v = validate_transition(case.status, target, snapshot)
                flag = "ok" if v.valid else f"blocked: {v.error}"
                if v.warning:
                    flag = f"warning: {v.warning}"
                typer.echo(f"  -> {target} [{label}] {flag}")
    except case_service.CaseServiceError as e:
        _fail(str(e))


@app.command("change-status")
def change_status_cmd(
    case_id: int = typer.Option(..., "--id", help="Case ID"),
    status: str = typer.Option(..., "--status", help=" | ".join(sorted(CASE_STATUS_VALUES))),
    confirm: bool = typer.Option(False, "--confirm", help="Accept the transition warning"),
    justification: str | None = typer.Option(None, "--justification"),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Change case status through the transition rules (audited)."""
    if status not in CASE_STATUS_VALUES:
        _fail(f"status must be one of {sorted(CASE_STATUS_VALUES)}")
    _ensure_db(config)
    try:
        with session_scope() as session:
            case_service.change_status(
                session, case_id, status, confirm=confirm, justification=justification
            )
    except case_service.ConfirmationRequired as e:
        _fail(f"{e} Re-run with --confirm and --justification.")
    except case_service.JustificationRequired as e:
        hint = " (required for this status)" if requires_justification(status) else ""
        _fail(f"{e}{hint}: pass --justification")
    except case_service.CaseServiceError as e:
        _fail(str(e))
    typer.echo(f"Case {case_id} is now {STATUS_LABELS[status]}")


@app.command("record-results")
def record_results_cmd(
    case_id: int = typer.Option(..., "--id", help="Case ID"),
    current_monthly_cost: float = typer.Option(..., "--current-monthly-cost"),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Save post-intervention monthly cost; status follows the result automatically."""
    _ensure_db(config)
    try:
        with session_scope() as session:
            case = case_service.record_results(session, case_id, current_monthly_cost)
            status = case.status
    except case_service.CaseServiceError as e:
        _fail(str(e))
    typer.echo(f"Results saved. Case {case_id} is now {STATUS_LABELS[status]}")


@app.command("add-note")
def add_note_cmd(
    case_id: int = typer.Option(..., "--id", help="Case ID"),
    note: str = typer.Option(..., "--note", help="Note text"),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Add a note to the case timeline (audited)."""
    _ensure_db(config)
    try:
        with session_scope() as session:
            case_service.add_note(session, case_id, note)
    except case_service.CaseServiceError as e:
        _fail(str(e))
    typer.echo(f"Added note to case {case_id}")


@app.command("preview-savings")
def preview_savings_cmd(
    initial_monthly_cost: float = typer.Option(..., "--initial-monthly-cost"),
    months: int = typer.Option(..., "--months"),
    current_monthly_cost: float | None = typer.Option(None, "--current-monthly-cost"),
    intervention_cost: float = typer.Option(0.0, "--intervention-cost"),
    currency: str = typer.Option("ARS", "--currency"),
    exchange_rate: float | None = typer.Option(None, "--exchange-rate"),
) -> None:
    """Compute derived savings for raw inputs without storing anything."""
    try:
        breakdown = compute_savings(
            initial_monthly_cost=initial_monthly_cost,
            projected_period_months=months,
            initial_cost=initial_projected_cost(initial_monthly_cost, months),
            current_monthly_cost=current_monthly_cost,
            intervention_cost=intervention_cost,
        )
        ars = ars_equivalents(breakdown, currency, exchange_rate)
    except ValueError as e:
        _fail(str(e))
    for name, value in breakdown.to_dict().items():
        typer.echo(f"{name}: {value}")
    typer.echo(f"efficiency: {efficiency_band(breakdown.savings_percentage)}")
    if currency == "USD":
        if ars.available:
            typer.echo(f"projected_savings_ars: {ars.projected_savings}")
        else:
            typer.echo("Ingrese una cotización del dólar válida para ver los valores en ARS.")


@app.command("generate-reports")
def generate_reports_cmd(
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
    output_dir: str | None = typer.Option(None, "--output", "-o", help="Output directory"),
    status: str | None = typer.Option(None, "--status", help="Only cases in this status"),
) -> None:
    """Export cases and KPI summary (JSON + CSV)."""
    if status is not None and status not in CASE_STATUS_VALUES:
        _fail(f"status must be one of {sorted(CASE_STATUS_VALUES)}")
    _ensure_db(config)
    out = output_dir or get_config(config).get("reporting", {}).get("output_dir", "./reports")
    with session_scope() as session:
        jp, cp = generate_case_report(session, out, status=status, config_path=config)
    typer.echo(f"Reports: {jp}, {cp}")


@app.command("verify-audit")
def verify_audit_cmd(
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Check the audit log hash chain."""
    _ensure_db(config)
    with session_scope() as session:
        broken = verify_audit_chain(session)
    if broken:
        _fail(f"Audit chain broken at rows: {broken}")
    typer.echo("Audit chain OK")


@app.command("serve-api")
def serve_api(
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
    host: str | None = typer.Option(None, "--host", "-h", help="Bind host"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
) -> None:
    """Start the FastAPI server."""
    import uvicorn

    cfg = get_config(config)
    if config:
        os.environ["COSTSAV_CONFIG_PATH"] = config
    h = host or os.environ.get("COSTSAV_API_HOST") or cfg.get("api", {}).get("host", "0.0.0.0")
    _pe = os.environ.get("COSTSAV_API_PORT", "")
    p = (
        port
        if port is not None
        else (int(_pe) if _pe.isdigit() else None) or cfg.get("api", {}).get("port", 8000)
    )
    uvicorn.run("cost_savings.api:app", host=h, port=p, reload=False)


if __name__ == "__main__":
    app()
