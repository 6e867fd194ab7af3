"""FastAPI app: savings preview, patients, cases and report summary."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from cost_savings import BUILD_VERSION, ENGINE_VERSION
from cost_savings.audit_context import set_audit_context
from cost_savings.cases_api import cases_router, patients_router
from cost_savings.config import get_config
from cost_savings.db import init_db, session_scope
from cost_savings.logging_config import setup_logging
from cost_savings.reporting import build_case_records, summarize_cases
from cost_savings.savings import (
    ars_equivalents,
    compute_savings,
    efficiency_band,
    gauge_percentage,
    initial_projected_cost,
    upside_savings,
)
from cost_savings.schemas import (
    ArsEquivalentsResponse,
    ReportSummaryResponse,
    SavingsPreviewRequest,
    SavingsPreviewResponse,
    SavingsResponse,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    setup_logging(config.get("app", {}).get("log_level", "INFO"))
    db_cfg = config.get("database", {})
    init_db(db_cfg.get("url", "sqlite:///./data/cost_savings.db"), echo=db_cfg.get("echo", False))
    yield


app = FastAPI(title="Cost Savings API", version=ENGINE_VERSION, lifespan=lifespan)


class AuditContextMiddleware(BaseHTTPMiddleware):
    """Set correlation_id per request and echo it as X-Correlation-ID.
    Actor starts as anonymous; mutating routes replace it with the API key owner.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        set_audit_context(correlation_id, "anonymous")
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


app.add_middleware(AuditContextMiddleware)

app.include_router(patients_router)
app.include_router(cases_router)


@app.get("/health")
def health() -> dict[str, Any]:
    """Liveness and version; db_status indicates DB connectivity."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from cost_savings.db import get_engine

    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        db_status = "ok"
    except (RuntimeError, SQLAlchemyError):
        db_status = "error"
    return {
        "status": "ok",
        "engine_version": ENGINE_VERSION,
        "build_version": BUILD_VERSION,
        "db_status": db_status,
    }


@app.post("/savings/preview", response_model=SavingsPreviewResponse)
def preview_savings(body: SavingsPreviewRequest) -> SavingsPreviewResponse:
    """Derived fields for wizard inputs, without touching the database."""
    initial_cost = (
        body.initial_cost
        if body.initial_cost is not None
        else initial_projected_cost(body.initial_monthly_cost, body.projected_period_months)
    )
    breakdown = compute_savings(
        initial_monthly_cost=body.initial_monthly_cost,
        projected_period_months=body.projected_period_months,
        initial_cost=initial_cost,
        current_monthly_cost=body.current_monthly_cost,
        intervention_cost=body.intervention_cost,
    )
    ars = ars_equivalents(breakdown, body.currency_type, body.exchange_rate)
    return SavingsPreviewResponse(
        savings=SavingsResponse(**breakdown.to_dict()),
        ars=ArsEquivalentsResponse(**ars.to_dict()),
        upside_savings=upside_savings(breakdown.projected_savings),
        gauge_percentage=gauge_percentage(breakdown.savings_percentage),
        efficiency_band=efficiency_band(breakdown.savings_percentage),
    )


@app.get("/reports/summary", response_model=ReportSummaryResponse)
def report_summary(status: str | None = Query(None)) -> ReportSummaryResponse:
    """KPIs over stored case values (same numbers the exported files carry)."""
    with session_scope() as session:
        return ReportSummaryResponse(**summarize_cases(build_case_records(session, status=status)))
