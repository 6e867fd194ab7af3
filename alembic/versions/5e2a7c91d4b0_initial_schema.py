"""initial_schema

Revision ID: 5e2a7c91d4b0
Revises:
Create Date: 2026-10-19 10:12:41.208113

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "5e2a7c91d4b0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("first_name", sa.String(128), nullable=False),
        sa.Column("last_name", sa.String(128), nullable=False),
        sa.Column("document_number", sa.String(32), nullable=False),
        sa.Column("insurance_provider", sa.String(128), nullable=True),
        sa.Column("is_judicial_case", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("judicial_file_number", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_number"),
    )
    op.create_table(
        "cost_savings_cases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("diagnosis", sa.Text(), nullable=False),
        sa.Column("intervention_type", sa.String(64), nullable=False),
        sa.Column("intervention_description", sa.Text(), nullable=True),
        sa.Column("evaluating_doctor", sa.String(128), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="en_evaluacion"),
        sa.Column("justification_for_increase", sa.Text(), nullable=True),
        sa.Column("currency_type", sa.String(3), nullable=False, server_default="ARS"),
        sa.Column("exchange_rate", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("initial_monthly_cost", sa.Float(), nullable=False),
        sa.Column("current_monthly_cost", sa.Float(), nullable=True),
        sa.Column("projected_period_months", sa.Integer(), nullable=False),
        sa.Column("intervention_cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("initial_projected_cost", sa.Float(), nullable=False),
        sa.Column("current_projected_cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("monthly_savings", sa.Float(), nullable=False, server_default="0"),
        sa.Column("projected_savings", sa.Float(), nullable=False, server_default="0"),
        sa.Column("savings_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("projected_savings_ars", sa.Float(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("actor", sa.String(128), nullable=True),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cost_savings_cases_patient_id", "cost_savings_cases", ["patient_id"])
    op.create_index("ix_cost_savings_cases_status", "cost_savings_cases", ["status"])
    op.create_index(
        "ix_cost_savings_cases_correlation_id", "cost_savings_cases", ["correlation_id"]
    )
    op.create_table(
        "cost_savings_timeline",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("event_date", sa.DateTime(), nullable=True),
        sa.Column("actor", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["case_id"], ["cost_savings_cases.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cost_savings_timeline_case_id", "cost_savings_timeline", ["case_id"])
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("ts", sa.DateTime(), nullable=True),
        sa.Column("actor", sa.String(128), nullable=False),
        sa.Column("details_json", sa.JSON(), nullable=True),
        sa.Column("prev_hash", sa.String(64), nullable=True),
        sa.Column("row_hash", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_correlation_id", "audit_logs", ["correlation_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_correlation_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_cost_savings_timeline_case_id", table_name="cost_savings_timeline")
    op.drop_table("cost_savings_timeline")
    op.drop_index("ix_cost_savings_cases_correlation_id", table_name="cost_savings_cases")
    op.drop_index("ix_cost_savings_cases_status", table_name="cost_savings_cases")
    op.drop_index("ix_cost_savings_cases_patient_id", table_name="cost_savings_cases")
    op.drop_table("cost_savings_cases")
    op.drop_table("patients")
