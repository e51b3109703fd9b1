"""Treasury forecasting schema for GMAH funds.

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    "role_name": (
        "super_admin",
        "admin",
        "treasurer",
        "secretary",
        "committee_member",
        "borrower",
        "guarantor",
        "depositor",
    ),
    "loan_status": (
        "DRAFT",
        "SUBMITTED",
        "UNDER_REVIEW",
        "APPROVED",
        "REJECTED",
        "DISBURSED",
        "ACTIVE",
        "COMPLETED",
        "DEFAULTED",
        "CANCELLED",
    ),
    "withdrawal_status": ("PENDING", "UNDER_REVIEW", "APPROVED", "REJECTED", "COMPLETED", "CANCELLED"),
    "forecast_scenario": ("OPTIMISTIC", "REALISTIC", "PESSIMISTIC"),
    "treasury_flow_type": ("INFLOW", "OUTFLOW"),
    "treasury_flow_category": (
        "LOAN_DISBURSEMENT",
        "LOAN_REPAYMENT",
        "CONTRIBUTION",
        "DEPOSIT_WITHDRAWAL",
        "OPERATIONAL_EXPENSE",
        "INTEREST_EARNED",
        "FEE_INCOME",
        "OTHER",
    ),
    "treasury_flow_source": ("SYSTEM", "MANUAL", "IMPORT", "PROJECTION"),
    "forecast_alert_type": (
        "LOW_CASH_FLOW",
        "NEGATIVE_BALANCE",
        "HIGH_DEMAND",
        "LIQUIDITY_WARNING",
        "PAYMENT_DELAY",
    ),
    "forecast_alert_severity": ("INFO", "WARNING", "CRITICAL", "URGENT"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _tenant_column() -> sa.Column:
    return sa.Column(
        "tenant_id",
        sa.Integer(),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        server_default="1",
    )


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _flow_columns() -> list[sa.Column]:
    return [
        sa.Column("type", _enum("treasury_flow_type"), nullable=False),
        sa.Column("category", _enum("treasury_flow_category"), nullable=False),
        sa.Column("amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("expected_date", sa.Date(), nullable=False),
        sa.Column("actual_date", sa.Date(), nullable=True),
        sa.Column("is_actual", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("probability", sa.Numeric(5, 2), nullable=False, server_default="100"),
        sa.Column("confidence", sa.Numeric(5, 2), nullable=False, server_default="100"),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="EUR"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )
    op.create_index("ix_tenants_id", "tenants", ["id"])
    op.create_index("ix_tenants_code", "tenants", ["code"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", _enum("role_name"), nullable=False, server_default="borrower"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False, server_default=""),
    )
    op.create_index("ix_roles_id", "roles", ["id"])
    op.create_index("ix_roles_name", "roles", ["name"], unique=True)

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="RESTRICT"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "user_id", "role_id", name="uq_user_roles_tenant_user_role"),
    )
    op.create_index("ix_user_roles_id", "user_roles", ["id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=100), nullable=False),
        sa.Column("before_state", sa.JSON(), nullable=True),
        sa.Column("after_state", sa.JSON(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_audit_logs_id", "audit_logs", ["id"])
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])

    op.create_table(
        "loans",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("borrower_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("loan_number", sa.String(length=50), nullable=False),
        sa.Column("amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("status", _enum("loan_status"), nullable=False, server_default="DRAFT"),
        sa.Column("approval_date", sa.Date(), nullable=True),
        sa.Column("disbursement_date", sa.Date(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "loan_number", name="uq_loans_tenant_number"),
        sa.CheckConstraint("amount >= 0", name="ck_loans_amount_non_negative"),
    )
    op.create_index("ix_loans_id", "loans", ["id"])
    op.create_index("ix_loans_tenant_id", "loans", ["tenant_id"])
    op.create_index("ix_loans_status", "loans", ["status"])

    op.create_table(
        "repayment_schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("loan_id", sa.Integer(), sa.ForeignKey("loans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("paid_date", sa.Date(), nullable=True),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.UniqueConstraint("loan_id", "installment_number", name="uq_repayment_schedules_loan_installment"),
        sa.CheckConstraint("amount >= 0", name="ck_repayment_schedules_amount_non_negative"),
    )
    op.create_index("ix_repayment_schedules_id", "repayment_schedules", ["id"])
    op.create_index("ix_repayment_schedules_tenant_id", "repayment_schedules", ["tenant_id"])
    op.create_index("ix_repayment_schedules_loan_id", "repayment_schedules", ["loan_id"])
    op.create_index("ix_repayment_schedules_due_date", "repayment_schedules", ["due_date"])

    op.create_table(
        "contributions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("contributor_name", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("pledge_date", sa.Date(), nullable=False),
        sa.Column("received_date", sa.Date(), nullable=True),
        _created_at(),
        sa.CheckConstraint("amount >= 0", name="ck_contributions_amount_non_negative"),
    )
    op.create_index("ix_contributions_id", "contributions", ["id"])
    op.create_index("ix_contributions_tenant_id", "contributions", ["tenant_id"])
    op.create_index("ix_contributions_pledge_date", "contributions", ["pledge_date"])
    op.create_index("ix_contributions_received_date", "contributions", ["received_date"])

    op.create_table(
        "withdrawal_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("request_number", sa.String(length=50), nullable=False),
        sa.Column("amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", _enum("withdrawal_status"), nullable=False, server_default="PENDING"),
        sa.Column("planned_date", sa.Date(), nullable=True),
        sa.Column("completed_date", sa.Date(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "request_number", name="uq_withdrawal_requests_tenant_number"),
        sa.CheckConstraint("amount >= 0", name="ck_withdrawal_requests_amount_non_negative"),
    )
    op.create_index("ix_withdrawal_requests_id", "withdrawal_requests", ["id"])
    op.create_index("ix_withdrawal_requests_tenant_id", "withdrawal_requests", ["tenant_id"])
    op.create_index("ix_withdrawal_requests_status", "withdrawal_requests", ["status"])

    op.create_table(
        "treasury_flows",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        *_flow_columns(),
        sa.Column("loan_id", sa.Integer(), sa.ForeignKey("loans.id", ondelete="SET NULL"), nullable=True),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column(
            "contribution_id",
            sa.Integer(),
            sa.ForeignKey("contributions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "withdrawal_id",
            sa.Integer(),
            sa.ForeignKey("withdrawal_requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("source", _enum("treasury_flow_source"), nullable=False, server_default="MANUAL"),
        sa.Column("tags", sa.JSON(), nullable=True),
        _created_at(),
        sa.CheckConstraint("amount >= 0", name="ck_treasury_flows_amount_non_negative"),
        sa.CheckConstraint("probability >= 0 AND probability <= 100", name="ck_treasury_flows_probability_range"),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 100", name="ck_treasury_flows_confidence_range"),
        sa.CheckConstraint(
            "(is_actual = false) OR (actual_date IS NOT NULL)",
            name="ck_treasury_flows_actual_has_date",
        ),
    )
    op.create_index("ix_treasury_flows_id", "treasury_flows", ["id"])
    op.create_index("ix_treasury_flows_tenant_id", "treasury_flows", ["tenant_id"])
    op.create_index("ix_treasury_flows_expected_date", "treasury_flows", ["expected_date"])

    op.create_table(
        "treasury_forecasts",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column("forecast_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_days", sa.Integer(), nullable=False),
        sa.Column("scenario", _enum("forecast_scenario"), nullable=False, server_default="REALISTIC"),
        sa.Column("current_balance", sa.Numeric(24, 2), nullable=False),
        sa.Column("projected_balance", sa.Numeric(24, 2), nullable=False),
        sa.Column("min_balance", sa.Numeric(24, 2), nullable=False),
        sa.Column("max_balance", sa.Numeric(24, 2), nullable=False),
        sa.Column("total_inflows", sa.Numeric(24, 2), nullable=False),
        sa.Column("total_outflows", sa.Numeric(24, 2), nullable=False),
        sa.Column("net_cash_flow", sa.Numeric(24, 2), nullable=False),
        sa.Column("liquidity_risk", sa.Numeric(12, 6), nullable=False),
        sa.Column("volatility_index", sa.Numeric(24, 6), nullable=False),
        sa.Column("confidence_level", sa.Numeric(12, 6), nullable=False),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("calculation_time_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("data_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column(
            "created_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
        sa.CheckConstraint("period_days >= 1 AND period_days <= 365", name="ck_treasury_forecasts_period_days"),
    )
    op.create_index("ix_treasury_forecasts_id", "treasury_forecasts", ["id"])
    op.create_index("ix_treasury_forecasts_tenant_id", "treasury_forecasts", ["tenant_id"])
    op.create_index("ix_treasury_forecasts_forecast_date", "treasury_forecasts", ["forecast_date"])
    op.create_index("ix_treasury_forecasts_calculated_at", "treasury_forecasts", ["calculated_at"])

    op.create_table(
        "forecast_flows",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column(
            "forecast_id",
            sa.Integer(),
            sa.ForeignKey("treasury_forecasts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("treasury_flow_id", sa.Integer(), nullable=True),
        *_flow_columns(),
        sa.Column("weight", sa.Numeric(12, 6), nullable=False),
        sa.Column("overdue", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("loan_id", sa.Integer(), nullable=True),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("contribution_id", sa.Integer(), nullable=True),
        sa.Column("withdrawal_id", sa.Integer(), nullable=True),
        sa.Column("source", _enum("treasury_flow_source"), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=True),
    )
    op.create_index("ix_forecast_flows_id", "forecast_flows", ["id"])
    op.create_index("ix_forecast_flows_forecast_id", "forecast_flows", ["forecast_id"])
    op.create_index("ix_forecast_flows_tenant_id", "forecast_flows", ["tenant_id"])

    op.create_table(
        "forecast_alerts",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant_column(),
        sa.Column(
            "forecast_id",
            sa.Integer(),
            sa.ForeignKey("treasury_forecasts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("type", _enum("forecast_alert_type"), nullable=False),
        sa.Column("severity", _enum("forecast_alert_severity"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("triggered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("projected_date", sa.Date(), nullable=True),
        sa.Column("amount", sa.Numeric(24, 2), nullable=True),
        sa.Column("threshold", sa.Numeric(24, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_acknowledged", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "acknowledged_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recommendations", sa.JSON(), nullable=True),
    )
    op.create_index("ix_forecast_alerts_id", "forecast_alerts", ["id"])
    op.create_index("ix_forecast_alerts_tenant_id", "forecast_alerts", ["tenant_id"])
    op.create_index("ix_forecast_alerts_forecast_id", "forecast_alerts", ["forecast_id"])
    op.create_index("ix_forecast_alerts_severity", "forecast_alerts", ["severity"])
    op.create_index("ix_forecast_alerts_is_active", "forecast_alerts", ["is_active"])

    op.execute("INSERT INTO tenants (id, code, name, currency, is_active) VALUES (1, 'GMAH', 'GMAH Fund', 'EUR', true)")


def downgrade() -> None:
    for table in (
        "forecast_alerts",
        "forecast_flows",
        "treasury_forecasts",
        "treasury_flows",
        "withdrawal_requests",
        "contributions",
        "repayment_schedules",
        "loans",
        "audit_logs",
        "user_roles",
        "roles",
        "users",
        "tenants",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(*ENUMS[name], name=name).drop(bind, checkfirst=True)
