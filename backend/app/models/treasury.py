from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import (
    AlertSeverity,
    AlertType,
    FlowSource,
    ForecastScenario,
    TreasuryFlowCategory,
    TreasuryFlowType,
    db_values,
)


def _flow_type_column() -> Enum:
    return Enum(TreasuryFlowType, name="treasury_flow_type", values_callable=db_values)


def _flow_category_column() -> Enum:
    return Enum(TreasuryFlowCategory, name="treasury_flow_category", values_callable=db_values)


def _flow_source_column() -> Enum:
    return Enum(FlowSource, name="treasury_flow_source", values_callable=db_values)


class TreasuryFlow(Base):
    __tablename__ = "treasury_flows"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_treasury_flows_amount_non_negative"),
        CheckConstraint("probability >= 0 AND probability <= 100", name="ck_treasury_flows_probability_range"),
        CheckConstraint("confidence >= 0 AND confidence <= 100", name="ck_treasury_flows_confidence_range"),
        CheckConstraint(
            "(is_actual = false) OR (actual_date IS NOT NULL)",
            name="ck_treasury_flows_actual_has_date",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        default=1,
    )
    type: Mapped[TreasuryFlowType] = mapped_column(_flow_type_column(), nullable=False)
    category: Mapped[TreasuryFlowCategory] = mapped_column(_flow_category_column(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    expected_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    actual_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_actual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    probability: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("100"), nullable=False)
    confidence: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("100"), nullable=False)
    loan_id: Mapped[int | None] = mapped_column(ForeignKey("loans.id", ondelete="SET NULL"), nullable=True)
    payment_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    contribution_id: Mapped[int | None] = mapped_column(
        ForeignKey("contributions.id", ondelete="SET NULL"),
        nullable=True,
    )
    withdrawal_id: Mapped[int | None] = mapped_column(
        ForeignKey("withdrawal_requests.id", ondelete="SET NULL"),
        nullable=True,
    )
    source: Mapped[FlowSource] = mapped_column(_flow_source_column(), default=FlowSource.manual, nullable=False)
    tags: Mapped[list | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class TreasuryForecast(Base):
    __tablename__ = "treasury_forecasts"
    __table_args__ = (
        CheckConstraint("period_days >= 1 AND period_days <= 365", name="ck_treasury_forecasts_period_days"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        default=1,
    )
    forecast_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    period_days: Mapped[int] = mapped_column(Integer, nullable=False)
    scenario: Mapped[ForecastScenario] = mapped_column(
        Enum(ForecastScenario, name="forecast_scenario", values_callable=db_values),
        default=ForecastScenario.realistic,
        nullable=False,
    )

    current_balance: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    projected_balance: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    min_balance: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    max_balance: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    total_inflows: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    total_outflows: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    net_cash_flow: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)

    liquidity_risk: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)
    volatility_index: Mapped[Decimal] = mapped_column(Numeric(24, 6), nullable=False)
    confidence_level: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)

    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    calculation_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    metadata_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_by_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="forecasts")
    created_by_user: Mapped["User | None"] = relationship("User", back_populates="forecasts")
    alerts: Mapped[list["ForecastAlert"]] = relationship(
        "ForecastAlert",
        back_populates="forecast",
        cascade="all, delete-orphan",
        order_by="ForecastAlert.position",
    )
    flows: Mapped[list["ForecastFlow"]] = relationship(
        "ForecastFlow",
        back_populates="forecast",
        cascade="all, delete-orphan",
        order_by="ForecastFlow.position",
    )


class ForecastFlow(Base):
    """Flow snapshot copied into a forecast at computation time."""

    __tablename__ = "forecast_flows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        default=1,
    )
    forecast_id: Mapped[int] = mapped_column(
        ForeignKey("treasury_forecasts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    treasury_flow_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    type: Mapped[TreasuryFlowType] = mapped_column(_flow_type_column(), nullable=False)
    category: Mapped[TreasuryFlowCategory] = mapped_column(_flow_category_column(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(24, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    expected_date: Mapped[date] = mapped_column(Date, nullable=False)
    actual_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_actual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    probability: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    confidence: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    weight: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)
    overdue: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    loan_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    contribution_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    withdrawal_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source: Mapped[FlowSource] = mapped_column(_flow_source_column(), nullable=False)
    tags: Mapped[list | None] = mapped_column(JSON, nullable=True)

    forecast: Mapped["TreasuryForecast"] = relationship("TreasuryForecast", back_populates="flows")


class ForecastAlert(Base):
    __tablename__ = "forecast_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        default=1,
    )
    forecast_id: Mapped[int] = mapped_column(
        ForeignKey("treasury_forecasts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    type: Mapped[AlertType] = mapped_column(
        Enum(AlertType, name="forecast_alert_type", values_callable=db_values),
        nullable=False,
    )
    severity: Mapped[AlertSeverity] = mapped_column(
        Enum(AlertSeverity, name="forecast_alert_severity", values_callable=db_values),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    triggered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    projected_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    threshold: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    is_acknowledged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    acknowledged_by_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    recommendations: Mapped[list | None] = mapped_column(JSON, nullable=True)

    forecast: Mapped["TreasuryForecast"] = relationship("TreasuryForecast", back_populates="alerts")
