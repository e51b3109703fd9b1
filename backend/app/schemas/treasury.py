from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import Field, field_validator

from app.models.enums import (
    AlertSeverity,
    AlertType,
    FlowSource,
    ForecastScenario,
    TreasuryFlowCategory,
    TreasuryFlowType,
)
from app.schemas.common import CamelModel


class ManualForecastMetadata(CamelModel):
    kind: Literal["manual"] = "manual"
    requested_by: str | None = None
    note: str | None = Field(default=None, max_length=1000)


class ScheduledForecastMetadata(CamelModel):
    kind: Literal["scheduled"] = "scheduled"
    job: str


class ComparisonForecastMetadata(CamelModel):
    kind: Literal["comparison"] = "comparison"
    comparison_id: str
    base_scenario: ForecastScenario | None = None


class OpaqueForecastMetadata(CamelModel):
    kind: Literal["opaque"] = "opaque"
    data: dict[str, str] = Field(default_factory=dict)


ForecastMetadata = Annotated[
    Union[
        ManualForecastMetadata,
        ScheduledForecastMetadata,
        ComparisonForecastMetadata,
        OpaqueForecastMetadata,
    ],
    Field(discriminator="kind"),
]


class CreateTreasuryForecastRequest(CamelModel):
    forecast_date: datetime
    period_days: int = Field(ge=1, le=365)
    scenario: ForecastScenario = ForecastScenario.realistic
    current_balance: Decimal = Field(max_digits=22, decimal_places=2)
    metadata: ForecastMetadata | None = None


class CompareScenariosRequest(CamelModel):
    forecast_date: datetime
    period_days: int = Field(ge=1, le=365)
    current_balance: Decimal = Field(max_digits=22, decimal_places=2)
    metadata: ForecastMetadata | None = None


class ForecastQuery(CamelModel):
    days: int = Field(default=30, ge=1, le=365)
    scenario: ForecastScenario | None = None
    start_date: date | None = None
    include_inactive_alerts: bool = False


class TreasuryFlowOut(CamelModel):
    id: int
    type: TreasuryFlowType
    category: TreasuryFlowCategory
    amount: Decimal
    description: str
    expected_date: date
    actual_date: date | None = None
    is_actual: bool
    probability: Decimal
    confidence: Decimal
    loan_id: int | None = None
    payment_id: int | None = None
    contribution_id: int | None = None
    withdrawal_id: int | None = None
    source: FlowSource
    tags: list[str] | None = None


class ForecastFlowOut(TreasuryFlowOut):
    weight: Decimal
    overdue: bool


class ForecastAlertOut(CamelModel):
    id: int
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    triggered_at: datetime
    projected_date: date | None = None
    amount: Decimal | None = None
    threshold: Decimal | None = None
    is_active: bool
    is_acknowledged: bool
    acknowledged_at: datetime | None = None
    recommendations: list[str] | None = None


class ActiveAlertOut(ForecastAlertOut):
    forecast_id: int
    period_days: int
    scenario: ForecastScenario


class TreasuryForecastOut(CamelModel):
    id: int
    forecast_date: datetime
    period_days: int
    scenario: ForecastScenario
    current_balance: Decimal
    projected_balance: Decimal
    min_balance: Decimal
    max_balance: Decimal
    total_inflows: Decimal
    total_outflows: Decimal
    net_cash_flow: Decimal
    liquidity_risk: Decimal
    volatility_index: Decimal
    confidence_level: Decimal
    calculated_at: datetime
    calculation_time: int
    data_points: int
    metadata: ForecastMetadata | None = None
    alerts: list[ForecastAlertOut]
    flows: list[ForecastFlowOut]


class ForecastSummaryOut(CamelModel):
    total_forecasts: int
    active_alerts: int
    critical_alerts: int
    average_liquidity_risk: Decimal
    last_forecast_date: datetime | None = None
    next_critical_date: date | None = None


class TreasuryFlowCreate(CamelModel):
    type: TreasuryFlowType
    category: TreasuryFlowCategory
    amount: Decimal = Field(ge=0, max_digits=22, decimal_places=2)
    description: str = Field(min_length=1, max_length=2000)
    expected_date: date
    probability: Decimal = Field(default=Decimal("100"), ge=0, le=100)
    confidence: Decimal = Field(default=Decimal("100"), ge=0, le=100)
    loan_id: int | None = None
    payment_id: int | None = None
    contribution_id: int | None = None
    withdrawal_id: int | None = None
    source: FlowSource = FlowSource.manual
    tags: list[str] | None = None

    @field_validator("source")
    @classmethod
    def _reject_projection_source(cls, value: FlowSource) -> FlowSource:
        if value == FlowSource.projection:
            raise ValueError("PROJECTION flows are synthesized by the forecaster and cannot be recorded.")
        return value


class TreasuryFlowRealize(CamelModel):
    actual_date: date
    amount: Decimal | None = Field(default=None, ge=0, max_digits=22, decimal_places=2)
