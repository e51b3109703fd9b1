from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Protocol

from app.models.enums import FlowSource, TreasuryFlowCategory, TreasuryFlowType
from app.utils.decimal_math import money


MIN_PERIOD_DAYS = 1
MAX_PERIOD_DAYS = 365
DAYS_PER_MONTH = 30


class ForecastValidationError(ValueError):
    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(message)
        self.field = field_name
        self.message = message


@dataclass(frozen=True)
class FlowInput:
    type: TreasuryFlowType
    category: TreasuryFlowCategory
    amount: Decimal
    description: str
    expected_date: date
    actual_date: date | None = None
    is_actual: bool = False
    probability: Decimal = Decimal("100")
    confidence: Decimal = Decimal("100")
    loan_id: int | None = None
    payment_id: int | None = None
    contribution_id: int | None = None
    withdrawal_id: int | None = None
    treasury_flow_id: int | None = None
    source: FlowSource = FlowSource.system
    tags: tuple[str, ...] = field(default_factory=tuple)
    overdue: bool = False

    def __post_init__(self) -> None:
        if Decimal(self.amount) < 0:
            raise ValueError(f"Flow amount must be >= 0 ({self.description}).")
        if not Decimal("0") <= Decimal(self.probability) <= Decimal("100"):
            raise ValueError(f"Flow probability must be within 0..100 ({self.description}).")
        if not Decimal("0") <= Decimal(self.confidence) <= Decimal("100"):
            raise ValueError(f"Flow confidence must be within 0..100 ({self.description}).")
        if self.is_actual and self.actual_date is None:
            raise ValueError(f"Actual flow requires actual_date ({self.description}).")

    @property
    def effective_date(self) -> date:
        if self.is_actual and self.actual_date is not None:
            return self.actual_date
        return self.expected_date


class FlowReader(Protocol):
    def read_flows(self, start: date, end: date) -> list[FlowInput]:
        """Candidate flows for the window; overdue (expected before `start`) included."""

    def contribution_total(self, since: date, until: date) -> Decimal:
        """Sum of contributions received in [since, until)."""


@dataclass(frozen=True)
class RecurringAssumptions:
    monthly_contribution: Decimal = Decimal("0")
    monthly_operational_cost: Decimal = Decimal("0")


def validate_period_days(period_days: int) -> None:
    if isinstance(period_days, bool) or not isinstance(period_days, int):
        raise ForecastValidationError("periodDays", "periodDays must be an integer.")
    if period_days < MIN_PERIOD_DAYS or period_days > MAX_PERIOD_DAYS:
        raise ForecastValidationError(
            "periodDays",
            f"periodDays must be between {MIN_PERIOD_DAYS} and {MAX_PERIOD_DAYS}.",
        )


def window_end(forecast_date: date, period_days: int) -> date:
    return forecast_date + timedelta(days=period_days)


def period_months(period_days: int) -> int:
    return math.ceil(period_days / DAYS_PER_MONTH)


def _type_rank(flow: FlowInput) -> int:
    return 0 if flow.type == TreasuryFlowType.inflow else 1


def sort_flows(flows: list[FlowInput]) -> list[FlowInput]:
    return sorted(
        flows,
        key=lambda flow: (
            flow.effective_date,
            _type_rank(flow),
            flow.category.value,
            flow.description,
            Decimal(flow.amount),
            flow.treasury_flow_id or 0,
        ),
    )


def mark_overdue(flow: FlowInput, penalty: Decimal) -> FlowInput:
    probability = Decimal(flow.probability) - Decimal(penalty)
    if probability < 0:
        probability = Decimal("0")
    tags = flow.tags if "overdue" in flow.tags else (*flow.tags, "overdue")
    return replace(flow, probability=probability, overdue=True, tags=tags)


def month_slices(forecast_date: date, period_days: int) -> list[date]:
    """Midpoint of each 30-day slice of the window; the last slice may be shorter."""
    midpoints: list[date] = []
    for index in range(period_months(period_days)):
        offset = index * DAYS_PER_MONTH
        length = min(DAYS_PER_MONTH, period_days - offset)
        midpoints.append(forecast_date + timedelta(days=offset + length // 2))
    return midpoints


def project_recurring_flows(
    forecast_date: date,
    period_days: int,
    assumptions: RecurringAssumptions,
) -> list[FlowInput]:
    contribution_amount = money(Decimal(assumptions.monthly_contribution))
    expense_amount = money(Decimal(assumptions.monthly_operational_cost))
    flows: list[FlowInput] = []

    for midpoint in month_slices(forecast_date, period_days):
        if contribution_amount > 0:
            flows.append(
                FlowInput(
                    type=TreasuryFlowType.inflow,
                    category=TreasuryFlowCategory.contribution,
                    amount=contribution_amount,
                    description="Projected contributions based on historical patterns",
                    expected_date=midpoint,
                    probability=Decimal("70"),
                    confidence=Decimal("60"),
                    source=FlowSource.projection,
                    tags=("contribution", "projected"),
                )
            )
        if expense_amount > 0:
            flows.append(
                FlowInput(
                    type=TreasuryFlowType.outflow,
                    category=TreasuryFlowCategory.operational_expense,
                    amount=expense_amount,
                    description="Projected operational expenses",
                    expected_date=midpoint,
                    probability=Decimal("95"),
                    confidence=Decimal("85"),
                    source=FlowSource.projection,
                    tags=("operational_expense", "projected"),
                )
            )
    return flows


def aggregate_flows(
    reader: FlowReader,
    forecast_date: date,
    period_days: int,
    *,
    overdue_penalty: Decimal = Decimal("25"),
    recurring: RecurringAssumptions | None = None,
) -> list[FlowInput]:
    validate_period_days(period_days)
    end = window_end(forecast_date, period_days)

    rows: list[FlowInput] = []
    for flow in reader.read_flows(forecast_date, end):
        if flow.is_actual:
            if flow.actual_date is not None and forecast_date <= flow.actual_date <= end:
                rows.append(flow)
            continue
        if flow.expected_date > end:
            continue
        if flow.expected_date < forecast_date:
            rows.append(mark_overdue(flow, overdue_penalty))
        else:
            rows.append(flow)

    if recurring is not None:
        rows.extend(project_recurring_flows(forecast_date, period_days, recurring))
    return sort_flows(rows)
