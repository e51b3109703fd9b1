from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from app.models.enums import FlowSource, ForecastScenario, TreasuryFlowType
from app.services.flow_aggregator import FlowInput, ForecastValidationError, validate_period_days
from app.utils.decimal_math import as_fraction, money


# (inflow, outflow) multipliers applied to uncertain flows
SCENARIO_MULTIPLIERS: dict[ForecastScenario, tuple[Decimal, Decimal]] = {
    ForecastScenario.optimistic: (Decimal("1.10"), Decimal("0.90")),
    ForecastScenario.realistic: (Decimal("1.00"), Decimal("1.00")),
    ForecastScenario.pessimistic: (Decimal("0.80"), Decimal("1.10")),
}


@dataclass(frozen=True)
class BalanceProjection:
    start_date: date
    period_days: int
    scenario: ForecastScenario
    opening_balance: Decimal
    daily_balances: list[Decimal]
    daily_inflows: list[Decimal]
    daily_outflows: list[Decimal]
    # weighted outflows excluding synthesized PROJECTION flows
    daily_demand: list[Decimal]
    weights: list[Decimal]
    projected_balance: Decimal
    min_balance: Decimal
    max_balance: Decimal
    total_inflows: Decimal
    total_outflows: Decimal
    net_cash_flow: Decimal

    def date_for(self, day: int) -> date:
        return self.start_date + timedelta(days=day)

    def first_day(self, predicate) -> int | None:
        for day, balance in enumerate(self.daily_balances):
            if predicate(balance):
                return day
        return None


def scenario_multiplier(scenario: ForecastScenario, flow_type: TreasuryFlowType) -> Decimal:
    inflow, outflow = SCENARIO_MULTIPLIERS[scenario]
    return inflow if flow_type == TreasuryFlowType.inflow else outflow


def flow_weight(flow: FlowInput, scenario: ForecastScenario) -> Decimal:
    if flow.is_actual:
        return Decimal("1")
    return scenario_multiplier(scenario, flow.type) * as_fraction(flow.probability)


def day_index(flow: FlowInput, start_date: date) -> int:
    # overdue flows land on day 0
    return max(0, (flow.effective_date - start_date).days)


def project_balances(
    current_balance: Decimal,
    flows: list[FlowInput],
    *,
    start_date: date,
    period_days: int,
    scenario: ForecastScenario = ForecastScenario.realistic,
) -> BalanceProjection:
    validate_period_days(period_days)
    opening = Decimal(str(current_balance))
    if opening < 0 and not flows:
        raise ForecastValidationError(
            "currentBalance",
            "currentBalance cannot be negative when no flows are expected in the period.",
        )

    day_count = period_days + 1
    daily_inflows = [Decimal("0")] * day_count
    daily_outflows = [Decimal("0")] * day_count
    daily_demand = [Decimal("0")] * day_count
    weights: list[Decimal] = []

    for flow in flows:
        day = day_index(flow, start_date)
        if day >= day_count:
            raise ValueError(f"Flow dated {flow.effective_date} falls outside the forecast window.")
        weight = flow_weight(flow, scenario)
        weights.append(weight)
        weighted = Decimal(flow.amount) * weight
        if flow.type == TreasuryFlowType.inflow:
            daily_inflows[day] += weighted
        else:
            daily_outflows[day] += weighted
            if flow.source != FlowSource.projection:
                daily_demand[day] += weighted

    balances: list[Decimal] = []
    balance = opening
    for day in range(day_count):
        balance = balance + daily_inflows[day] - daily_outflows[day]
        balances.append(balance)

    total_inflows = money(sum(daily_inflows, Decimal("0")))
    total_outflows = money(sum(daily_outflows, Decimal("0")))

    return BalanceProjection(
        start_date=start_date,
        period_days=period_days,
        scenario=scenario,
        opening_balance=opening,
        daily_balances=balances,
        daily_inflows=daily_inflows,
        daily_outflows=daily_outflows,
        daily_demand=daily_demand,
        weights=weights,
        projected_balance=money(balances[-1]),
        min_balance=money(min(balances)),
        max_balance=money(max(balances)),
        total_inflows=total_inflows,
        total_outflows=total_outflows,
        net_cash_flow=total_inflows - total_outflows,
    )
