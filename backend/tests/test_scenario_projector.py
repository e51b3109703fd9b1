from datetime import date
from decimal import Decimal

import pytest

from app.models.enums import ForecastScenario
from app.services.flow_aggregator import ForecastValidationError
from app.services.scenario_projector import flow_weight, project_balances
from app.utils.decimal_math import money
from forecast_fixtures import inflow, outflow


START = date(2026, 1, 1)


def _shortfall_flows():
    return [
        inflow("10000.00", date(2026, 1, 11)),
        outflow("65000.00", date(2026, 1, 16)),
    ]


def test_projection_has_one_point_per_day_including_start() -> None:
    projection = project_balances(money("50000"), [], start_date=START, period_days=30)
    assert len(projection.daily_balances) == 31
    assert projection.projected_balance == money("50000.00")
    assert projection.total_inflows == money("0")
    assert projection.total_outflows == money("0")


def test_shortfall_projection_figures() -> None:
    projection = project_balances(money("50000"), _shortfall_flows(), start_date=START, period_days=30)
    assert projection.daily_balances[9] == Decimal("50000.00")
    assert projection.daily_balances[10] == Decimal("60000.00")
    assert projection.daily_balances[15] == Decimal("-5000.00")
    assert projection.min_balance == money("-5000.00")
    assert projection.max_balance == money("60000.00")
    assert projection.projected_balance == money("-5000.00")
    assert projection.total_inflows == money("10000.00")
    assert projection.total_outflows == money("65000.00")
    assert projection.net_cash_flow == money("-55000.00")


def test_min_max_and_final_balance_are_consistent() -> None:
    flows = [
        inflow("1234.56", date(2026, 1, 3), probability=Decimal("85")),
        outflow("999.99", date(2026, 1, 8), probability=Decimal("70")),
        inflow("50.05", date(2026, 1, 20)),
    ]
    projection = project_balances(money("1000"), flows, start_date=START, period_days=30)
    assert projection.min_balance <= projection.projected_balance <= projection.max_balance
    assert projection.min_balance <= money(projection.opening_balance) <= projection.max_balance
    assert projection.net_cash_flow == projection.total_inflows - projection.total_outflows


def test_uncertain_flows_are_weighted_by_probability() -> None:
    projection = project_balances(
        money("0"),
        [inflow("1000.00", date(2026, 1, 2), probability=Decimal("85"))],
        start_date=START,
        period_days=10,
    )
    assert projection.total_inflows == money("850.00")
    assert projection.weights == [Decimal("0.85")]


def test_optimistic_projection_never_below_pessimistic() -> None:
    flows = [
        inflow("8000.00", date(2026, 1, 5), probability=Decimal("85")),
        outflow("12000.00", date(2026, 1, 9), probability=Decimal("90")),
        inflow("3000.00", date(2026, 1, 20), probability=Decimal("70")),
    ]
    results = {
        scenario: project_balances(money("20000"), flows, start_date=START, period_days=30, scenario=scenario)
        for scenario in ForecastScenario
    }
    optimistic = results[ForecastScenario.optimistic]
    realistic = results[ForecastScenario.realistic]
    pessimistic = results[ForecastScenario.pessimistic]
    for day in range(31):
        assert optimistic.daily_balances[day] >= realistic.daily_balances[day] >= pessimistic.daily_balances[day]


def test_scenarios_agree_when_every_flow_is_actual() -> None:
    flows = [
        inflow("500.00", date(2026, 1, 2), is_actual=True, actual_date=date(2026, 1, 2)),
        outflow("200.00", date(2026, 1, 4), is_actual=True, actual_date=date(2026, 1, 4)),
    ]
    balances = {
        scenario: project_balances(
            money("100"), flows, start_date=START, period_days=7, scenario=scenario
        ).daily_balances
        for scenario in ForecastScenario
    }
    assert balances[ForecastScenario.optimistic] == balances[ForecastScenario.realistic]
    assert balances[ForecastScenario.realistic] == balances[ForecastScenario.pessimistic]


def test_actual_flows_carry_full_weight() -> None:
    flow = outflow("10.00", START, is_actual=True, actual_date=START, probability=Decimal("100"))
    assert flow_weight(flow, ForecastScenario.pessimistic) == Decimal("1")


def test_overdue_flow_lands_on_first_day() -> None:
    projection = project_balances(
        money("100"),
        [outflow("40.00", date(2025, 12, 20))],
        start_date=START,
        period_days=5,
    )
    assert projection.daily_balances[0] == Decimal("60.00")


def test_negative_balance_without_flows_is_rejected() -> None:
    with pytest.raises(ForecastValidationError) as exc:
        project_balances(money("-1"), [], start_date=START, period_days=30)
    assert exc.value.field == "currentBalance"


def test_negative_balance_with_flows_is_allowed() -> None:
    projection = project_balances(
        money("-100"),
        [inflow("500.00", date(2026, 1, 2))],
        start_date=START,
        period_days=3,
    )
    assert projection.projected_balance == money("400.00")


def test_flow_after_window_is_an_error() -> None:
    with pytest.raises(ValueError):
        project_balances(money("0"), [inflow("1.00", date(2026, 3, 1))], start_date=START, period_days=5)


def test_scenarios_differ_when_a_flow_is_uncertain() -> None:
    flows = [
        inflow("4000.00", date(2026, 1, 3), probability=Decimal("80")),
        outflow("1500.00", date(2026, 1, 3), is_actual=True, actual_date=date(2026, 1, 3)),
    ]
    results = {
        scenario: project_balances(money("10000"), flows, start_date=START, period_days=10, scenario=scenario)
        for scenario in ForecastScenario
    }
    realistic = results[ForecastScenario.realistic].daily_balances
    for scenario in (ForecastScenario.optimistic, ForecastScenario.pessimistic):
        balances = results[scenario].daily_balances
        assert balances[0] == realistic[0]
        for day in range(2, 11):
            assert balances[day] != realistic[day]


def test_every_daily_balance_lies_between_min_and_max() -> None:
    flows = [
        inflow("2500.55", date(2026, 1, 4), probability=Decimal("65")),
        outflow("7300.10", date(2026, 1, 9), probability=Decimal("90")),
        outflow("120.00", date(2026, 1, 9), is_actual=True, actual_date=date(2026, 1, 9)),
        inflow("980.40", date(2026, 1, 21), probability=Decimal("35")),
    ]
    for scenario in ForecastScenario:
        projection = project_balances(
            money("6000"), flows, start_date=START, period_days=30, scenario=scenario
        )
        for balance in projection.daily_balances:
            assert projection.min_balance <= money(balance) <= projection.max_balance
