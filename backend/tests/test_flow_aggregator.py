from datetime import date
from decimal import Decimal

import pytest

from app.models.enums import FlowSource, TreasuryFlowCategory, TreasuryFlowType
from app.services.flow_aggregator import (
    FlowInput,
    ForecastValidationError,
    RecurringAssumptions,
    aggregate_flows,
    month_slices,
    project_recurring_flows,
    validate_period_days,
)
from forecast_fixtures import StaticFlowReader, inflow, outflow


START = date(2026, 3, 1)


def test_reader_is_asked_for_the_forecast_window() -> None:
    reader = StaticFlowReader([])
    assert aggregate_flows(reader, START, 30) == []
    assert reader.calls == [(START, date(2026, 3, 31))]


@pytest.mark.parametrize("period_days", [0, 366, -5])
def test_period_days_outside_range_is_rejected(period_days: int) -> None:
    with pytest.raises(ForecastValidationError) as exc:
        validate_period_days(period_days)
    assert exc.value.field == "periodDays"


def test_period_days_bounds_are_accepted() -> None:
    validate_period_days(1)
    validate_period_days(365)


def test_flows_after_window_are_dropped_and_end_date_is_inclusive() -> None:
    reader = StaticFlowReader(
        [
            inflow("100.00", date(2026, 3, 31), description="last day"),
            inflow("200.00", date(2026, 4, 1), description="too late"),
        ]
    )
    rows = aggregate_flows(reader, START, 30)
    assert [row.description for row in rows] == ["last day"]


def test_overdue_expected_flow_is_kept_with_reduced_probability() -> None:
    reader = StaticFlowReader(
        [inflow("1000.00", date(2026, 2, 20), probability=Decimal("85"), confidence=Decimal("90"))]
    )
    rows = aggregate_flows(reader, START, 30, overdue_penalty=Decimal("25"))
    assert len(rows) == 1
    assert rows[0].overdue is True
    assert rows[0].probability == Decimal("60")
    assert "overdue" in rows[0].tags


def test_overdue_penalty_never_drops_probability_below_zero() -> None:
    reader = StaticFlowReader([inflow("10.00", date(2026, 2, 1), probability=Decimal("10"))])
    rows = aggregate_flows(reader, START, 30, overdue_penalty=Decimal("25"))
    assert rows[0].probability == Decimal("0")


def test_actual_flows_outside_window_are_excluded() -> None:
    reader = StaticFlowReader(
        [
            inflow("500.00", date(2026, 2, 25), is_actual=True, actual_date=date(2026, 2, 27)),
            inflow("700.00", date(2026, 2, 25), is_actual=True, actual_date=date(2026, 3, 2)),
        ]
    )
    rows = aggregate_flows(reader, START, 30)
    assert [row.amount for row in rows] == [Decimal("700.00")]
    assert rows[0].overdue is False


def test_flows_are_sorted_by_date_then_inflows_first() -> None:
    reader = StaticFlowReader(
        [
            outflow("300.00", date(2026, 3, 5)),
            inflow("100.00", date(2026, 3, 10)),
            inflow("200.00", date(2026, 3, 5)),
        ]
    )
    rows = aggregate_flows(reader, START, 30)
    assert [(row.expected_date.day, row.type) for row in rows] == [
        (5, TreasuryFlowType.inflow),
        (5, TreasuryFlowType.outflow),
        (10, TreasuryFlowType.inflow),
    ]


def test_aggregation_order_does_not_depend_on_reader_order() -> None:
    flows = [
        outflow("300.00", date(2026, 3, 5)),
        inflow("100.00", date(2026, 3, 10)),
        inflow("200.00", date(2026, 3, 5)),
    ]
    forward = aggregate_flows(StaticFlowReader(flows), START, 30)
    backward = aggregate_flows(StaticFlowReader(list(reversed(flows))), START, 30)
    assert forward == backward


def test_recurring_projection_emits_one_flow_per_month_slice() -> None:
    rows = project_recurring_flows(
        START,
        45,
        RecurringAssumptions(monthly_contribution=Decimal("1500"), monthly_operational_cost=Decimal("2000")),
    )
    assert len(rows) == 4
    contribution, expense = rows[0], rows[1]
    assert contribution.amount == Decimal("1500.00")
    assert contribution.category == TreasuryFlowCategory.contribution
    assert contribution.source == FlowSource.projection
    assert (contribution.probability, contribution.confidence) == (Decimal("70"), Decimal("60"))
    assert expense.amount == Decimal("2000.00")
    assert expense.type == TreasuryFlowType.outflow
    assert [row.expected_date for row in rows] == [
        date(2026, 3, 16),
        date(2026, 3, 16),
        date(2026, 4, 7),
        date(2026, 4, 7),
    ]
    assert [row.amount for row in rows[2:]] == [Decimal("1500.00"), Decimal("2000.00")]


def test_recurring_projection_skips_zero_amounts() -> None:
    assert project_recurring_flows(START, 30, RecurringAssumptions()) == []


def test_invalid_flow_inputs_are_rejected() -> None:
    with pytest.raises(ValueError):
        inflow("-1.00", START)
    with pytest.raises(ValueError):
        inflow("1.00", START, probability=Decimal("101"))
    with pytest.raises(ValueError):
        FlowInput(
            type=TreasuryFlowType.inflow,
            category=TreasuryFlowCategory.other,
            amount=Decimal("1"),
            description="missing date",
            expected_date=START,
            is_actual=True,
        )


def test_month_slices_place_flows_mid_slice() -> None:
    assert month_slices(START, 30) == [date(2026, 3, 16)]
    assert month_slices(START, 1) == [START]
    assert len(month_slices(START, 365)) == 13
