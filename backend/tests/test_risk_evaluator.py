from datetime import date
from decimal import Decimal

import pytest

from app.models.enums import AlertSeverity, AlertType, FlowSource
from app.services.flow_aggregator import mark_overdue
from app.services.risk_evaluator import (
    AlertThresholds,
    ForecastIntegrityError,
    confidence_level,
    evaluate_risk,
    liquidity_risk,
    volatility_index,
)
from app.services.scenario_projector import project_balances
from app.utils.decimal_math import money
from forecast_fixtures import inflow, outflow


START = date(2026, 1, 1)


def _assess(opening: str, flows, period_days: int = 30, thresholds: AlertThresholds | None = None):
    projection = project_balances(money(opening), flows, start_date=START, period_days=period_days)
    return projection, evaluate_risk(projection, flows, thresholds)


def test_shortfall_scenario_alerts() -> None:
    flows = [inflow("10000.00", date(2026, 1, 11)), outflow("65000.00", date(2026, 1, 16))]
    _, assessment = _assess("50000", flows)

    by_type = {alert.type: alert for alert in assessment.alerts}
    negative = by_type[AlertType.negative_balance]
    assert negative.severity == AlertSeverity.warning
    assert negative.projected_date == date(2026, 1, 16)
    assert negative.amount == money("-5000.00")
    assert negative.threshold == money("0")

    low_cash = by_type[AlertType.low_cash_flow]
    assert low_cash.severity == AlertSeverity.critical
    assert low_cash.amount == money("-5000.00")

    assert by_type[AlertType.high_demand].projected_date == date(2026, 1, 16)
    assert AlertType.liquidity_warning not in by_type
    assert assessment.liquidity_risk == Decimal("70")
    assert assessment.confidence_level == Decimal("100")


def test_single_negative_balance_alert_for_repeated_breaches() -> None:
    flows = [
        outflow("1000.00", date(2026, 1, 3)),
        inflow("2000.00", date(2026, 1, 5)),
        outflow("3000.00", date(2026, 1, 10)),
    ]
    _, assessment = _assess("500", flows)
    negatives = [alert for alert in assessment.alerts if alert.type == AlertType.negative_balance]
    assert len(negatives) == 1
    assert negatives[0].projected_date == date(2026, 1, 3)


def test_negative_balance_below_hard_floor_is_critical() -> None:
    _, assessment = _assess("1000", [outflow("20000.00", date(2026, 1, 4))])
    negative = assessment.alerts[0]
    assert negative.type == AlertType.negative_balance
    assert negative.severity == AlertSeverity.critical


def test_alerts_follow_fixed_type_order() -> None:
    flows = [outflow("90000.00", date(2026, 1, 2), probability=Decimal("60"), confidence=Decimal("40"))]
    _, assessment = _assess("10000", flows)
    order = [alert.type for alert in assessment.alerts]
    assert order == sorted(
        order,
        key=[
            AlertType.negative_balance,
            AlertType.low_cash_flow,
            AlertType.liquidity_warning,
            AlertType.high_demand,
            AlertType.payment_delay,
        ].index,
    )
    assert AlertType.liquidity_warning in order


def test_healthy_treasury_has_no_alerts() -> None:
    _, assessment = _assess("100000", [outflow("1000.00", date(2026, 1, 5))], period_days=7)
    assert assessment.alerts == []
    assert assessment.liquidity_risk == Decimal("0")


def test_confidence_is_full_only_when_all_flows_are_certain() -> None:
    certain = [inflow("1.00", START), outflow("2.00", START)]
    assert confidence_level(certain) == Decimal("100")
    assert confidence_level([]) == Decimal("100")
    mixed = [*certain, inflow("3.00", START, probability=Decimal("90"), confidence=Decimal("90"))]
    assert confidence_level(mixed) < Decimal("100")


def test_lower_probability_raises_liquidity_risk() -> None:
    sure = [inflow("5000.00", date(2026, 1, 5)), outflow("20000.00", date(2026, 1, 6))]
    unsure = [
        inflow("5000.00", date(2026, 1, 5), probability=Decimal("50")),
        outflow("20000.00", date(2026, 1, 6)),
    ]
    _, sure_risk = _assess("30000", sure)
    _, unsure_risk = _assess("30000", unsure)
    assert unsure_risk.liquidity_risk > sure_risk.liquidity_risk


def test_scores_stay_within_range() -> None:
    flows = [
        inflow("12000.00", date(2026, 1, 3), probability=Decimal("40"), confidence=Decimal("30")),
        outflow("8000.00", date(2026, 1, 12), probability=Decimal("95"), confidence=Decimal("85")),
    ]
    _, assessment = _assess("15000", flows)
    assert Decimal("0") <= assessment.liquidity_risk <= Decimal("100")
    assert Decimal("0") <= assessment.confidence_level <= Decimal("100")
    assert assessment.volatility_index >= 0


def test_out_of_range_risk_is_an_integrity_error() -> None:
    projection = project_balances(money("0"), [outflow("10.00", START)], start_date=START, period_days=3)
    with pytest.raises(ForecastIntegrityError):
        liquidity_risk(projection, Decimal("-50"), coverage_target_days=30)


def test_volatility_is_zero_for_flat_projection() -> None:
    projection = project_balances(money("500"), [], start_date=START, period_days=10)
    assert volatility_index(projection) == Decimal("0")


def test_overdue_inflows_raise_payment_delay() -> None:
    overdue = mark_overdue(inflow("3000.00", date(2025, 12, 20)), Decimal("25"))
    flows = [overdue, inflow("5000.00", date(2026, 1, 10))]
    _, assessment = _assess("100000", flows)
    delay = [alert for alert in assessment.alerts if alert.type == AlertType.payment_delay]
    assert len(delay) == 1
    assert delay[0].projected_date == START
    assert delay[0].amount == money("3000.00")


def test_wider_swings_raise_volatility() -> None:
    def swing(amount: str):
        flows = [outflow(amount, date(2026, 1, 5)), inflow(amount, date(2026, 1, 6))]
        return volatility_index(project_balances(money("50000"), flows, start_date=START, period_days=10))

    assert Decimal("0") < swing("100.00") < swing("1000.00") < swing("10000.00")


def test_sub_cent_shortfall_is_not_a_negative_balance() -> None:
    flows = [outflow("0.01", START, probability=Decimal("10"))]
    _, assessment = _assess("0", flows, period_days=5)
    assert AlertType.negative_balance not in [alert.type for alert in assessment.alerts]


def test_projected_expenses_do_not_count_as_outflow_demand() -> None:
    flows = [outflow("2000.00", date(2026, 1, 16), source=FlowSource.projection, probability=Decimal("95"))]
    _, assessment = _assess("1000000", flows)
    assert AlertType.high_demand not in [alert.type for alert in assessment.alerts]

    recorded = [outflow("2000.00", date(2026, 1, 16), probability=Decimal("95"))]
    _, assessment = _assess("1000000", recorded)
    assert AlertType.high_demand in [alert.type for alert in assessment.alerts]


def test_alert_messages_carry_currency() -> None:
    flows = [outflow("20000.00", date(2026, 1, 4))]
    projection = project_balances(money("1000"), flows, start_date=START, period_days=30)
    assessment = evaluate_risk(projection, flows, currency="ILS")
    assert assessment.alerts[0].message.endswith("-19,000.00 ILS.")
    assert all("ILS" in alert.message for alert in assessment.alerts if alert.type != AlertType.liquidity_warning)

    bare = evaluate_risk(projection, flows)
    assert bare.alerts[0].message.endswith("-19,000.00.")
