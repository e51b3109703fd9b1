from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from app.models.enums import AlertSeverity, AlertType, TreasuryFlowType
from app.services.flow_aggregator import FlowInput
from app.services.scenario_projector import BalanceProjection
from app.utils.decimal_math import HUNDRED, money, pct


SHORTFALL_WEIGHT = Decimal("70")
UNCERTAINTY_WEIGHT = Decimal("30")
HIGH_DEMAND_WINDOW_DAYS = 7
CRITICAL_LIQUIDITY_SCORE = Decimal("90")

RECOMMENDATIONS: dict[AlertType, list[str]] = {
    AlertType.negative_balance: [
        "Secure additional funding before the projected date",
        "Postpone all non-critical disbursements",
        "Contact major contributors for emergency funding",
    ],
    AlertType.low_cash_flow: [
        "Consider delaying non-urgent loan disbursements",
        "Accelerate contribution collection efforts",
        "Review and postpone optional expenses",
    ],
    AlertType.liquidity_warning: [
        "Review the disbursement calendar with the committee",
        "Confirm uncertain inflows with borrowers and contributors",
    ],
    AlertType.high_demand: [
        "Prioritize loans by urgency and community impact",
        "Spread approved disbursements over several weeks",
        "Increase fundraising activities",
    ],
    AlertType.payment_delay: [
        "Follow up with borrowers on overdue installments",
        "Notify guarantors of loans with repeated delays",
    ],
}


class ForecastIntegrityError(RuntimeError):
    pass


@dataclass(frozen=True)
class AlertThresholds:
    minimum_reserve: Decimal = Decimal("25000")
    critical_reserve: Decimal = Decimal("10000")
    negative_balance_hard_floor: Decimal = Decimal("-10000")
    liquidity_risk_threshold: Decimal = Decimal("75")
    high_demand_multiple: Decimal = Decimal("2")
    payment_delay_fraction: Decimal = Decimal("0.10")
    coverage_target_days: int = 30


@dataclass(frozen=True)
class AlertDraft:
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    projected_date: date | None
    amount: Decimal | None
    threshold: Decimal | None
    recommendations: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RiskAssessment:
    liquidity_risk: Decimal
    volatility_index: Decimal
    confidence_level: Decimal
    alerts: list[AlertDraft]


def format_amount(value: Decimal, currency: str | None = None) -> str:
    text = f"{value:,.2f}"
    return f"{text} {currency}" if currency else text


def _check_score(name: str, value: Decimal) -> Decimal:
    if value < 0 or value > HUNDRED:
        raise ForecastIntegrityError(f"{name} {value} is outside 0..100; check flow probabilities.")
    return value


def confidence_level(flows: list[FlowInput]) -> Decimal:
    if not flows:
        return pct(HUNDRED)
    total = sum(
        (Decimal(flow.probability) * Decimal(flow.confidence) / HUNDRED for flow in flows),
        Decimal("0"),
    )
    return _check_score("confidenceLevel", pct(total / len(flows)))


def volatility_index(projection: BalanceProjection) -> Decimal:
    deltas: list[Decimal] = []
    previous = projection.opening_balance
    for balance in projection.daily_balances:
        deltas.append(balance - previous)
        previous = balance
    mean = sum(deltas, Decimal("0")) / len(deltas)
    variance = sum(((delta - mean) ** 2 for delta in deltas), Decimal("0")) / len(deltas)
    return pct(variance.sqrt())


def liquidity_risk(
    projection: BalanceProjection,
    confidence: Decimal,
    *,
    coverage_target_days: int,
) -> Decimal:
    min_balance = projection.min_balance
    day_count = projection.period_days + 1
    average_daily_outflow = projection.total_outflows / day_count

    if min_balance <= 0:
        shortfall = SHORTFALL_WEIGHT
    elif average_daily_outflow == 0:
        shortfall = Decimal("0")
    else:
        coverage_days = min_balance / average_daily_outflow
        gap = Decimal("1") - coverage_days / Decimal(coverage_target_days)
        shortfall = SHORTFALL_WEIGHT * gap if gap > 0 else Decimal("0")

    uncertainty = UNCERTAINTY_WEIGHT * (HUNDRED - confidence) / HUNDRED
    return _check_score("liquidityRisk", pct(shortfall + uncertainty))


def _negative_balance_alert(
    projection: BalanceProjection,
    thresholds: AlertThresholds,
    currency: str | None,
) -> AlertDraft | None:
    day = projection.first_day(lambda balance: money(balance) < 0)
    if day is None:
        return None
    breach = money(projection.daily_balances[day])
    below_floor = projection.first_day(
        lambda balance: money(balance) < money(thresholds.negative_balance_hard_floor)
    )
    severity = AlertSeverity.critical if below_floor is not None else AlertSeverity.warning
    return AlertDraft(
        type=AlertType.negative_balance,
        severity=severity,
        title="Negative Balance Risk",
        message=(
            f"Projected balance goes negative on {projection.date_for(day).isoformat()}: "
            f"{format_amount(breach, currency)}."
        ),
        projected_date=projection.date_for(day),
        amount=breach,
        threshold=money(0),
        recommendations=list(RECOMMENDATIONS[AlertType.negative_balance]),
    )


def _low_cash_alert(
    projection: BalanceProjection,
    thresholds: AlertThresholds,
    currency: str | None,
) -> AlertDraft | None:
    reserve = money(thresholds.minimum_reserve)
    if projection.min_balance >= reserve:
        return None
    day = projection.first_day(lambda balance: money(balance) < reserve)
    severity = (
        AlertSeverity.critical
        if projection.min_balance < money(thresholds.critical_reserve)
        else AlertSeverity.warning
    )
    return AlertDraft(
        type=AlertType.low_cash_flow,
        severity=severity,
        title="Low Cash Flow Warning",
        message=(
            f"Projected minimum balance of {format_amount(projection.min_balance, currency)} is under "
            f"the {format_amount(reserve, currency)} reserve and may impact operations."
        ),
        projected_date=projection.date_for(day) if day is not None else None,
        amount=projection.min_balance,
        threshold=reserve,
        recommendations=list(RECOMMENDATIONS[AlertType.low_cash_flow]),
    )


def _liquidity_alert(
    projection: BalanceProjection,
    risk: Decimal,
    thresholds: AlertThresholds,
) -> AlertDraft | None:
    limit = Decimal(thresholds.liquidity_risk_threshold)
    if risk <= limit:
        return None
    day = projection.first_day(lambda balance: money(balance) == projection.min_balance)
    return AlertDraft(
        type=AlertType.liquidity_warning,
        severity=AlertSeverity.critical if risk >= CRITICAL_LIQUIDITY_SCORE else AlertSeverity.warning,
        title="High Liquidity Risk",
        message=f"Liquidity risk score {risk:.2f} exceeds the {limit:.2f} threshold.",
        projected_date=projection.date_for(day) if day is not None else None,
        amount=money(risk),
        threshold=money(limit),
        recommendations=list(RECOMMENDATIONS[AlertType.liquidity_warning]),
    )


def _high_demand_alert(
    projection: BalanceProjection,
    thresholds: AlertThresholds,
    currency: str | None,
) -> AlertDraft | None:
    total = sum(projection.daily_demand, Decimal("0"))
    if total <= 0:
        return None
    day_count = projection.period_days + 1
    average_window = total * HIGH_DEMAND_WINDOW_DAYS / day_count
    limit = average_window * Decimal(thresholds.high_demand_multiple)

    running = Decimal("0")
    for day, outflow in enumerate(projection.daily_demand):
        running += outflow
        if day >= HIGH_DEMAND_WINDOW_DAYS:
            running -= projection.daily_demand[day - HIGH_DEMAND_WINDOW_DAYS]
        if running > limit:
            return AlertDraft(
                type=AlertType.high_demand,
                severity=AlertSeverity.warning,
                title="High Outflow Demand",
                message=(
                    f"Outflows of {format_amount(money(running), currency)} in the 7 days to "
                    f"{projection.date_for(day).isoformat()} exceed {format_amount(money(limit), currency)}."
                ),
                projected_date=projection.date_for(day),
                amount=money(running),
                threshold=money(limit),
                recommendations=list(RECOMMENDATIONS[AlertType.high_demand]),
            )
    return None


def _payment_delay_alert(
    projection: BalanceProjection,
    flows: list[FlowInput],
    thresholds: AlertThresholds,
    currency: str | None,
) -> AlertDraft | None:
    overdue_total = money(
        sum(
            (Decimal(flow.amount) for flow in flows if flow.overdue and flow.type == TreasuryFlowType.inflow),
            Decimal("0"),
        )
    )
    if overdue_total <= 0:
        return None
    limit = money(projection.total_inflows * Decimal(thresholds.payment_delay_fraction))
    if overdue_total <= limit:
        return None
    return AlertDraft(
        type=AlertType.payment_delay,
        severity=AlertSeverity.warning,
        title="Overdue Payments",
        message=(
            f"Overdue inflows of {format_amount(overdue_total, currency)} exceed "
            f"{format_amount(limit, currency)} of expected inflows."
        ),
        projected_date=projection.start_date,
        amount=overdue_total,
        threshold=limit,
        recommendations=list(RECOMMENDATIONS[AlertType.payment_delay]),
    )


def evaluate_risk(
    projection: BalanceProjection,
    flows: list[FlowInput],
    thresholds: AlertThresholds | None = None,
    *,
    currency: str | None = None,
) -> RiskAssessment:
    limits = thresholds or AlertThresholds()
    confidence = confidence_level(flows)
    risk = liquidity_risk(projection, confidence, coverage_target_days=limits.coverage_target_days)
    volatility = volatility_index(projection)

    candidates = [
        _negative_balance_alert(projection, limits, currency),
        _low_cash_alert(projection, limits, currency),
        _liquidity_alert(projection, risk, limits),
        _high_demand_alert(projection, limits, currency),
        _payment_delay_alert(projection, flows, limits, currency),
    ]
    return RiskAssessment(
        liquidity_risk=risk,
        volatility_index=volatility,
        confidence_level=confidence,
        alerts=[alert for alert in candidates if alert is not None],
    )
