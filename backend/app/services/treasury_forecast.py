from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time, timedelta, timezone
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.config import Settings, get_settings
from app.models.contribution import Contribution
from app.models.enums import (
    SEVERITY_RANK,
    AlertSeverity,
    ForecastScenario,
    TreasuryFlowType,
    WithdrawalStatus,
)
from app.models.loan import Loan, RepaymentSchedule
from app.models.tenant import Tenant
from app.models.treasury import ForecastAlert, ForecastFlow, TreasuryFlow, TreasuryForecast
from app.models.user import User
from app.models.withdrawal import WithdrawalRequest
from app.schemas.treasury import (
    ActiveAlertOut,
    CompareScenariosRequest,
    ComparisonForecastMetadata,
    CreateTreasuryForecastRequest,
    ForecastAlertOut,
    ForecastFlowOut,
    ForecastQuery,
    ForecastSummaryOut,
    ScheduledForecastMetadata,
    TreasuryForecastOut,
)
from app.services.audit import log_audit
from app.services.flow_aggregator import (
    DAYS_PER_MONTH,
    FlowInput,
    FlowReader,
    ForecastValidationError,
    RecurringAssumptions,
    aggregate_flows,
    validate_period_days,
)
from app.services.flow_reader import ForecastWriter, SqlFlowReader, SqlForecastWriter
from app.services.risk_evaluator import AlertThresholds, RiskAssessment, evaluate_risk
from app.services.scenario_projector import BalanceProjection, project_balances
from app.utils.decimal_math import money, pct


logger = logging.getLogger(__name__)

URGENT_SEVERITIES = (AlertSeverity.critical, AlertSeverity.urgent)


@dataclass(frozen=True)
class ForecastConfig:
    thresholds: AlertThresholds = field(default_factory=AlertThresholds)
    overdue_penalty: Decimal = Decimal("25")
    disbursement_lag_days: int = 3
    contribution_history_months: int = 6
    monthly_operational_cost: Decimal = Decimal("2000")
    summary_window_days: int = 30

    @classmethod
    def from_settings(cls, settings: Settings) -> ForecastConfig:
        return cls(
            thresholds=AlertThresholds(
                minimum_reserve=settings.forecast_minimum_reserve,
                critical_reserve=settings.forecast_critical_reserve,
                negative_balance_hard_floor=settings.forecast_negative_balance_hard_floor,
                liquidity_risk_threshold=settings.forecast_liquidity_risk_threshold,
                high_demand_multiple=settings.forecast_high_demand_multiple,
                payment_delay_fraction=settings.forecast_payment_delay_fraction,
                coverage_target_days=settings.forecast_coverage_target_days,
            ),
            overdue_penalty=settings.forecast_overdue_probability_penalty,
            disbursement_lag_days=settings.forecast_disbursement_lag_days,
            contribution_history_months=settings.forecast_contribution_history_months,
            monthly_operational_cost=settings.forecast_monthly_operational_cost,
            summary_window_days=settings.forecast_summary_window_days,
        )


def _resolve_config(config: ForecastConfig | None) -> ForecastConfig:
    return config if config is not None else ForecastConfig.from_settings(get_settings())


def _validation_error(exc: ForecastValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"field": exc.field, "message": exc.message},
    )


def _recurring_assumptions(reader: FlowReader, start: date, config: ForecastConfig) -> RecurringAssumptions:
    monthly_contribution = Decimal("0")
    months = config.contribution_history_months
    if months > 0:
        since = start - timedelta(days=months * DAYS_PER_MONTH)
        monthly_contribution = reader.contribution_total(since, start) / months
    return RecurringAssumptions(
        monthly_contribution=monthly_contribution,
        monthly_operational_cost=config.monthly_operational_cost,
    )


def _build_alerts(
    assessment: RiskAssessment,
    *,
    tenant_id: int,
    triggered_at: datetime,
) -> list[ForecastAlert]:
    return [
        ForecastAlert(
            tenant_id=tenant_id,
            position=index,
            type=draft.type,
            severity=draft.severity,
            title=draft.title,
            message=draft.message,
            triggered_at=triggered_at,
            projected_date=draft.projected_date,
            amount=draft.amount,
            threshold=draft.threshold,
            is_active=True,
            is_acknowledged=False,
            recommendations=list(draft.recommendations),
        )
        for index, draft in enumerate(assessment.alerts)
    ]


def _build_flow_snapshots(
    flows: list[FlowInput],
    projection: BalanceProjection,
    *,
    tenant_id: int,
) -> list[ForecastFlow]:
    return [
        ForecastFlow(
            tenant_id=tenant_id,
            position=index,
            treasury_flow_id=flow.treasury_flow_id,
            type=flow.type,
            category=flow.category,
            amount=money(flow.amount),
            description=flow.description,
            expected_date=flow.expected_date,
            actual_date=flow.actual_date,
            is_actual=flow.is_actual,
            probability=Decimal(flow.probability),
            confidence=Decimal(flow.confidence),
            weight=pct(weight),
            overdue=flow.overdue,
            loan_id=flow.loan_id,
            payment_id=flow.payment_id,
            contribution_id=flow.contribution_id,
            withdrawal_id=flow.withdrawal_id,
            source=flow.source,
            tags=list(flow.tags) or None,
        )
        for index, (flow, weight) in enumerate(zip(flows, projection.weights))
    ]


def generate_forecast(
    db: Session,
    payload: CreateTreasuryForecastRequest,
    *,
    tenant_id: int,
    actor: User | None = None,
    reader: FlowReader | None = None,
    writer: ForecastWriter | None = None,
    config: ForecastConfig | None = None,
    now: datetime | None = None,
) -> TreasuryForecast:
    started = time.perf_counter()
    config = _resolve_config(config)
    reader = reader if reader is not None else SqlFlowReader(
        db, tenant_id, disbursement_lag_days=config.disbursement_lag_days
    )
    writer = writer if writer is not None else SqlForecastWriter(db)
    start_date = payload.forecast_date.date()
    logger.info(
        "Generating %s-day %s forecast for tenant %s from %s",
        payload.period_days,
        payload.scenario.value,
        tenant_id,
        start_date.isoformat(),
    )

    try:
        validate_period_days(payload.period_days)
        flows = aggregate_flows(
            reader,
            start_date,
            payload.period_days,
            overdue_penalty=config.overdue_penalty,
            recurring=_recurring_assumptions(reader, start_date, config),
        )
        projection = project_balances(
            payload.current_balance,
            flows,
            start_date=start_date,
            period_days=payload.period_days,
            scenario=payload.scenario,
        )
        tenant = db.get(Tenant, tenant_id)
        assessment = evaluate_risk(
            projection,
            flows,
            config.thresholds,
            currency=tenant.currency if tenant is not None else None,
        )
    except ForecastValidationError as exc:
        raise _validation_error(exc) from exc
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Flow aggregation failed for tenant %s", tenant_id)
        raise

    calculated_at = now if now is not None else datetime.now(timezone.utc)
    elapsed_ms = int(round((time.perf_counter() - started) * 1000))
    forecast = TreasuryForecast(
        tenant_id=tenant_id,
        forecast_date=payload.forecast_date,
        period_days=payload.period_days,
        scenario=payload.scenario,
        current_balance=money(payload.current_balance),
        projected_balance=projection.projected_balance,
        min_balance=projection.min_balance,
        max_balance=projection.max_balance,
        total_inflows=projection.total_inflows,
        total_outflows=projection.total_outflows,
        net_cash_flow=projection.net_cash_flow,
        liquidity_risk=assessment.liquidity_risk,
        volatility_index=assessment.volatility_index,
        confidence_level=assessment.confidence_level,
        calculated_at=calculated_at,
        calculation_time_ms=elapsed_ms,
        data_points=len(flows),
        metadata_json=(
            payload.metadata.model_dump(mode="json", by_alias=True) if payload.metadata is not None else None
        ),
        created_by_user_id=actor.id if actor is not None else None,
        alerts=_build_alerts(assessment, tenant_id=tenant_id, triggered_at=calculated_at),
        flows=_build_flow_snapshots(flows, projection, tenant_id=tenant_id),
    )
    writer.save(forecast, actor=actor)
    logger.info(
        "Forecast %s generated in %sms with %s flows and %s alerts",
        forecast.id,
        elapsed_ms,
        len(flows),
        len(forecast.alerts),
    )
    return forecast


def forecast_to_response(forecast: TreasuryForecast, *, include_inactive_alerts: bool = True) -> TreasuryForecastOut:
    alerts = [
        alert for alert in forecast.alerts if include_inactive_alerts or alert.is_active
    ]
    return TreasuryForecastOut(
        id=forecast.id,
        forecast_date=forecast.forecast_date,
        period_days=forecast.period_days,
        scenario=forecast.scenario,
        current_balance=money(forecast.current_balance),
        projected_balance=money(forecast.projected_balance),
        min_balance=money(forecast.min_balance),
        max_balance=money(forecast.max_balance),
        total_inflows=money(forecast.total_inflows),
        total_outflows=money(forecast.total_outflows),
        net_cash_flow=money(forecast.net_cash_flow),
        liquidity_risk=pct(forecast.liquidity_risk),
        volatility_index=pct(forecast.volatility_index),
        confidence_level=pct(forecast.confidence_level),
        calculated_at=forecast.calculated_at,
        calculation_time=forecast.calculation_time_ms,
        data_points=forecast.data_points,
        metadata=forecast.metadata_json,
        alerts=[ForecastAlertOut.model_validate(alert) for alert in alerts],
        flows=[ForecastFlowOut.model_validate(flow) for flow in forecast.flows],
    )


def _forecast_query(tenant_id: int):
    return (
        select(TreasuryForecast)
        .where(TreasuryForecast.tenant_id == tenant_id)
        .options(selectinload(TreasuryForecast.alerts), selectinload(TreasuryForecast.flows))
    )


def get_forecast(db: Session, tenant_id: int, forecast_id: int) -> TreasuryForecast:
    forecast = db.scalar(_forecast_query(tenant_id).where(TreasuryForecast.id == forecast_id))
    if forecast is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Forecast not found.")
    return forecast


def get_latest_forecast(db: Session, tenant_id: int, query: ForecastQuery) -> TreasuryForecast:
    stmt = _forecast_query(tenant_id).where(TreasuryForecast.period_days == query.days)
    if query.scenario is not None:
        stmt = stmt.where(TreasuryForecast.scenario == query.scenario)
    if query.start_date is not None:
        since = datetime.combine(query.start_date, dt_time.min, tzinfo=timezone.utc)
        stmt = stmt.where(TreasuryForecast.forecast_date >= since)
    forecast = db.scalar(
        stmt.order_by(TreasuryForecast.calculated_at.desc(), TreasuryForecast.id.desc()).limit(1)
    )
    if forecast is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No forecast found matching criteria.",
        )
    return forecast


def get_forecast_summary(
    db: Session,
    tenant_id: int,
    *,
    config: ForecastConfig | None = None,
    now: datetime | None = None,
) -> ForecastSummaryOut:
    config = _resolve_config(config)
    current = now if now is not None else datetime.now(timezone.utc)

    total_forecasts = db.scalar(
        select(func.count(TreasuryForecast.id)).where(TreasuryForecast.tenant_id == tenant_id)
    ) or 0
    active_alerts = db.scalar(
        select(func.count(ForecastAlert.id)).where(
            ForecastAlert.tenant_id == tenant_id,
            ForecastAlert.is_active.is_(True),
        )
    ) or 0
    critical_alerts = db.scalar(
        select(func.count(ForecastAlert.id)).where(
            ForecastAlert.tenant_id == tenant_id,
            ForecastAlert.is_active.is_(True),
            ForecastAlert.severity.in_(URGENT_SEVERITIES),
        )
    ) or 0
    average_risk = db.scalar(
        select(func.avg(TreasuryForecast.liquidity_risk)).where(
            TreasuryForecast.tenant_id == tenant_id,
            TreasuryForecast.calculated_at >= current - timedelta(days=config.summary_window_days),
        )
    )

    last_forecast = db.scalar(
        select(TreasuryForecast)
        .where(TreasuryForecast.tenant_id == tenant_id)
        .order_by(TreasuryForecast.calculated_at.desc(), TreasuryForecast.id.desc())
        .limit(1)
    )
    next_critical_date = None
    if last_forecast is not None:
        next_critical_date = db.scalar(
            select(func.min(ForecastAlert.projected_date)).where(
                ForecastAlert.forecast_id == last_forecast.id,
                ForecastAlert.is_active.is_(True),
                ForecastAlert.severity.in_(URGENT_SEVERITIES),
            )
        )

    return ForecastSummaryOut(
        total_forecasts=int(total_forecasts),
        active_alerts=int(active_alerts),
        critical_alerts=int(critical_alerts),
        average_liquidity_risk=pct(average_risk or 0),
        last_forecast_date=last_forecast.forecast_date if last_forecast is not None else None,
        next_critical_date=next_critical_date,
    )


def compare_scenarios(
    db: Session,
    payload: CompareScenariosRequest,
    *,
    tenant_id: int,
    actor: User | None = None,
    reader: FlowReader | None = None,
    config: ForecastConfig | None = None,
    now: datetime | None = None,
) -> list[TreasuryForecast]:
    metadata = payload.metadata or ComparisonForecastMetadata(comparison_id=uuid.uuid4().hex)
    forecasts: list[TreasuryForecast] = []
    for scenario in (ForecastScenario.optimistic, ForecastScenario.realistic, ForecastScenario.pessimistic):
        request = CreateTreasuryForecastRequest(
            forecast_date=payload.forecast_date,
            period_days=payload.period_days,
            scenario=scenario,
            current_balance=payload.current_balance,
            metadata=metadata,
        )
        forecasts.append(
            generate_forecast(
                db,
                request,
                tenant_id=tenant_id,
                actor=actor,
                reader=reader,
                config=config,
                now=now,
            )
        )
    return forecasts


def current_treasury_balance(db: Session, tenant_id: int) -> Decimal:
    received = db.scalar(
        select(func.coalesce(func.sum(Contribution.amount), 0)).where(
            Contribution.tenant_id == tenant_id,
            Contribution.received_date.is_not(None),
        )
    )
    repaid = db.scalar(
        select(func.coalesce(func.sum(RepaymentSchedule.amount), 0)).where(
            RepaymentSchedule.tenant_id == tenant_id,
            RepaymentSchedule.is_paid.is_(True),
        )
    )
    disbursed = db.scalar(
        select(func.coalesce(func.sum(Loan.amount), 0)).where(
            Loan.tenant_id == tenant_id,
            Loan.disbursement_date.is_not(None),
        )
    )
    withdrawn = db.scalar(
        select(func.coalesce(func.sum(WithdrawalRequest.amount), 0)).where(
            WithdrawalRequest.tenant_id == tenant_id,
            WithdrawalRequest.status == WithdrawalStatus.completed,
        )
    )
    recorded_rows = db.execute(
        select(TreasuryFlow.type, func.coalesce(func.sum(TreasuryFlow.amount), 0))
        .where(TreasuryFlow.tenant_id == tenant_id, TreasuryFlow.is_actual.is_(True))
        .group_by(TreasuryFlow.type)
    ).all()
    recorded = Decimal("0")
    for flow_type, total in recorded_rows:
        if flow_type == TreasuryFlowType.inflow:
            recorded += money(total)
        else:
            recorded -= money(total)

    return money(money(received) + money(repaid) - money(disbursed) - money(withdrawn) + recorded)


def quick_forecast(
    db: Session,
    days: int,
    *,
    tenant_id: int,
    actor: User | None = None,
    config: ForecastConfig | None = None,
    now: datetime | None = None,
) -> TreasuryForecast:
    try:
        validate_period_days(days)
    except ForecastValidationError as exc:
        raise _validation_error(exc) from exc
    current = now if now is not None else datetime.now(timezone.utc)
    request = CreateTreasuryForecastRequest(
        forecast_date=current,
        period_days=days,
        scenario=ForecastScenario.realistic,
        current_balance=current_treasury_balance(db, tenant_id),
    )
    return generate_forecast(db, request, tenant_id=tenant_id, actor=actor, config=config, now=current)


def _get_alert(db: Session, tenant_id: int, alert_id: int) -> ForecastAlert:
    alert = db.scalar(
        select(ForecastAlert).where(ForecastAlert.id == alert_id, ForecastAlert.tenant_id == tenant_id)
    )
    if alert is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert not found.")
    return alert


def acknowledge_alert(
    db: Session,
    tenant_id: int,
    alert_id: int,
    *,
    actor: User,
    now: datetime | None = None,
) -> ForecastAlert:
    alert = _get_alert(db, tenant_id, alert_id)
    if alert.is_acknowledged:
        return alert
    alert.is_acknowledged = True
    alert.acknowledged_by_user_id = actor.id
    alert.acknowledged_at = now if now is not None else datetime.now(timezone.utc)
    log_audit(
        db,
        actor=actor,
        tenant_id=tenant_id,
        action="forecast_alert.acknowledge",
        entity_type="forecast_alert",
        entity_id=str(alert.id),
        before_state={"is_acknowledged": False},
        after_state={"is_acknowledged": True},
    )
    db.commit()
    return alert


def deactivate_alert(db: Session, tenant_id: int, alert_id: int, *, actor: User) -> ForecastAlert:
    alert = _get_alert(db, tenant_id, alert_id)
    if not alert.is_active:
        return alert
    alert.is_active = False
    log_audit(
        db,
        actor=actor,
        tenant_id=tenant_id,
        action="forecast_alert.deactivate",
        entity_type="forecast_alert",
        entity_id=str(alert.id),
        before_state={"is_active": True},
        after_state={"is_active": False},
    )
    db.commit()
    return alert


def list_active_alerts(db: Session, tenant_id: int, *, limit: int = 10) -> list[ActiveAlertOut]:
    severity_rank = case(
        *[(ForecastAlert.severity == severity, rank) for severity, rank in SEVERITY_RANK.items()],
        else_=0,
    )
    rows = db.execute(
        select(ForecastAlert, TreasuryForecast.period_days, TreasuryForecast.scenario)
        .join(TreasuryForecast, TreasuryForecast.id == ForecastAlert.forecast_id)
        .where(ForecastAlert.tenant_id == tenant_id, ForecastAlert.is_active.is_(True))
        .order_by(severity_rank.desc(), ForecastAlert.triggered_at.desc(), ForecastAlert.id.desc())
        .limit(limit)
    ).all()
    return [
        ActiveAlertOut(
            **ForecastAlertOut.model_validate(alert).model_dump(),
            forecast_id=alert.forecast_id,
            period_days=period_days,
            scenario=scenario,
        )
        for alert, period_days, scenario in rows
    ]


def run_daily_treasury_check(
    db: Session,
    tenant_id: int,
    *,
    config: ForecastConfig | None = None,
    now: datetime | None = None,
) -> TreasuryForecast:
    config = _resolve_config(config)
    current = now if now is not None else datetime.now(timezone.utc)
    request = CreateTreasuryForecastRequest(
        forecast_date=current,
        period_days=30,
        scenario=ForecastScenario.realistic,
        current_balance=current_treasury_balance(db, tenant_id),
        metadata=ScheduledForecastMetadata(job="daily-treasury-check"),
    )
    forecast = generate_forecast(db, request, tenant_id=tenant_id, config=config, now=current)

    critical = [alert for alert in forecast.alerts if alert.severity in URGENT_SEVERITIES]
    for alert in critical:
        logger.warning(
            "Tenant %s critical treasury alert %s on %s: %s",
            tenant_id,
            alert.type.value,
            alert.projected_date,
            alert.message,
        )
    if forecast.liquidity_risk > config.thresholds.liquidity_risk_threshold:
        logger.warning(
            "Tenant %s liquidity risk %.2f with projected minimum balance %s",
            tenant_id,
            forecast.liquidity_risk,
            forecast.min_balance,
        )
    logger.info("Daily treasury check for tenant %s found %s critical alerts", tenant_id, len(critical))
    return forecast


@dataclass(frozen=True)
class WeeklyTreasuryReport:
    forecasts: list[TreasuryForecast]
    summary: ForecastSummaryOut


def run_weekly_treasury_report(
    db: Session,
    tenant_id: int,
    *,
    config: ForecastConfig | None = None,
    now: datetime | None = None,
) -> WeeklyTreasuryReport:
    """Builds 90-day forecasts for every scenario and the tenant's forecast summary."""
    config = _resolve_config(config)
    current = now if now is not None else datetime.now(timezone.utc)
    balance = current_treasury_balance(db, tenant_id)
    forecasts: list[TreasuryForecast] = []
    for scenario in (ForecastScenario.optimistic, ForecastScenario.realistic, ForecastScenario.pessimistic):
        request = CreateTreasuryForecastRequest(
            forecast_date=current,
            period_days=90,
            scenario=scenario,
            current_balance=balance,
            metadata=ScheduledForecastMetadata(job="weekly-treasury-report"),
        )
        forecasts.append(generate_forecast(db, request, tenant_id=tenant_id, config=config, now=current))

    summary = get_forecast_summary(db, tenant_id, config=config, now=current)
    for forecast in forecasts:
        logger.info(
            "Weekly %s outlook for tenant %s: projected %s, minimum %s, risk %.2f",
            forecast.scenario.value,
            tenant_id,
            forecast.projected_balance,
            forecast.min_balance,
            forecast.liquidity_risk,
        )
    logger.info(
        "Weekly treasury report for tenant %s: %s active alerts, %s critical",
        tenant_id,
        summary.active_alerts,
        summary.critical_alerts,
    )
    return WeeklyTreasuryReport(forecasts=forecasts, summary=summary)


@dataclass(frozen=True)
class BalanceCheck:
    balance: Decimal
    severity: AlertSeverity | None
    threshold: Decimal | None


def monitor_treasury_balance(
    db: Session,
    tenant_id: int,
    *,
    config: ForecastConfig | None = None,
) -> BalanceCheck:
    config = _resolve_config(config)
    balance = current_treasury_balance(db, tenant_id)
    critical = money(config.thresholds.critical_reserve)
    warning = money(config.thresholds.minimum_reserve)

    if balance < critical:
        check = BalanceCheck(balance=balance, severity=AlertSeverity.critical, threshold=critical)
    elif balance < warning:
        check = BalanceCheck(balance=balance, severity=AlertSeverity.warning, threshold=warning)
    else:
        check = BalanceCheck(balance=balance, severity=None, threshold=None)

    if check.severity is not None:
        logger.warning(
            "Tenant %s treasury balance %s is below the %s threshold of %s",
            tenant_id,
            balance,
            check.severity.value,
            check.threshold,
        )
    else:
        logger.info("Tenant %s treasury balance %s is within reserves", tenant_id, balance)
    return check
