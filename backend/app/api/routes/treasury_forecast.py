from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, get_tenant_id
from app.core.security import TREASURY_MANAGERS, TREASURY_VIEWERS, require_roles
from app.models.enums import ForecastScenario
from app.models.user import User
from app.schemas.treasury import (
    ActiveAlertOut,
    CompareScenariosRequest,
    CreateTreasuryForecastRequest,
    ForecastAlertOut,
    ForecastQuery,
    ForecastSummaryOut,
    TreasuryForecastOut,
)
from app.services.treasury_forecast import (
    acknowledge_alert,
    compare_scenarios,
    deactivate_alert,
    forecast_to_response,
    generate_forecast,
    get_forecast,
    get_forecast_summary,
    get_latest_forecast,
    list_active_alerts,
    quick_forecast,
)


router = APIRouter(prefix="/treasury/forecast", tags=["treasury-forecast"])


@router.post("", response_model=TreasuryForecastOut, status_code=status.HTTP_201_CREATED)
def create_forecast(
    payload: CreateTreasuryForecastRequest,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> TreasuryForecastOut:
    require_roles(current_user, TREASURY_MANAGERS)
    forecast = generate_forecast(db, payload, tenant_id=tenant_id, actor=current_user)
    return forecast_to_response(forecast)


@router.get("", response_model=TreasuryForecastOut)
def read_latest_forecast(
    days: int = Query(default=30, ge=1, le=365),
    scenario: ForecastScenario | None = Query(default=None),
    start_date: date | None = Query(default=None, alias="startDate"),
    include_inactive_alerts: bool = Query(default=False, alias="includeInactiveAlerts"),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> TreasuryForecastOut:
    require_roles(current_user, TREASURY_VIEWERS)
    query = ForecastQuery(
        days=days,
        scenario=scenario,
        start_date=start_date,
        include_inactive_alerts=include_inactive_alerts,
    )
    forecast = get_latest_forecast(db, tenant_id, query)
    return forecast_to_response(forecast, include_inactive_alerts=query.include_inactive_alerts)


@router.get("/summary", response_model=ForecastSummaryOut)
def read_forecast_summary(
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> ForecastSummaryOut:
    require_roles(current_user, TREASURY_VIEWERS)
    return get_forecast_summary(db, tenant_id)


@router.get("/quick/{days}", response_model=TreasuryForecastOut)
def create_quick_forecast(
    days: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> TreasuryForecastOut:
    require_roles(current_user, TREASURY_MANAGERS)
    forecast = quick_forecast(db, days, tenant_id=tenant_id, actor=current_user)
    return forecast_to_response(forecast)


@router.post("/scenarios/compare", response_model=list[TreasuryForecastOut])
def create_scenario_comparison(
    payload: CompareScenariosRequest,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> list[TreasuryForecastOut]:
    require_roles(current_user, TREASURY_MANAGERS)
    forecasts = compare_scenarios(db, payload, tenant_id=tenant_id, actor=current_user)
    return [forecast_to_response(forecast) for forecast in forecasts]


@router.get("/alerts/active", response_model=list[ActiveAlertOut])
def read_active_alerts(
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> list[ActiveAlertOut]:
    require_roles(current_user, TREASURY_VIEWERS)
    return list_active_alerts(db, tenant_id, limit=limit)


@router.post("/alerts/{alert_id}/acknowledge", response_model=ForecastAlertOut)
def acknowledge_forecast_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> ForecastAlertOut:
    require_roles(current_user, TREASURY_MANAGERS)
    alert = acknowledge_alert(db, tenant_id, alert_id, actor=current_user)
    return ForecastAlertOut.model_validate(alert)


@router.post("/alerts/{alert_id}/deactivate", response_model=ForecastAlertOut)
def deactivate_forecast_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> ForecastAlertOut:
    require_roles(current_user, TREASURY_MANAGERS)
    alert = deactivate_alert(db, tenant_id, alert_id, actor=current_user)
    return ForecastAlertOut.model_validate(alert)


@router.get("/{forecast_id}", response_model=TreasuryForecastOut)
def read_forecast(
    forecast_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    current_user: User = Depends(get_current_user),
) -> TreasuryForecastOut:
    require_roles(current_user, TREASURY_VIEWERS)
    return forecast_to_response(get_forecast(db, tenant_id, forecast_id))
