from fastapi import APIRouter

from app.api.routes import health, treasury_flows, treasury_forecast


api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(treasury_forecast.router)
api_router.include_router(treasury_flows.router)
