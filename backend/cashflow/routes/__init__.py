from fastapi import APIRouter
from cashflow.routes import budget, rolling_forecast, planned_items

api_router = APIRouter()

api_router.include_router(budget.router, prefix="/budget", tags=["budget"])
api_router.include_router(rolling_forecast.router, prefix="/rolling-forecast", tags=["rolling-forecast"])
api_router.include_router(planned_items.router, prefix="/planned-items", tags=["planned-items"])
