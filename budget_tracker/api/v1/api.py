from fastapi import APIRouter
from budget_tracker.api.v1.endpoints import transactions, budgets, alerts

api_router = APIRouter()

api_router.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
api_router.include_router(budgets.router, prefix="/budgets", tags=["budgets"])
api_router.include_router(alerts.router, prefix="/alerts", tags=["alerts"])
