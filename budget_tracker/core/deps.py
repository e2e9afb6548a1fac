from fastapi import HTTPException, Request, status

from budget_tracker.services.budget_alert_engine import BudgetAlertEngine


async def get_engine(request: Request) -> BudgetAlertEngine:
    """Budget alert engine created on application startup"""
    engine = getattr(request.app.state, "alert_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Budget engine is not running",
        )
    return engine
