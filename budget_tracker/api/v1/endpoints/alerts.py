from fastapi import APIRouter, Depends
from typing import List

from budget_tracker.core.deps import get_engine
from budget_tracker.schemas.alert import Alert as AlertSchema, DismissAllResult, DismissResult
from budget_tracker.services.budget_alert_engine import BudgetAlertEngine

router = APIRouter()

@router.get("/", response_model=List[AlertSchema])
async def list_alerts(engine: BudgetAlertEngine = Depends(get_engine)):
    """Live budget alerts, high severity first"""
    return engine.get_active_alerts()

@router.post("/refresh", response_model=List[AlertSchema])
async def refresh_alerts(engine: BudgetAlertEngine = Depends(get_engine)):
    """Recompute budget progress now and return the resulting alerts"""
    await engine.refresh()
    return engine.get_active_alerts()

@router.post("/dismiss-all", response_model=DismissAllResult)
async def dismiss_all_alerts(engine: BudgetAlertEngine = Depends(get_engine)):
    return DismissAllResult(dismissed=engine.dismiss_all_alerts())

@router.post("/reset")
async def reset_alert_state(engine: BudgetAlertEngine = Depends(get_engine)):
    """Clear alerts, dismissals and classification history (support only)"""
    engine.reset_alert_state()
    return {"message": "Alert state reset"}

@router.post("/{alert_id}/dismiss", response_model=DismissResult)
async def dismiss_alert(alert_id: str, engine: BudgetAlertEngine = Depends(get_engine)):
    return DismissResult(alert_id=alert_id, was_active=engine.dismiss_alert(alert_id))
