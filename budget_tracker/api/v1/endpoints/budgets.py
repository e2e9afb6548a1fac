from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from budget_tracker.core.deps import get_engine
from budget_tracker.core.exceptions import NotFoundError, ValidationError
from budget_tracker.schemas.budget import Budget as BudgetSchema, BudgetCreate, BudgetProgress, BudgetSummary, BudgetUpdate
from budget_tracker.services.budget_alert_engine import BudgetAlertEngine

router = APIRouter()

@router.get("/", response_model=List[BudgetSchema])
async def get_budgets(engine: BudgetAlertEngine = Depends(get_engine)):
    """Get all budgets"""
    return engine.budget_store.get_all()

@router.post("/", response_model=BudgetSchema)
async def create_budget(budget_create: BudgetCreate, engine: BudgetAlertEngine = Depends(get_engine)):
    """Create a new budget"""
    try:
        return engine.budget_store.create(budget_create)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

@router.get("/overview", response_model=List[BudgetProgress])
async def get_budget_overview(engine: BudgetAlertEngine = Depends(get_engine)):
    """Progress of every active, in-period budget from the latest recompute (exceeded first)"""
    return engine.get_overview()

@router.get("/summary", response_model=BudgetSummary)
async def get_budget_summary(engine: BudgetAlertEngine = Depends(get_engine)):
    """Totals, utilization and exceeded/near-limit counts for the overview"""
    return engine.get_summary()

@router.get("/{budget_id}", response_model=BudgetSchema)
async def get_budget(budget_id: str, engine: BudgetAlertEngine = Depends(get_engine)):
    """Get a specific budget"""
    try:
        return engine.budget_store.get(budget_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

@router.get("/{budget_id}/progress", response_model=BudgetProgress)
async def get_budget_progress(budget_id: str, engine: BudgetAlertEngine = Depends(get_engine)):
    """Spent / remaining / percentage for one budget"""
    try:
        return engine.get_budget_progress(budget_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

@router.put("/{budget_id}", response_model=BudgetSchema)
async def update_budget(
    budget_id: str,
    budget_update: BudgetUpdate,
    engine: BudgetAlertEngine = Depends(get_engine)
):
    """Update a budget"""
    try:
        return engine.budget_store.update(budget_id, budget_update)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

@router.post("/{budget_id}/activate", response_model=BudgetSchema)
async def activate_budget(budget_id: str, engine: BudgetAlertEngine = Depends(get_engine)):
    try:
        return engine.budget_store.activate(budget_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

@router.post("/{budget_id}/deactivate", response_model=BudgetSchema)
async def deactivate_budget(budget_id: str, engine: BudgetAlertEngine = Depends(get_engine)):
    try:
        return engine.budget_store.deactivate(budget_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

@router.delete("/{budget_id}")
async def delete_budget(budget_id: str, engine: BudgetAlertEngine = Depends(get_engine)):
    """Delete a budget"""
    try:
        engine.budget_store.delete(budget_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return {"message": "Budget deleted successfully"}
