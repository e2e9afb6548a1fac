from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from budget_tracker.core.deps import get_engine
from budget_tracker.core.exceptions import NotFoundError, ValidationError
from budget_tracker.schemas.transaction import Transaction as TransactionSchema, TransactionCreate, TransactionUpdate
from budget_tracker.services.budget_alert_engine import BudgetAlertEngine

router = APIRouter()

@router.get("/", response_model=List[TransactionSchema])
async def get_transactions(engine: BudgetAlertEngine = Depends(get_engine)):
    """Get all transactions, newest first"""
    return engine.transaction_store.get_all()

@router.post("/", response_model=TransactionSchema)
async def create_transaction(
    transaction_create: TransactionCreate,
    engine: BudgetAlertEngine = Depends(get_engine)
):
    """Create a new transaction"""
    try:
        return engine.transaction_store.create(transaction_create)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

@router.get("/{transaction_id}", response_model=TransactionSchema)
async def get_transaction(transaction_id: str, engine: BudgetAlertEngine = Depends(get_engine)):
    """Get a specific transaction"""
    try:
        return engine.transaction_store.get(transaction_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

@router.put("/{transaction_id}", response_model=TransactionSchema)
async def update_transaction(
    transaction_id: str,
    transaction_update: TransactionUpdate,
    engine: BudgetAlertEngine = Depends(get_engine)
):
    """Update a transaction"""
    try:
        return engine.transaction_store.update(transaction_id, transaction_update)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

@router.delete("/{transaction_id}")
async def delete_transaction(transaction_id: str, engine: BudgetAlertEngine = Depends(get_engine)):
    """Delete a transaction"""
    try:
        engine.transaction_store.delete(transaction_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return {"message": "Transaction deleted successfully"}
