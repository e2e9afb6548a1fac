"""
Transaction and budget stores.

Both return complete snapshots as pydantic schemas and tell subscribers after
every successful mutation, which is how the recompute coordinator learns that
budgets need re-evaluating.
"""
import logging
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from budget_tracker.core.database import SessionLocal
from budget_tracker.core.exceptions import NotFoundError, ValidationError
from budget_tracker.models.budget import Budget
from budget_tracker.models.transaction import Transaction
from budget_tracker.schemas.budget import Budget as BudgetSchema, BudgetCreate, BudgetUpdate
from budget_tracker.schemas.transaction import (
    Transaction as TransactionSchema,
    TransactionCreate,
    TransactionUpdate,
)
from budget_tracker.services.progress_calculator import current_date

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


def _commit(db: Session, message: str) -> None:
    """Commit, turning constraint violations (duplicate id, missing column) into ValidationError"""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"⚠️ {message}: {str(e.orig)}")
        raise ValidationError(message, details=str(e.orig), error_code="integrity_error")


class ChangeNotifier:
    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_changed(self) -> None:
        for listener in list(self._listeners):
            listener()


class SqlTransactionStore(ChangeNotifier):
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        super().__init__()
        self._session_factory = session_factory

    def get_all(self) -> List[TransactionSchema]:
        db = self._session_factory()
        try:
            rows = db.query(Transaction).order_by(Transaction.date.desc()).all()
            return [TransactionSchema.model_validate(row) for row in rows]
        finally:
            db.close()

    def get(self, transaction_id: str) -> TransactionSchema:
        db = self._session_factory()
        try:
            return TransactionSchema.model_validate(self._get_row(db, transaction_id))
        finally:
            db.close()

    @staticmethod
    def _get_row(db: Session, transaction_id: str) -> Transaction:
        row = db.get(Transaction, transaction_id)
        if row is None:
            raise NotFoundError("Transaction not found", details=transaction_id)
        return row

    def create(self, data: TransactionCreate) -> TransactionSchema:
        db = self._session_factory()
        try:
            values = data.model_dump(exclude_none=True)
            row = Transaction(**values)
            db.add(row)
            _commit(db, "Transaction could not be saved")
            db.refresh(row)
            created = TransactionSchema.model_validate(row)
        finally:
            db.close()

        logger.info(f"Created {created.type.value} transaction {created.id}: {created.amount} in {created.category}")
        self._notify_changed()
        return created

    def update(self, transaction_id: str, data: TransactionUpdate) -> TransactionSchema:
        db = self._session_factory()
        try:
            row = self._get_row(db, transaction_id)
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(row, field, value)
            _commit(db, "Transaction could not be updated")
            db.refresh(row)
            updated = TransactionSchema.model_validate(row)
        finally:
            db.close()

        logger.info(f"Updated transaction {transaction_id}: {updated.amount} in {updated.category}")
        self._notify_changed()
        return updated

    def delete(self, transaction_id: str) -> None:
        db = self._session_factory()
        try:
            row = self._get_row(db, transaction_id)
            db.delete(row)
            db.commit()
        finally:
            db.close()

        logger.info(f"Deleted transaction {transaction_id}")
        self._notify_changed()


class SqlBudgetStore(ChangeNotifier):
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        super().__init__()
        self._session_factory = session_factory

    def get_all(self) -> List[BudgetSchema]:
        db = self._session_factory()
        try:
            rows = db.query(Budget).order_by(Budget.category).all()
            return [BudgetSchema.model_validate(row) for row in rows]
        finally:
            db.close()

    def get_current_active(self, as_of: Optional[date] = None) -> List[BudgetSchema]:
        """Active budgets whose period contains ``as_of`` (today by default)"""
        as_of = as_of or current_date()
        db = self._session_factory()
        try:
            rows = db.query(Budget).filter(
                Budget.is_active == True,
                Budget.start_date <= as_of,
                or_(Budget.end_date.is_(None), Budget.end_date >= as_of),
            ).all()
            return [BudgetSchema.model_validate(row) for row in rows]
        finally:
            db.close()

    def get(self, budget_id: str) -> BudgetSchema:
        db = self._session_factory()
        try:
            return BudgetSchema.model_validate(self._get_row(db, budget_id))
        finally:
            db.close()

    @staticmethod
    def _get_row(db: Session, budget_id: str) -> Budget:
        row = db.get(Budget, budget_id)
        if row is None:
            raise NotFoundError("Budget not found", details=budget_id)
        return row

    def create(self, data: BudgetCreate) -> BudgetSchema:
        db = self._session_factory()
        try:
            row = Budget(**data.model_dump(exclude_none=True))
            db.add(row)
            _commit(db, "Budget could not be saved")
            db.refresh(row)
            created = BudgetSchema.model_validate(row)
        finally:
            db.close()

        logger.info(f"Created budget {created.id}: {created.budget_amount} for {created.category}")
        self._notify_changed()
        return created

    def update(self, budget_id: str, data: BudgetUpdate) -> BudgetSchema:
        db = self._session_factory()
        try:
            row = self._get_row(db, budget_id)
            changes = data.model_dump(exclude_unset=True)
            start_date = changes.get("start_date", row.start_date)
            end_date = changes.get("end_date", row.end_date)
            if end_date is not None and start_date > end_date:
                raise ValidationError("start_date must be on or before end_date", error_code="invalid_date_range")

            for field, value in changes.items():
                setattr(row, field, value)
            _commit(db, "Budget could not be updated")
            db.refresh(row)
            updated = BudgetSchema.model_validate(row)
        finally:
            db.close()

        logger.info(f"Updated budget {budget_id}: {updated.budget_amount} for {updated.category}")
        self._notify_changed()
        return updated

    def set_active(self, budget_id: str, is_active: bool) -> BudgetSchema:
        db = self._session_factory()
        try:
            row = self._get_row(db, budget_id)
            row.is_active = is_active
            db.commit()
            db.refresh(row)
            updated = BudgetSchema.model_validate(row)
        finally:
            db.close()

        logger.info(f"Budget {budget_id} {'activated' if is_active else 'deactivated'}")
        self._notify_changed()
        return updated

    def activate(self, budget_id: str) -> BudgetSchema:
        return self.set_active(budget_id, True)

    def deactivate(self, budget_id: str) -> BudgetSchema:
        return self.set_active(budget_id, False)

    def delete(self, budget_id: str) -> None:
        db = self._session_factory()
        try:
            row = self._get_row(db, budget_id)
            db.delete(row)
            db.commit()
        finally:
            db.close()

        logger.info(f"Deleted budget {budget_id}")
        self._notify_changed()
