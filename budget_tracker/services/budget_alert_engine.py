import logging
from datetime import date, datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional

from sqlalchemy.orm import Session

from budget_tracker.core.config import settings
from budget_tracker.core.database import SessionLocal
from budget_tracker.schemas.alert import Alert
from budget_tracker.schemas.budget import BudgetProgress, BudgetSummary
from budget_tracker.services import alert_state_tracker, progress_calculator
from budget_tracker.services.alert_state_tracker import AlertEvaluation
from budget_tracker.services.alert_store import AlertStore
from budget_tracker.services.recompute_coordinator import MANUAL_REFRESH, RecomputeCoordinator
from budget_tracker.services.stores import SqlBudgetStore, SqlTransactionStore
from budget_tracker.utils.audit import audit

logger = logging.getLogger(__name__)


class BudgetAlertEngine:
    """
    Public surface of the budget progress & alert engine.

    Wires the transaction/budget stores, the alert store and the recompute
    coordinator together. CRUD callers either mutate through the stores (which
    notify the coordinator) or call ``notify_mutation_completed`` themselves.
    """

    def __init__(
        self,
        transaction_store,
        budget_store,
        alert_store: AlertStore,
        debounce_seconds: Optional[float] = None,
        cooldown_seconds: Optional[float] = None,
        near_limit_threshold: Optional[float] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.transaction_store = transaction_store
        self.budget_store = budget_store
        self.alert_store = alert_store
        self.near_limit_threshold = (
            settings.NEAR_LIMIT_PERCENT if near_limit_threshold is None else near_limit_threshold
        )
        self._today = today or progress_calculator.current_date
        self.coordinator = RecomputeCoordinator(
            transaction_store,
            budget_store,
            alert_store,
            debounce_seconds=settings.RECOMPUTE_DEBOUNCE_MS / 1000 if debounce_seconds is None else debounce_seconds,
            cooldown_seconds=settings.RECOMPUTE_COOLDOWN_MS / 1000 if cooldown_seconds is None else cooldown_seconds,
            near_limit_threshold=self.near_limit_threshold,
            today=self._today,
        )
        self.started = False

    # Lifecycle

    def start(self) -> None:
        if self.started:
            return
        self.alert_store.load()
        self.coordinator.attach()
        self.started = True
        logger.info("🚀 Budget alert engine started")

    async def refresh(self, cause: str = MANUAL_REFRESH) -> List[BudgetProgress]:
        return await self.coordinator.recompute_now(cause)

    async def shutdown(self) -> None:
        await self.coordinator.shutdown()
        if self.alert_store.has_unsaved_changes:
            self.alert_store.flush()
        self.started = False

    # Pure computations

    def compute_overview(
        self,
        budgets: Iterable[Any],
        transactions: Iterable[Any],
        as_of: Optional[date] = None,
    ) -> List[BudgetProgress]:
        return progress_calculator.compute_overview(
            budgets,
            transactions,
            as_of=as_of or self._today(),
            near_limit_threshold=self.near_limit_threshold,
        )

    @staticmethod
    def evaluate_and_emit_alerts(
        overview: Iterable[BudgetProgress],
        previous_history: Mapping[str, Any],
        dismissed: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> AlertEvaluation:
        return alert_state_tracker.evaluate_and_emit_alerts(overview, previous_history, dismissed, now)

    # Overview

    def get_overview(self) -> List[BudgetProgress]:
        return list(self.coordinator.overview)

    def get_summary(self) -> BudgetSummary:
        """Totals for the overview of the last completed pass"""
        return self.coordinator.summary

    def get_budget_progress(self, budget_id: str) -> BudgetProgress:
        """Progress for one budget, from the last pass or computed on demand"""
        for progress in self.coordinator.overview:
            if progress.budget_id == budget_id:
                return progress
        budget = self.budget_store.get(budget_id)
        return progress_calculator.compute_progress(
            budget,
            self.transaction_store.get_all(),
            near_limit_threshold=self.near_limit_threshold,
        )

    # Alerts

    def get_active_alerts(self) -> List[Alert]:
        return self.alert_store.get_active_alerts()

    def dismiss_alert(self, alert_id: str) -> bool:
        was_live = self.alert_store.dismiss(alert_id)
        audit("alert_dismissed", alert_id=alert_id, was_live=was_live)
        return was_live

    def dismiss_all_alerts(self) -> List[str]:
        dismissed = self.alert_store.dismiss_all()
        audit("alerts_dismissed_all", count=len(dismissed))
        return dismissed

    def reset_alert_state(self) -> None:
        self.alert_store.reset()
        audit("alert_state_reset")

    # Change notifications

    def notify_transactions_changed(self) -> bool:
        return self.coordinator.notify_transactions_changed()

    def notify_budgets_changed(self) -> bool:
        return self.coordinator.notify_budgets_changed()

    def notify_mutation_completed(self, cause: str) -> bool:
        return self.coordinator.notify_mutation_completed(cause)


def build_engine(session_factory: Callable[[], Session] = SessionLocal, **kwargs) -> BudgetAlertEngine:
    """Engine backed by the SQL stores sharing one session factory"""
    return BudgetAlertEngine(
        SqlTransactionStore(session_factory),
        SqlBudgetStore(session_factory),
        AlertStore(session_factory),
        **kwargs,
    )
