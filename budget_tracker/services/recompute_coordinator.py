"""
Debounced recompute of budget progress and alerts.

Change notifications from the transaction store, the budget store and CRUD
callers all funnel into ``schedule(cause)``. A burst of notifications collapses
into a single pass, and at most one pass runs at a time.

State machine::

    idle --schedule--> scheduled --timer fires--> running --done--> idle
                         |   ^                       |
                         +---+ different cause       +-- schedule while running marks
                           restarts the timer            the pass stale; one follow-up
                                                         pass is scheduled when it ends
"""
import asyncio
import enum
import inspect
import logging
from datetime import date
from typing import Any, Awaitable, Callable, List, Optional, Union

from budget_tracker.schemas.alert import Alert
from budget_tracker.schemas.budget import BudgetProgress, BudgetSummary
from budget_tracker.services.alert_state_tracker import evaluate_and_emit_alerts
from budget_tracker.services.alert_store import AlertStore
from budget_tracker.services.progress_calculator import compute_overview, compute_summary, current_date

logger = logging.getLogger(__name__)

TRANSACTION_CHANGE = "transaction_change"
BUDGET_CHANGE = "budget_change"
MANUAL_REFRESH = "manual_refresh"
STALE_SNAPSHOT = "stale_snapshot"

DEFAULT_DEBOUNCE_SECONDS = 0.3
DEFAULT_COOLDOWN_SECONDS = 1.0

ResultListener = Callable[[List[BudgetProgress], List[Alert]], None]


class CoordinatorState(str, enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


async def _resolve(value: Union[Any, Awaitable[Any]]) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class RecomputeCoordinator:
    def __init__(
        self,
        transaction_store,
        budget_store,
        alert_store: AlertStore,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        near_limit_threshold: Optional[float] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.transaction_store = transaction_store
        self.budget_store = budget_store
        self.alert_store = alert_store
        self.debounce_seconds = debounce_seconds
        self.cooldown_seconds = cooldown_seconds
        self.near_limit_threshold = near_limit_threshold
        self._today = today or current_date

        self._state = CoordinatorState.IDLE
        self._cause: Optional[str] = None
        self._cause_expires_at = 0.0
        self._timer: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None
        self._stale = False
        self._listeners: List[ResultListener] = []
        self._unsubscribers: List[Callable[[], None]] = []

        self.overview: List[BudgetProgress] = []
        self.summary: BudgetSummary = BudgetSummary()
        self.pass_count = 0
        self.last_error: Optional[str] = None

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def pending_cause(self) -> Optional[str]:
        return self._cause if self._state is not CoordinatorState.IDLE else None

    # Subscriptions

    def attach(self) -> None:
        """Start listening to store change notifications"""
        if self._unsubscribers:
            return
        self._unsubscribers = [
            self.transaction_store.subscribe(self.notify_transactions_changed),
            self.budget_store.subscribe(self.notify_budgets_changed),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def subscribe(self, listener: ResultListener) -> Callable[[], None]:
        """Be told (overview, active alerts) after every completed pass"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Entry points

    def notify_transactions_changed(self) -> bool:
        return self.schedule(TRANSACTION_CHANGE)

    def notify_budgets_changed(self) -> bool:
        return self.schedule(BUDGET_CHANGE)

    def notify_mutation_completed(self, cause: str) -> bool:
        return self.schedule(cause)

    def schedule(self, cause: str) -> bool:
        """
        Request a recompute. Returns True when a timer was (re)started and False
        when the request was folded into work that is already pending.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"⚠️ Recompute requested ({cause}) outside an event loop, deferring")
            self._stale = True
            return False

        if self._state is CoordinatorState.RUNNING:
            self._stale = True
            logger.debug(f"Recompute running, {cause} will trigger a follow-up pass")
            return False

        same_cause = cause == self._cause
        if self._state is CoordinatorState.SCHEDULED and same_cause:
            return False

        now = loop.time()
        delay = self.debounce_seconds
        if self._state is CoordinatorState.IDLE and same_cause and now < self._cause_expires_at:
            # Rapid repeat of the cause that just ran: fold it into one pass after the cool-down
            delay = max(delay, self._cause_expires_at - now)

        self._cancel_timer()
        self._cause = cause
        self._cause_expires_at = float("inf")
        self._state = CoordinatorState.SCHEDULED
        self._timer = loop.create_task(self._fire_after(delay, cause))
        logger.debug(f"Recompute scheduled in {delay:.3f}s ({cause})")
        return True

    async def recompute_now(self, cause: str = MANUAL_REFRESH) -> List[BudgetProgress]:
        """Run a pass immediately, replacing any pending timer"""
        if self._state is CoordinatorState.RUNNING:
            self._stale = True
            await self.wait_until_idle()
            return self.overview

        self._cancel_timer()
        self._cause = cause
        self._start_pass(cause)
        await asyncio.wait({self._running})
        return self.overview

    async def wait_until_idle(self) -> None:
        """Wait for pending timers and running passes, including follow-ups"""
        while True:
            task = self._running or self._timer
            if task is None:
                return
            await asyncio.wait({task})

    async def shutdown(self) -> None:
        """Detach from the stores, drop pending timers and let a running pass finish"""
        self.detach()
        self._stale = False
        self._cancel_timer()
        if self._state is CoordinatorState.SCHEDULED:
            self._state = CoordinatorState.IDLE
        if self._running is not None:
            await asyncio.wait({self._running})
            self._cancel_timer()
            self._state = CoordinatorState.IDLE

    # Internals

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _fire_after(self, delay: float, cause: str) -> None:
        await asyncio.sleep(delay)
        self._timer = None
        if self._state is CoordinatorState.RUNNING:
            self._stale = True
            return
        self._start_pass(cause)

    def _start_pass(self, cause: str) -> None:
        self._state = CoordinatorState.RUNNING
        self._running = asyncio.get_running_loop().create_task(self._execute(cause))

    async def _execute(self, cause: str) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            transactions = await _resolve(self.transaction_store.get_all())
            budgets = await _resolve(self.budget_store.get_current_active(self._today()))

            # No suspension from here on: readers never see an overview paired
            # with history from a different snapshot
            overview = compute_overview(
                budgets,
                transactions,
                as_of=self._today(),
                near_limit_threshold=self.near_limit_threshold,
            )
            evaluation = evaluate_and_emit_alerts(
                overview,
                self.alert_store.get_classification_history(),
                dismissed=self.alert_store.get_dismissed_ids(),
            )
            summary = compute_summary(overview)
            fresh = self.alert_store.commit_evaluation(evaluation)

            self.overview = overview
            self.summary = summary
            self.pass_count += 1
            self.last_error = None
            logger.info(
                f"Recomputed {len(overview)} budgets ({cause}) in {(loop.time() - started) * 1000:.1f}ms, "
                f"{len(fresh)} new alerts"
            )
            self._publish(overview, self.alert_store.get_active_alerts())
        except Exception as e:
            # Alerts may go stale but the application keeps running
            self.last_error = str(e)
            logger.exception(f"❌ Budget recompute failed ({cause}): {str(e)}")
        finally:
            self._running = None
            self._state = CoordinatorState.IDLE
            self._cause_expires_at = loop.time() + self.cooldown_seconds
            if self._stale:
                self._stale = False
                self.schedule(STALE_SNAPSHOT)

    def _publish(self, overview: List[BudgetProgress], alerts: List[Alert]) -> None:
        for listener in list(self._listeners):
            try:
                listener(overview, alerts)
            except Exception as e:
                logger.error(f"❌ Recompute listener failed: {str(e)}")
