import logging
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Set

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from budget_tracker.core.database import SessionLocal
from budget_tracker.core.exceptions import PersistenceError
from budget_tracker.models.alert_state import AlertStateRecord
from budget_tracker.schemas.alert import Alert, AlertSeverity
from budget_tracker.services.alert_state_tracker import (
    AlertEvaluation,
    alert_ids_for_budget,
    sanitize_history,
)

logger = logging.getLogger(__name__)

ACTIVE_ALERTS_KEY = "active_alerts"
DISMISSED_ALERTS_KEY = "dismissed_alerts"
CLASSIFICATION_HISTORY_KEY = "classification_history"
ALL_KEYS = (ACTIVE_ALERTS_KEY, DISMISSED_ALERTS_KEY, CLASSIFICATION_HISTORY_KEY)

SEVERITY_ORDER = {AlertSeverity.HIGH: 2, AlertSeverity.MEDIUM: 1}


def _dedupe(alerts: Iterable[Alert]) -> List[Alert]:
    # Same id => later record wins, first position is kept
    by_id: Dict[str, Alert] = {}
    for alert in alerts:
        by_id[alert.id] = alert
    return list(by_id.values())


class AlertStore:
    """
    Durable ledger of live alerts, dismissed alert ids and per-budget
    classification history.

    State is held in memory and written through to the ``alert_state`` table as
    three independently keyed JSON records. A failed write is logged and the
    affected keys stay dirty until the next successful write.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory
        self._active: List[Alert] = []
        self._dismissed: Set[str] = set()
        self._history: Dict[str, str] = {}
        self._dirty: Set[str] = set()

    # Loading

    def load(self) -> None:
        db = self._session_factory()
        try:
            rows = {record.key: record.payload for record in db.query(AlertStateRecord).all()}
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load alert state, starting empty: {str(e)}")
            return
        finally:
            db.close()

        self._active = self._parse_alerts(rows.get(ACTIVE_ALERTS_KEY))
        self._dismissed = self._parse_dismissed(rows.get(DISMISSED_ALERTS_KEY))
        self._history = sanitize_history(rows.get(CLASSIFICATION_HISTORY_KEY) or {})
        self._dirty.clear()
        logger.info(
            f"Loaded alert state: {len(self._active)} active, "
            f"{len(self._dismissed)} dismissed, {len(self._history)} budgets tracked"
        )

    @staticmethod
    def _parse_alerts(payload) -> List[Alert]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            logger.warning("⚠️ Stored active alerts are not a list, ignoring them")
            return []
        alerts = []
        for item in payload:
            try:
                alerts.append(Alert.model_validate(item))
            except SchemaValidationError:
                logger.warning(f"⚠️ Dropping unreadable stored alert: {item!r}")
        return _dedupe(alerts)

    @staticmethod
    def _parse_dismissed(payload) -> Set[str]:
        if payload is None:
            return set()
        if not isinstance(payload, list):
            logger.warning("⚠️ Stored dismissed alerts are not a list, ignoring them")
            return set()
        return {item for item in payload if isinstance(item, str)}

    # Active alerts

    def get_active_alerts(self) -> List[Alert]:
        live = [alert for alert in self._active if alert.id not in self._dismissed]
        # sorted() is stable: equal severities keep insertion order
        return sorted(live, key=lambda alert: -SEVERITY_ORDER.get(alert.severity, 0))

    def replace_active_alerts(self, alerts: Iterable[Alert]) -> None:
        self._active = _dedupe(alerts)
        self._persist({ACTIVE_ALERTS_KEY})

    # Dismissals

    def get_dismissed_ids(self) -> FrozenSet[str]:
        return frozenset(self._dismissed)

    def dismiss(self, alert_id: str) -> bool:
        """Dismiss an alert id; returns True if it was live"""
        was_live = any(alert.id == alert_id for alert in self._active)
        self._dismissed.add(alert_id)
        self._active = [alert for alert in self._active if alert.id != alert_id]
        self._persist({ACTIVE_ALERTS_KEY, DISMISSED_ALERTS_KEY})
        return was_live

    def dismiss_all(self) -> List[str]:
        ids = [alert.id for alert in self.get_active_alerts()]
        self._dismissed.update(ids)
        self._active = []
        self._persist({ACTIVE_ALERTS_KEY, DISMISSED_ALERTS_KEY})
        return ids

    def _rearm(self, budget_ids: Iterable[str]) -> List[str]:
        rearmed = []
        for budget_id in budget_ids:
            for alert_id in alert_ids_for_budget(budget_id):
                if alert_id in self._dismissed:
                    self._dismissed.discard(alert_id)
                    rearmed.append(alert_id)
        return rearmed

    def rearm(self, budget_ids: Iterable[str]) -> List[str]:
        """Forget dismissals of budgets that recovered, so they can alert again"""
        rearmed = self._rearm(budget_ids)
        if rearmed:
            self._persist({DISMISSED_ALERTS_KEY})
        return rearmed

    # Classification history

    def get_classification_history(self) -> Dict[str, str]:
        return dict(self._history)

    def set_classification_history(self, history: Mapping[str, str]) -> None:
        self._history = sanitize_history(history)
        self._persist({CLASSIFICATION_HISTORY_KEY})

    # Recompute cycle

    def commit_evaluation(self, evaluation: AlertEvaluation) -> List[Alert]:
        """
        Apply one recompute pass: re-arm recovered budgets, merge newly emitted
        alerts into the live list and store the new history, then write all of
        it in a single transaction. Returns the alerts that became live.
        """
        rearmed = self._rearm(evaluation.recovered_budget_ids)
        if rearmed:
            logger.info(f"Re-armed alerts after recovery: {rearmed}")

        fresh = [alert for alert in evaluation.new_alerts if alert.id not in self._dismissed]
        kept = [alert for alert in self._active if alert.id not in self._dismissed]
        self._active = _dedupe(kept + fresh)
        self._history = sanitize_history(evaluation.new_history)

        keys = {ACTIVE_ALERTS_KEY, CLASSIFICATION_HISTORY_KEY}
        if rearmed:
            keys.add(DISMISSED_ALERTS_KEY)
        self._persist(keys)
        return fresh

    def reset(self) -> None:
        """Clear every collection (support / tests only)"""
        self._active = []
        self._dismissed = set()
        self._history = {}
        self._persist(set(ALL_KEYS))

    # Persistence

    @property
    def has_unsaved_changes(self) -> bool:
        return bool(self._dirty)

    def flush(self) -> bool:
        """Retry writing anything a previous failure left unsaved"""
        return self._persist(set())

    def _payload(self, key: str):
        if key == ACTIVE_ALERTS_KEY:
            return [alert.model_dump(mode="json") for alert in self._active]
        if key == DISMISSED_ALERTS_KEY:
            return sorted(self._dismissed)
        return dict(self._history)

    def _persist(self, keys: Set[str]) -> bool:
        self._dirty |= keys
        if not self._dirty:
            return True
        try:
            self._write(self._dirty)
        except PersistenceError as e:
            # In-memory state stays authoritative for this session
            logger.error(f"❌ {e.message}: {e.details}")
            return False
        self._dirty.clear()
        return True

    def _write(self, keys: Iterable[str]) -> None:
        db = self._session_factory()
        try:
            for key in keys:
                record = db.get(AlertStateRecord, key)
                if record is None:
                    record = AlertStateRecord(key=key)
                    db.add(record)
                record.payload = self._payload(key)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("Failed to persist alert state", details=str(e)) from e
        finally:
            db.close()
