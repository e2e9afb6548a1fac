"""
Per-budget alert state machine (normal -> warning -> exceeded).

Alerts are emitted on transitions only. Steady state, recovery to normal and a
drop from exceeded to warning never emit, but the stored state always follows
the latest classification so the next escalation is judged against fresh data.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional

from budget_tracker.schemas.alert import Alert, AlertKind, AlertSeverity, BudgetState
from budget_tracker.schemas.budget import BudgetProgress

logger = logging.getLogger(__name__)

EMITTING_TRANSITIONS = {
    (BudgetState.NORMAL, BudgetState.WARNING),
    (BudgetState.NORMAL, BudgetState.EXCEEDED),
    (BudgetState.WARNING, BudgetState.EXCEEDED),
}

_ID_SUFFIX = {
    AlertKind.EXCEEDED: "exceeded",
    AlertKind.NEAR_LIMIT: "nearlimit",
}


class AlertEvaluation(NamedTuple):
    new_history: Dict[str, str]
    new_alerts: List[Alert]
    recovered_budget_ids: List[str]


def classify(progress: BudgetProgress) -> BudgetState:
    if progress.is_exceeded:
        return BudgetState.EXCEEDED
    if progress.is_near_limit:
        return BudgetState.WARNING
    return BudgetState.NORMAL


def parse_state(value: Any) -> BudgetState:
    """Read a stored state; anything missing or unreadable counts as normal"""
    try:
        return BudgetState(value)
    except ValueError:
        return BudgetState.NORMAL


def should_emit(previous: BudgetState, current: BudgetState) -> bool:
    return (previous, current) in EMITTING_TRANSITIONS


def alert_id_for(budget_id: str, kind: AlertKind) -> str:
    return f"alert_{budget_id}_{_ID_SUFFIX[kind]}"


def alert_ids_for_budget(budget_id: str) -> List[str]:
    return [alert_id_for(budget_id, kind) for kind in AlertKind]


def build_alert(progress: BudgetProgress, kind: AlertKind, now: Optional[datetime] = None) -> Alert:
    now = now or datetime.now(timezone.utc)
    if kind is AlertKind.EXCEEDED:
        return Alert(
            id=alert_id_for(progress.budget_id, kind),
            kind=kind,
            severity=AlertSeverity.HIGH,
            budget_id=progress.budget_id,
            category=progress.category,
            message=f"Budget exceeded for {progress.category}",
            percentage=progress.percentage,
            created_at=now,
            amount_over=progress.spent - progress.budget_amount,
        )
    return Alert(
        id=alert_id_for(progress.budget_id, kind),
        kind=kind,
        severity=AlertSeverity.MEDIUM,
        budget_id=progress.budget_id,
        category=progress.category,
        message=f"Budget near limit for {progress.category}",
        percentage=progress.percentage,
        created_at=now,
        remaining=progress.remaining,
    )


def sanitize_history(history: Any) -> Dict[str, str]:
    """Keep only entries holding a known state; dropped entries read as normal"""
    if not isinstance(history, Mapping):
        return {}
    clean = {}
    for budget_id, value in history.items():
        try:
            clean[str(budget_id)] = BudgetState(value).value
        except ValueError:
            logger.warning(f"⚠️ Ignoring corrupt classification for budget {budget_id!r}: {value!r}")
    return clean


def evaluate_and_emit_alerts(
    overview: Iterable[BudgetProgress],
    previous_history: Optional[Mapping[str, Any]],
    dismissed: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> AlertEvaluation:
    """
    Compare each budget's current classification with its stored one.

    Returns the updated history (every evaluated budget gets its current state),
    the alerts produced by emitting transitions minus any dismissed ids, and the
    budgets that recovered to normal during this evaluation.
    """
    history = sanitize_history(previous_history)
    dismissed = set(dismissed or ())
    now = now or datetime.now(timezone.utc)

    new_alerts: List[Alert] = []
    recovered: List[str] = []

    for progress in overview:
        previous = parse_state(history.get(progress.budget_id))
        current = classify(progress)

        if should_emit(previous, current):
            kind = AlertKind.EXCEEDED if current is BudgetState.EXCEEDED else AlertKind.NEAR_LIMIT
            alert = build_alert(progress, kind, now)
            if alert.id in dismissed:
                logger.info(f"🔕 Alert {alert.id} suppressed (dismissed)")
            else:
                new_alerts.append(alert)
                logger.info(f"🔔 {previous.value} -> {current.value} for {progress.category}: {alert.id}")
        elif current is BudgetState.NORMAL and previous is not BudgetState.NORMAL:
            recovered.append(progress.budget_id)

        history[progress.budget_id] = current.value

    return AlertEvaluation(new_history=history, new_alerts=new_alerts, recovered_budget_ids=recovered)
