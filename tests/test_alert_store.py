from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from budget_tracker.models.alert_state import AlertStateRecord
from budget_tracker.schemas.alert import Alert, AlertKind, AlertSeverity
from budget_tracker.services.alert_state_tracker import AlertEvaluation
from budget_tracker.services.alert_store import (
    ACTIVE_ALERTS_KEY,
    CLASSIFICATION_HISTORY_KEY,
    DISMISSED_ALERTS_KEY,
    AlertStore,
)

NOW = datetime(2026, 10, 15, 9, 30, tzinfo=timezone.utc)


def make_alert(budget_id, kind=AlertKind.EXCEEDED, percentage=110.0, category="Groceries"):
    suffix = "exceeded" if kind is AlertKind.EXCEEDED else "nearlimit"
    return Alert(
        id=f"alert_{budget_id}_{suffix}",
        kind=kind,
        severity=AlertSeverity.HIGH if kind is AlertKind.EXCEEDED else AlertSeverity.MEDIUM,
        budget_id=budget_id,
        category=category,
        message=f"Budget {suffix} for {category}",
        percentage=percentage,
        created_at=NOW,
        amount_over=Decimal("10.00") if kind is AlertKind.EXCEEDED else None,
    )


def test_active_alerts_are_sorted_by_severity_keeping_insertion_order(session_factory):
    store = AlertStore(session_factory)
    store.replace_active_alerts([
        make_alert("a", AlertKind.NEAR_LIMIT),
        make_alert("b"),
        make_alert("c", AlertKind.NEAR_LIMIT),
        make_alert("d"),
    ])

    assert [a.id for a in store.get_active_alerts()] == [
        "alert_b_exceeded",
        "alert_d_exceeded",
        "alert_a_nearlimit",
        "alert_c_nearlimit",
    ]


def test_duplicate_ids_collapse_into_one_record(session_factory):
    store = AlertStore(session_factory)
    store.replace_active_alerts([make_alert("a", percentage=110.0), make_alert("b"), make_alert("a", percentage=130.0)])

    alerts = store.get_active_alerts()
    assert [a.id for a in alerts] == ["alert_a_exceeded", "alert_b_exceeded"]
    assert alerts[0].percentage == 130.0


def test_state_survives_a_reload(session_factory):
    store = AlertStore(session_factory)
    store.replace_active_alerts([make_alert("a"), make_alert("b", AlertKind.NEAR_LIMIT)])
    store.set_classification_history({"a": "exceeded", "b": "warning"})
    assert store.dismiss("alert_a_exceeded") is True

    reloaded = AlertStore(session_factory)
    reloaded.load()

    assert [a.id for a in reloaded.get_active_alerts()] == ["alert_b_nearlimit"]
    assert reloaded.get_dismissed_ids() == frozenset({"alert_a_exceeded"})
    assert reloaded.get_classification_history() == {"a": "exceeded", "b": "warning"}
    assert reloaded.get_active_alerts()[0] == make_alert("b", AlertKind.NEAR_LIMIT)


def test_dismissing_an_unknown_id_still_records_it(session_factory):
    store = AlertStore(session_factory)

    assert store.dismiss("alert_x_exceeded") is False
    assert "alert_x_exceeded" in store.get_dismissed_ids()


def test_dismiss_all(session_factory):
    store = AlertStore(session_factory)
    store.replace_active_alerts([make_alert("a"), make_alert("b", AlertKind.NEAR_LIMIT)])

    dismissed = store.dismiss_all()

    assert dismissed == ["alert_a_exceeded", "alert_b_nearlimit"]
    assert store.get_active_alerts() == []
    assert store.get_dismissed_ids() == frozenset(dismissed)


def test_commit_evaluation_merges_alerts_and_filters_dismissed(session_factory):
    store = AlertStore(session_factory)
    store.replace_active_alerts([make_alert("a")])
    store.dismiss("alert_b_exceeded")

    fresh = store.commit_evaluation(AlertEvaluation(
        new_history={"a": "exceeded", "b": "exceeded", "c": "warning"},
        new_alerts=[make_alert("b"), make_alert("c", AlertKind.NEAR_LIMIT)],
        recovered_budget_ids=[],
    ))

    assert [a.id for a in fresh] == ["alert_c_nearlimit"]
    assert [a.id for a in store.get_active_alerts()] == ["alert_a_exceeded", "alert_c_nearlimit"]
    assert store.get_classification_history() == {"a": "exceeded", "b": "exceeded", "c": "warning"}


def test_commit_evaluation_rearms_recovered_budgets(session_factory):
    store = AlertStore(session_factory)
    store.dismiss("alert_b_exceeded")
    store.dismiss("alert_b_nearlimit")
    store.dismiss("alert_z_exceeded")

    store.commit_evaluation(AlertEvaluation(new_history={"b": "normal"}, new_alerts=[], recovered_budget_ids=["b"]))

    assert store.get_dismissed_ids() == frozenset({"alert_z_exceeded"})

    reloaded = AlertStore(session_factory)
    reloaded.load()
    assert reloaded.get_dismissed_ids() == frozenset({"alert_z_exceeded"})


def test_reset_clears_everything(session_factory):
    store = AlertStore(session_factory)
    store.replace_active_alerts([make_alert("a")])
    store.dismiss("alert_b_exceeded")
    store.set_classification_history({"a": "exceeded"})

    store.reset()

    reloaded = AlertStore(session_factory)
    reloaded.load()
    for candidate in (store, reloaded):
        assert candidate.get_active_alerts() == []
        assert candidate.get_dismissed_ids() == frozenset()
        assert candidate.get_classification_history() == {}


def test_corrupt_records_degrade_to_empty(session_factory):
    db = session_factory()
    db.add(AlertStateRecord(key=ACTIVE_ALERTS_KEY, payload=[{"id": "broken"}, make_alert("ok").model_dump(mode="json")]))
    db.add(AlertStateRecord(key=DISMISSED_ALERTS_KEY, payload={"not": "a list"}))
    db.add(AlertStateRecord(key=CLASSIFICATION_HISTORY_KEY, payload={"a": "exceeded", "b": "???"}))
    db.commit()
    db.close()

    store = AlertStore(session_factory)
    store.load()

    assert [a.id for a in store.get_active_alerts()] == ["alert_ok_exceeded"]
    assert store.get_dismissed_ids() == frozenset()
    assert store.get_classification_history() == {"a": "exceeded"}


class FlakySessionFactory:
    """Session factory whose commits fail while ``failing`` is set"""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.failing = False

    def __call__(self):
        session = self.session_factory()
        if self.failing:
            def broken_commit():
                raise OperationalError("UPDATE alert_state", {}, Exception("disk I/O error"))
            session.commit = broken_commit
        return session


def test_persistence_failure_keeps_memory_state_and_reconciles_later(session_factory):
    flaky = FlakySessionFactory(session_factory)
    store = AlertStore(flaky)
    store.replace_active_alerts([make_alert("a")])

    flaky.failing = True
    store.dismiss("alert_a_exceeded")

    assert store.get_active_alerts() == []
    assert store.has_unsaved_changes is True

    unsaved = AlertStore(session_factory)
    unsaved.load()
    assert [a.id for a in unsaved.get_active_alerts()] == ["alert_a_exceeded"]

    flaky.failing = False
    assert store.flush() is True
    assert store.has_unsaved_changes is False

    reconciled = AlertStore(session_factory)
    reconciled.load()
    assert reconciled.get_active_alerts() == []
    assert reconciled.get_dismissed_ids() == frozenset({"alert_a_exceeded"})
