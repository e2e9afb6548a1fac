import copy
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from budget_tracker.core.config import settings
from budget_tracker.core.exceptions import ValidationError
from budget_tracker.schemas.budget import Budget, BudgetStatus
from budget_tracker.schemas.transaction import Transaction
from budget_tracker.services.progress_calculator import (
    compute_overview,
    compute_progress,
    compute_summary,
    is_currently_active,
    to_date,
)

TODAY = date(2026, 10, 15)


def make_budget(budget_id="b1", category="Groceries", amount="200", start=date(2026, 10, 1), end=date(2026, 10, 31), **extra):
    return Budget(
        id=budget_id,
        category=category,
        budget_amount=Decimal(amount),
        start_date=start,
        end_date=end,
        **extra,
    )


def make_tx(tx_id, amount, category="Groceries", when=datetime(2026, 10, 10, 12, 0), type="expense"):
    return Transaction(id=tx_id, type=type, amount=Decimal(str(amount)), category=category, date=when)


def test_percentage_counts_only_in_period_expenses_of_the_category():
    budget = make_budget(amount="200")
    transactions = [
        make_tx("t1", 40),
        make_tx("t2", 60),
        make_tx("t3", 30, when=datetime(2026, 9, 30, 23, 0)),  # outside the period
        make_tx("t4", 500, type="income"),
        make_tx("t5", 25, category="Dining"),
    ]

    progress = compute_progress(budget, transactions)

    assert progress.spent == Decimal("100")
    assert progress.remaining == Decimal("100")
    assert progress.percentage == 50.0
    assert progress.is_exceeded is False
    assert progress.is_near_limit is False
    assert progress.status == BudgetStatus.GOOD


def test_spending_exactly_the_budget_is_not_exceeded():
    progress = compute_progress(make_budget(amount="100"), [make_tx("t1", 100)])

    assert progress.is_exceeded is False
    assert progress.percentage == 100.0
    assert progress.is_near_limit is True
    assert progress.status == BudgetStatus.WARNING
    assert progress.remaining == Decimal("0")


def test_overspending_clamps_remaining_and_marks_exceeded():
    progress = compute_progress(make_budget(amount="100"), [make_tx("t1", 70), make_tx("t2", 40)])

    assert progress.is_exceeded is True
    assert progress.is_near_limit is False
    assert progress.status == BudgetStatus.EXCEEDED
    assert progress.remaining == Decimal("0")
    assert progress.percentage == pytest.approx(110.0)


def test_period_bounds_are_inclusive():
    budget = make_budget(amount="100", start=date(2026, 10, 1), end=date(2026, 10, 31))
    transactions = [
        make_tx("first", 10, when=datetime(2026, 10, 1, 0, 0)),
        make_tx("last", 10, when=datetime(2026, 10, 31, 23, 59)),
        make_tx("after", 10, when=datetime(2026, 11, 1, 0, 0)),
    ]

    assert compute_progress(budget, transactions).spent == Decimal("20")


def test_open_ended_budget_has_no_upper_bound():
    budget = make_budget(amount="100", end=None)
    transactions = [make_tx("t1", 10, when=datetime(2030, 1, 1, 9, 0))]

    assert compute_progress(budget, transactions).spent == Decimal("10")


def test_zero_budget_amount():
    budget = Budget.model_construct(
        id="zero", category="Groceries", budget_amount=Decimal("0"),
        start_date=date(2026, 10, 1), end_date=None, is_active=True, alert_threshold=None,
    )

    empty = compute_progress(budget, [])
    assert empty.percentage == 0
    assert empty.is_exceeded is False

    spent = compute_progress(budget, [make_tx("t1", 5)])
    assert spent.percentage == 0
    assert spent.is_exceeded is True
    assert spent.status == BudgetStatus.EXCEEDED


def test_no_transactions_means_nothing_spent():
    progress = compute_progress(make_budget(), None)

    assert progress.spent == Decimal("0")
    assert progress.status == BudgetStatus.GOOD


def test_malformed_transactions_are_excluded_not_raised():
    transactions = [
        make_tx("good", 50),
        Transaction.model_construct(id="bad-date", type="expense", amount=Decimal("70"), category="Groceries", date="not-a-date"),
        {"id": "no-date", "type": "expense", "amount": "30", "category": "Groceries"},
        {"id": "bad-amount", "type": "expense", "amount": "abc", "category": "Groceries", "date": "2026-10-05T10:00:00"},
        {"id": "dict-ok", "type": "expense", "amount": "20", "category": "Groceries", "date": "2026-10-05T10:00:00"},
    ]

    progress = compute_progress(make_budget(amount="200"), transactions)

    assert progress.spent == Decimal("70")


def test_per_budget_threshold_overrides_default():
    budget = make_budget(amount="100", alert_threshold=50)

    assert compute_progress(budget, [make_tx("t1", 55)]).is_near_limit is True
    assert compute_progress(make_budget(amount="100"), [make_tx("t1", 55)]).is_near_limit is False
    assert compute_progress(make_budget(amount="100"), [make_tx("t1", 55)], near_limit_threshold=50).is_near_limit is True


def test_budget_without_category_is_rejected():
    budget = Budget.model_construct(
        id="nocat", category="", budget_amount=Decimal("100"),
        start_date=date(2026, 10, 1), end_date=None, is_active=True, alert_threshold=None,
    )

    with pytest.raises(ValidationError):
        compute_progress(budget, [])


def test_overview_sorts_exceeded_first_then_by_percentage():
    budgets = [
        make_budget("low", "Books", "100"),
        make_budget("over", "Dining", "100"),
        make_budget("high", "Groceries", "100"),
        make_budget("tie", "Fuel", "100"),
    ]
    transactions = [
        make_tx("t1", 10, category="Books"),
        make_tx("t2", 120, category="Dining"),
        make_tx("t3", 85, category="Groceries"),
        make_tx("t4", 10, category="Fuel"),
    ]

    overview = compute_overview(budgets, transactions, as_of=TODAY)

    assert [p.budget_id for p in overview] == ["over", "high", "low", "tie"]


def test_overview_skips_inactive_out_of_period_and_broken_budgets():
    broken = Budget.model_construct(
        id="broken", category="Fuel", budget_amount=Decimal("100"),
        start_date=date(2026, 10, 20), end_date=date(2026, 10, 1), is_active=True, alert_threshold=None,
    )
    budgets = [
        make_budget("current"),
        make_budget("inactive", is_active=False),
        make_budget("past", start=date(2026, 9, 1), end=date(2026, 9, 30)),
        make_budget("future", start=date(2026, 11, 1), end=None),
        broken,
    ]

    overview = compute_overview(budgets, [], as_of=TODAY)

    assert [p.budget_id for p in overview] == ["current"]


def test_overview_is_idempotent_and_does_not_mutate_inputs():
    budgets = [make_budget("a", "Groceries", "100"), make_budget("b", "Dining", "50")]
    transactions = [make_tx("t1", 90), make_tx("t2", 60, category="Dining")]
    budgets_before = copy.deepcopy(budgets)
    transactions_before = copy.deepcopy(transactions)

    first = compute_overview(budgets, transactions, as_of=TODAY)
    second = compute_overview(budgets, transactions, as_of=TODAY)

    assert first == second
    assert budgets == budgets_before
    assert transactions == transactions_before


def test_is_currently_active():
    assert is_currently_active(make_budget(), TODAY) is True
    assert is_currently_active(make_budget(is_active=False), TODAY) is False
    assert is_currently_active(make_budget(end=None), date(2031, 1, 1)) is True
    assert is_currently_active(make_budget(), date(2026, 9, 30)) is False


def test_summary_totals_and_counts():
    budgets = [
        make_budget("over", "Dining", "100"),
        make_budget("near", "Groceries", "200"),
        make_budget("calm", "Books", "100"),
    ]
    transactions = [
        make_tx("t1", 130, category="Dining"),
        make_tx("t2", 170, category="Groceries"),
        make_tx("t3", 20, category="Books"),
    ]

    summary = compute_summary(compute_overview(budgets, transactions, as_of=TODAY))

    assert summary.total_budgets == 3
    assert summary.total_budgeted == Decimal("400")
    assert summary.total_spent == Decimal("320")
    assert summary.total_remaining == Decimal("80")
    assert summary.utilization == 80.0
    assert summary.average_percentage == pytest.approx((130 + 85 + 20) / 3)
    assert summary.exceeded_count == 1
    assert summary.near_limit_count == 1


def test_summary_of_empty_and_zero_total_overviews():
    empty = compute_summary([])
    assert empty.total_budgets == 0
    assert empty.total_budgeted == Decimal("0")
    assert empty.utilization == 0.0
    assert empty.average_percentage == 0.0

    zero = Budget.model_construct(
        id="zero", category="Groceries", budget_amount=Decimal("0"),
        start_date=date(2026, 10, 1), end_date=None, is_active=True, alert_threshold=None,
    )
    summary = compute_summary([compute_progress(zero, [make_tx("t1", 5)])])

    assert summary.total_budgets == 1
    assert summary.utilization == 0.0
    assert summary.total_remaining == Decimal("-5")
    assert summary.exceeded_count == 1


def test_aware_timestamps_use_the_configured_time_zone(monkeypatch):
    late_in_lima = datetime(2026, 10, 31, 23, 30, tzinfo=timezone(timedelta(hours=-5)))

    monkeypatch.setattr(settings, "TIMEZONE", "UTC")
    assert to_date(late_in_lima) == date(2026, 11, 1)
    assert to_date("2026-10-31T23:30:00-05:00") == date(2026, 11, 1)
    assert to_date(datetime(2026, 10, 31, 23, 30)) == date(2026, 10, 31)

    monkeypatch.setattr(settings, "TIMEZONE", "America/Lima")
    assert to_date(late_in_lima) == date(2026, 10, 31)


def test_aware_expense_after_midnight_utc_falls_outside_the_period(monkeypatch):
    monkeypatch.setattr(settings, "TIMEZONE", "UTC")
    budget = make_budget(amount="100", start=date(2026, 10, 1), end=date(2026, 10, 31))
    transactions = [
        {"id": "late", "type": "expense", "amount": "30", "category": "Groceries", "date": "2026-10-31T23:30:00-05:00"},
        {"id": "early", "type": "expense", "amount": "10", "category": "Groceries", "date": "2026-10-31T18:00:00-05:00"},
    ]

    assert compute_progress(budget, transactions).spent == Decimal("10")
