"""
Budget progress calculations.

Everything in this module is pure: inputs are never mutated and the same
(budgets, transactions, as_of) always produces the same overview. Inputs may be
ORM rows, pydantic schemas or plain dicts.
"""
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Tuple

import pytz
from dateutil import parser as date_parser

from budget_tracker.core.config import settings
from budget_tracker.core.exceptions import ValidationError
from budget_tracker.schemas.budget import BudgetProgress, BudgetStatus, BudgetSummary

logger = logging.getLogger(__name__)

NEAR_LIMIT_THRESHOLD = 80.0
EXPENSE = "expense"
ZERO = Decimal("0")

# (category, calendar day, amount)
ExpenseEntry = Tuple[str, date, Decimal]


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def current_date(tz_name: Optional[str] = None) -> date:
    """Today's date in the configured time zone"""
    tz = pytz.timezone(tz_name or settings.TIMEZONE)
    return datetime.now(tz).date()


def _local_date(value: datetime) -> date:
    # Aware timestamps land on the calendar day of the configured time zone
    if value.tzinfo is not None and value.utcoffset() is not None:
        value = value.astimezone(pytz.timezone(settings.TIMEZONE))
    return value.date()


def to_date(value: Any) -> Optional[date]:
    """Coerce a timestamp to its calendar date, None when it cannot be read"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _local_date(value)
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return _local_date(date_parser.isoparse(value))
        except (ValueError, OverflowError):
            return None
    return None


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def _expense_entries(transactions: Optional[Iterable[Any]]) -> List[ExpenseEntry]:
    entries = []
    for transaction in transactions or []:
        if _enum_value(_field(transaction, "type")) != EXPENSE:
            continue

        category = _field(transaction, "category")
        day = to_date(_field(transaction, "date"))
        amount = to_decimal(_field(transaction, "amount"))
        if not category or day is None or amount is None or amount <= 0:
            # A corrupt record must never abort the recompute of every budget
            logger.debug(f"Excluding malformed transaction {_field(transaction, 'id')!r}")
            continue

        entries.append((category, day, amount))
    return entries


def budget_window(budget: Any) -> Optional[Tuple[date, Optional[date]]]:
    """Return (start, end) for a budget, or None if its dates are unusable"""
    start = to_date(_field(budget, "start_date"))
    raw_end = _field(budget, "end_date")
    end = to_date(raw_end)
    if start is None or (raw_end is not None and end is None):
        return None
    if end is not None and start > end:
        return None
    return start, end


def _threshold(budget: Any, default: Optional[float]) -> float:
    own = _field(budget, "alert_threshold")
    if isinstance(own, (int, float)) and not isinstance(own, bool) and 0 < own <= 100:
        return float(own)
    return NEAR_LIMIT_THRESHOLD if default is None else float(default)


def _progress(budget: Any, expenses: List[ExpenseEntry], near_limit_threshold: Optional[float]) -> BudgetProgress:
    budget_id = _field(budget, "id")
    category = _field(budget, "category")
    if not budget_id:
        raise ValidationError("Budget has no id")
    if not category:
        raise ValidationError(f"Budget {budget_id} has no category")

    window = budget_window(budget)
    if window is None:
        raise ValidationError(f"Budget {budget_id} has an invalid date range")

    budget_amount = to_decimal(_field(budget, "budget_amount"))
    if budget_amount is None or budget_amount < 0:
        raise ValidationError(f"Budget {budget_id} has an invalid amount")

    start, end = window
    spent = sum(
        (
            amount
            for tx_category, day, amount in expenses
            if tx_category == category and start <= day and (end is None or day <= end)
        ),
        ZERO,
    )

    remaining = max(ZERO, budget_amount - spent)
    percentage = float(spent / budget_amount * 100) if budget_amount > 0 else 0.0
    is_exceeded = spent > budget_amount
    is_near_limit = percentage >= _threshold(budget, near_limit_threshold) and not is_exceeded

    if is_exceeded:
        status = BudgetStatus.EXCEEDED
    elif is_near_limit:
        status = BudgetStatus.WARNING
    else:
        status = BudgetStatus.GOOD

    return BudgetProgress(
        budget_id=str(budget_id),
        category=category,
        budget_amount=budget_amount,
        spent=spent,
        remaining=remaining,
        percentage=percentage,
        is_exceeded=is_exceeded,
        is_near_limit=is_near_limit,
        status=status,
    )


def compute_progress(
    budget: Any,
    transactions: Optional[Iterable[Any]],
    near_limit_threshold: Optional[float] = None,
) -> BudgetProgress:
    """
    Compute spent / remaining / percentage / status for a single budget.

    Only expense transactions of the budget's category whose date falls within
    [start_date, end_date] (inclusive, open-ended when end_date is None) count.
    Raises ValidationError when the budget itself is unusable.
    """
    return _progress(budget, _expense_entries(transactions), near_limit_threshold)


def is_currently_active(budget: Any, as_of: Optional[date] = None) -> bool:
    if not _field(budget, "is_active", False):
        return False
    window = budget_window(budget)
    if window is None:
        return False
    as_of = as_of or current_date()
    start, end = window
    return start <= as_of and (end is None or as_of <= end)


def compute_overview(
    budgets: Optional[Iterable[Any]],
    transactions: Optional[Iterable[Any]],
    as_of: Optional[date] = None,
    near_limit_threshold: Optional[float] = None,
) -> List[BudgetProgress]:
    """
    Progress for every active, in-period budget.

    Sorted exceeded first, then by percentage descending. The sort is stable, so
    budgets with equal (is_exceeded, percentage) keep their input order.
    """
    as_of = as_of or current_date()
    expenses = _expense_entries(transactions)

    overview = []
    for budget in budgets or []:
        if not _field(budget, "is_active", False):
            continue
        if budget_window(budget) is None:
            logger.warning(f"⚠️ Skipping budget {_field(budget, 'id')!r}: invalid date range")
            continue
        if not is_currently_active(budget, as_of):
            continue
        try:
            overview.append(_progress(budget, expenses, near_limit_threshold))
        except ValidationError as e:
            logger.warning(f"⚠️ Skipping budget {_field(budget, 'id')!r}: {e.message}")

    overview.sort(key=lambda progress: (not progress.is_exceeded, -progress.percentage))
    return overview


def compute_summary(overview: Iterable[BudgetProgress]) -> BudgetSummary:
    """Totals, utilization and status counts for an overview"""
    overview = list(overview)
    if not overview:
        return BudgetSummary()

    total_budgeted = sum((progress.budget_amount for progress in overview), ZERO)
    total_spent = sum((progress.spent for progress in overview), ZERO)
    utilization = float(total_spent / total_budgeted * 100) if total_budgeted > 0 else 0.0

    return BudgetSummary(
        total_budgets=len(overview),
        total_budgeted=total_budgeted,
        total_spent=total_spent,
        total_remaining=total_budgeted - total_spent,
        utilization=utilization,
        average_percentage=sum(progress.percentage for progress in overview) / len(overview),
        exceeded_count=sum(1 for progress in overview if progress.is_exceeded),
        near_limit_count=sum(1 for progress in overview if progress.is_near_limit),
    )
