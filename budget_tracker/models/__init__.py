# Import all models here so Base.metadata knows every table
from budget_tracker.models.transaction import Transaction
from budget_tracker.models.budget import Budget
from budget_tracker.models.alert_state import AlertStateRecord

__all__ = [
    "Transaction",
    "Budget",
    "AlertStateRecord",
]
