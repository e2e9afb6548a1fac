from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import enum


class BudgetState(str, enum.Enum):
    NORMAL = "normal"
    WARNING = "warning"
    EXCEEDED = "exceeded"


class AlertKind(str, enum.Enum):
    EXCEEDED = "exceeded"
    NEAR_LIMIT = "near_limit"


class AlertSeverity(str, enum.Enum):
    MEDIUM = "medium"
    HIGH = "high"


class Alert(BaseModel):
    id: str
    kind: AlertKind
    severity: AlertSeverity
    budget_id: str
    category: str
    message: str
    percentage: float
    created_at: datetime
    amount_over: Optional[Decimal] = None  # exceeded alerts only
    remaining: Optional[Decimal] = None  # near-limit alerts only

    class Config:
        frozen = True


class DismissResult(BaseModel):
    alert_id: str
    was_active: bool


class DismissAllResult(BaseModel):
    dismissed: List[str]
