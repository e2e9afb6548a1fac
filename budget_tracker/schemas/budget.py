from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from datetime import date
from decimal import Decimal
import enum

# Import the enum from the model to ensure consistency
from budget_tracker.models.budget import BudgetPeriod


class BudgetBase(BaseModel):
    category: str = Field(min_length=1)
    budget_amount: Decimal = Field(gt=0)
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: date
    end_date: Optional[date] = None  # None => open-ended
    is_active: bool = True
    alert_threshold: Optional[float] = Field(default=None, gt=0, le=100)
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_date_range(self):
        if self.end_date is not None and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self


class BudgetCreate(BudgetBase):
    id: Optional[str] = None


class BudgetUpdate(BaseModel):
    category: Optional[str] = Field(default=None, min_length=1)
    budget_amount: Optional[Decimal] = Field(default=None, gt=0)
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None
    alert_threshold: Optional[float] = Field(default=None, gt=0, le=100)
    description: Optional[str] = None

    @field_validator("category", "budget_amount", "period", "start_date", "is_active")
    @classmethod
    def reject_null(cls, value, info):
        # end_date, alert_threshold and description may be cleared with null
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class Budget(BudgetBase):
    id: str

    class Config:
        from_attributes = True


class BudgetStatus(str, enum.Enum):
    GOOD = "good"
    WARNING = "warning"
    EXCEEDED = "exceeded"


class BudgetProgress(BaseModel):
    budget_id: str
    category: str
    budget_amount: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: float
    is_exceeded: bool
    is_near_limit: bool
    status: BudgetStatus

    class Config:
        frozen = True


class BudgetSummary(BaseModel):
    """Totals across the budgets of one overview"""
    total_budgets: int = 0
    total_budgeted: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    total_remaining: Decimal = Decimal("0")  # negative when overspent overall
    utilization: float = 0.0
    average_percentage: float = 0.0
    exceeded_count: int = 0
    near_limit_count: int = 0

    class Config:
        frozen = True
