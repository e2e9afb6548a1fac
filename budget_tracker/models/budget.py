from sqlalchemy import Column, String, DateTime, Date, Numeric, Boolean, Float, Enum
from sqlalchemy.sql import func
import uuid
import enum

from budget_tracker.core.database import Base


class BudgetPeriod(enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class Budget(Base):
    __tablename__ = "budgets"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    category = Column(String, nullable=False, index=True)
    budget_amount = Column(Numeric(12, 2), nullable=False)
    period = Column(Enum(BudgetPeriod, values_callable=lambda e: [m.value for m in e]), nullable=False, default=BudgetPeriod.MONTHLY)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)  # Open-ended budget when NULL
    is_active = Column(Boolean, nullable=False, default=True)
    alert_threshold = Column(Float, nullable=True)  # Near-limit percentage, falls back to settings
    description = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
