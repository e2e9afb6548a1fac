from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal

# Import the enum from the model to ensure consistency
from budget_tracker.models.transaction import TransactionType


class TransactionBase(BaseModel):
    type: TransactionType
    amount: Decimal = Field(gt=0)
    category: str = Field(min_length=1)
    date: datetime
    description: Optional[str] = None


class TransactionCreate(TransactionBase):
    id: Optional[str] = None


class TransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    category: Optional[str] = Field(default=None, min_length=1)
    date: Optional[datetime] = None
    description: Optional[str] = None

    @field_validator("type", "amount", "category", "date")
    @classmethod
    def reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class Transaction(TransactionBase):
    id: str

    class Config:
        from_attributes = True
