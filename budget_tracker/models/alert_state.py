from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func

from budget_tracker.core.database import Base


class AlertStateRecord(Base):
    """One JSON document per key: active alerts, dismissed ids, classification history"""
    __tablename__ = "alert_state"

    key = Column(String(64), primary_key=True)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
