"""
Organization database model.
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
import enum
from backfill.core.database import Base


class PlanSource(str, enum.Enum):
    """Where an organization's subscription comes from."""
    FREE = "free"
    APPSUMO = "appsumo"
    STRIPE = "stripe"
    EXEMPT = "exempt"  # Internal and partner organizations without limits


class Organization(Base):
    """Organization model; owns sites and carries the active subscription."""

    __tablename__ = "organizations"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    plan_source = Column(String(20), nullable=False, default=PlanSource.FREE.value)
    plan_name = Column(String(100), nullable=True)  # e.g. "pro100k", "standard250k"
    monthly_event_limit = Column(Integer, nullable=True)  # Falls back to DEFAULT_EVENT_LIMIT
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
