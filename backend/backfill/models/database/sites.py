"""
Site database model.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from backfill.core.database import Base


class Site(Base):
    """Tracked website belonging to an organization."""

    __tablename__ = "sites"

    site_id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(
        String(64), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    domain = Column(String(253), nullable=False)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
