"""
Import job tracking database model.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.sql import func
import enum
from backfill.core.database import Base


class ImportStatus(str, enum.Enum):
    """Import job status enumeration."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_IMPORT_STATUSES = (ImportStatus.COMPLETED, ImportStatus.FAILED)
ACTIVE_IMPORT_STATUSES = (ImportStatus.PENDING, ImportStatus.PROCESSING)


class ImportPlatform(str, enum.Enum):
    """Analytics tools whose exports can be imported."""
    UMAMI = "umami"
    SIMPLE_ANALYTICS = "simple_analytics"


class ImportJob(Base):
    """Import job tracking model."""

    __tablename__ = "import_jobs"

    id = Column(String(36), primary_key=True)  # UUID generated at upload time
    site_id = Column(Integer, ForeignKey("sites.site_id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(
        String(64), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_platform = Column(
        SQLEnum(ImportPlatform, values_callable=lambda obj: [e.value for e in obj], name="importplatform"),
        nullable=False,
    )
    status = Column(
        SQLEnum(ImportStatus, values_callable=lambda obj: [e.value for e in obj], name="importstatus"),
        default=ImportStatus.PENDING,
        nullable=False,
        index=True,
    )
    file_name = Column(String(255), nullable=False)
    error_message = Column(Text, nullable=True)
    imported_events = Column(Integer, nullable=False, default=0)
    skipped_events = Column(Integer, nullable=False, default=0)  # Quota, window and date filter skips
    invalid_events = Column(Integer, nullable=False, default=0)  # Rows rejected by the source mapper
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
