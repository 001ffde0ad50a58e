"""
Import job cleanup and recovery service.

Handles imports left unfinished by worker crashes or restarts.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backfill.core.config import settings
from backfill.core.logging import get_logger
from backfill.models.database.import_jobs import ACTIVE_IMPORT_STATUSES, ImportJob, ImportStatus
from backfill.services.imports.status import ImportStatusService

logger = get_logger(__name__)

STALE_IMPORT_MESSAGE = (
    "Import was interrupted and automatically marked as failed. "
    "Last status: {status}. Please upload the file again."
)


class ImportJobCleanupService:
    """Service for cleaning up interrupted imports."""

    @staticmethod
    async def cleanup_stale_imports(
        db: AsyncSession,
        stale_after: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Mark imports stuck in pending or processing as failed.

        An import is stale once it has not been updated for longer than
        ``IMPORT_STALE_AFTER_MINUTES``. Active imports hold their
        organization's concurrency slot, so stale ones would block new
        uploads indefinitely.

        Args:
            db: Database session
            stale_after: Override of the staleness threshold
            now: Current time (UTC)

        Returns:
            Number of imports marked failed
        """
        stale_after = stale_after or timedelta(minutes=settings.IMPORT_STALE_AFTER_MINUTES)
        current_time = now or datetime.now(timezone.utc)

        result = await db.execute(
            select(ImportJob).where(ImportJob.status.in_(ACTIVE_IMPORT_STATUSES))
        )
        active_imports = result.scalars().all()

        if not active_imports:
            logger.info("No interrupted imports found")
            return 0

        cleaned_count = 0
        for job in active_imports:
            last_update = job.updated_at or job.created_at
            if last_update is None:
                continue
            # SQLite hands back naive datetimes
            if last_update.tzinfo is None:
                last_update = last_update.replace(tzinfo=timezone.utc)

            time_since_update = current_time - last_update
            if time_since_update <= stale_after:
                continue

            logger.warning(f"Found interrupted import {job.id}: status={job.status.value}, stale_for={time_since_update}")
            marked = await ImportStatusService.update_status(
                db,
                job.id,
                ImportStatus.FAILED,
                STALE_IMPORT_MESSAGE.format(status=job.status.value),
            )
            if marked:
                cleaned_count += 1

        if cleaned_count > 0:
            logger.info(f"Cleaned up {cleaned_count} interrupted import(s)")
        else:
            logger.info("All active imports appear to be valid")

        return cleaned_count
