"""
Import status ledger.

All changes to an import job after it has been created go through this
service. Transitions are applied as conditional updates, so a terminal job is
never modified and redelivered work cannot move a job backwards.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backfill.core.logging import get_logger
from backfill.models.database.import_jobs import ImportJob, ImportStatus

logger = get_logger(__name__)

# Target status -> statuses it may be entered from
ALLOWED_TRANSITIONS: Dict[ImportStatus, Tuple[ImportStatus, ...]] = {
    ImportStatus.PROCESSING: (ImportStatus.PENDING, ImportStatus.PROCESSING),
    ImportStatus.COMPLETED: (ImportStatus.PROCESSING,),
    ImportStatus.FAILED: (ImportStatus.PENDING, ImportStatus.PROCESSING),
}


class ImportStatusService:
    """Service for reading and advancing import job state."""

    @staticmethod
    async def update_status(
        db: AsyncSession,
        import_id: str,
        status: ImportStatus,
        message: Optional[str] = None,
    ) -> bool:
        """
        Move an import job to a new status.

        Args:
            db: Database session
            import_id: Import job ID
            status: Target status
            message: Error message stored with the job (failures only)

        Returns:
            True if the job was updated, False if the transition was refused
        """
        allowed_from = ALLOWED_TRANSITIONS.get(status)
        if allowed_from is None:
            logger.warning(f"Refusing to move import {import_id} to {status.value}")
            return False

        now = datetime.now(timezone.utc)
        values = {"status": status, "updated_at": now}
        if status == ImportStatus.PROCESSING:
            values["started_at"] = now
        else:
            values["completed_at"] = now
        if message is not None:
            values["error_message"] = message

        result = await db.execute(
            update(ImportJob)
            .where(ImportJob.id == import_id, ImportJob.status.in_(allowed_from))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        if result.rowcount == 0:
            logger.warning(f"Import {import_id} not moved to {status.value}: job missing or in a later state")
            return False

        logger.info(f"Import {import_id} is now {status.value}")
        return True

    @staticmethod
    async def record_counts(
        db: AsyncSession,
        import_id: str,
        imported: int,
        skipped: int,
        invalid: int,
    ) -> None:
        """Store the final event counters of an import job."""
        await db.execute(
            update(ImportJob)
            .where(ImportJob.id == import_id)
            .values(
                imported_events=imported,
                skipped_events=skipped,
                invalid_events=invalid,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    @staticmethod
    async def get_import(db: AsyncSession, import_id: str) -> Optional[ImportJob]:
        result = await db.execute(select(ImportJob).where(ImportJob.id == import_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def list_site_imports(
        db: AsyncSession,
        site_id: int,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[ImportJob], int]:
        """
        List a site's import jobs, newest first.

        Returns:
            Tuple of (jobs on this page, total number of jobs for the site)
        """
        total = await db.scalar(select(func.count(ImportJob.id)).where(ImportJob.site_id == site_id))
        result = await db.execute(
            select(ImportJob)
            .where(ImportJob.site_id == site_id)
            .order_by(ImportJob.created_at.desc(), ImportJob.id)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0
