"""
Admission control for new imports.
"""
import asyncio
import weakref
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backfill.core.config import settings
from backfill.core.logging import get_logger
from backfill.models.database.import_jobs import ACTIVE_IMPORT_STATUSES, ImportJob
from backfill.models.database.organizations import Organization
from backfill.models.database.sites import Site
from backfill.services.imports.errors import OrganizationNotFoundError
from backfill.services.imports.quota_tracker import ImportQuotaTracker

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConcurrencyCheckResult:
    allowed: bool
    reason: Optional[str] = None
    organization_id: Optional[str] = None


@dataclass(frozen=True)
class CreateImportResult:
    success: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class QuotaCheckResult:
    allowed: bool
    reason: Optional[str] = None


class ImportLimiter:
    """
    Decides whether an organization may start another import.

    ``check_concurrent_limit`` is advisory; the binding decision is made by
    ``create_import_with_concurrency_check``, which locks the organization row
    and re-counts active imports in the same transaction as the insert. Calls
    for one organization inside this process are also serialized by an
    ``asyncio.Lock`` so that their transactions never overlap.
    """

    def __init__(self, max_concurrent_imports: Optional[int] = None):
        self.max_concurrent_imports = (
            max_concurrent_imports
            if max_concurrent_imports is not None
            else settings.MAX_CONCURRENT_IMPORTS_PER_ORG
        )
        # Locks live only while some admission for the organization holds them
        self._org_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, organization_id: str) -> asyncio.Lock:
        lock = self._org_locks.get(organization_id)
        if lock is None:
            lock = self._org_locks[organization_id] = asyncio.Lock()
        return lock

    @staticmethod
    async def _count_active_imports(db: AsyncSession, organization_id: str) -> int:
        count = await db.scalar(
            select(func.count(ImportJob.id)).where(
                ImportJob.organization_id == organization_id,
                ImportJob.status.in_(ACTIVE_IMPORT_STATUSES),
            )
        )
        return count or 0

    def _limit_reason(self) -> str:
        plural = "import" if self.max_concurrent_imports == 1 else "imports"
        return (
            f"Only {self.max_concurrent_imports} concurrent {plural} allowed per organization. "
            "Please wait for the current import to finish."
        )

    async def check_concurrent_limit(self, db: AsyncSession, site_id: int) -> ConcurrencyCheckResult:
        """
        Check whether the organization owning a site is below its concurrent import limit.

        Args:
            db: Database session
            site_id: Site receiving the import

        Returns:
            Result with the owning organization's ID when the site exists
        """
        result = await db.execute(select(Site.organization_id).where(Site.site_id == site_id))
        organization_id = result.scalar_one_or_none()
        if organization_id is None:
            return ConcurrencyCheckResult(allowed=False, reason="Site not found")

        active = await self._count_active_imports(db, organization_id)
        if active >= self.max_concurrent_imports:
            logger.info(f"Organization {organization_id} has {active} active import(s), rejecting new import")
            return ConcurrencyCheckResult(
                allowed=False,
                reason=self._limit_reason(),
                organization_id=organization_id,
            )

        return ConcurrencyCheckResult(allowed=True, organization_id=organization_id)

    async def create_import_with_concurrency_check(self, db: AsyncSession, job: ImportJob) -> CreateImportResult:
        """
        Insert an import job unless it would exceed the organization's limit.

        The job is committed on success and rolled back otherwise; nothing
        else may be done for the import (storing the file, queueing work)
        unless this succeeds.

        Raises:
            OrganizationNotFoundError: If the job's organization does not exist
            SQLAlchemyError: If the database is unavailable
        """
        organization_id = job.organization_id

        async with self._lock_for(organization_id):
            try:
                result = await db.execute(
                    select(Organization.id).where(Organization.id == organization_id).with_for_update()
                )
                if result.scalar_one_or_none() is None:
                    await db.rollback()
                    raise OrganizationNotFoundError(organization_id)

                db.add(job)
                await db.flush()

                active = await self._count_active_imports(db, organization_id)
                if active > self.max_concurrent_imports:
                    await db.rollback()
                    logger.info(
                        f"Import {job.id} rejected: organization {organization_id} "
                        f"would have {active} active imports"
                    )
                    return CreateImportResult(success=False, reason=self._limit_reason())

                await db.commit()
            except SQLAlchemyError as e:
                logger.error(f"Failed to create import {job.id} for organization {organization_id}: {e}")
                await db.rollback()
                raise

        logger.info(f"Created import {job.id} for site {job.site_id} (organization {organization_id})")
        return CreateImportResult(success=True)

    async def check_quota_headroom(self, db: AsyncSession, organization_id: str) -> QuotaCheckResult:
        """
        Reject imports for organizations with no quota left in any month of their window.

        Only applied when ``IMPORT_REJECT_WHEN_QUOTA_EXHAUSTED`` is enabled.
        """
        if not settings.IMPORT_REJECT_WHEN_QUOTA_EXHAUSTED:
            return QuotaCheckResult(allowed=True)

        try:
            tracker = await ImportQuotaTracker.create(db, organization_id)
        except OrganizationNotFoundError as e:
            return QuotaCheckResult(allowed=False, reason=str(e))

        if tracker.has_headroom():
            return QuotaCheckResult(allowed=True)

        summary = tracker.get_summary()
        return QuotaCheckResult(
            allowed=False,
            reason=(
                f"All {summary.total_months_in_window} months of your historical import window "
                "are at full capacity. Upgrade your plan to import more events."
            ),
        )
