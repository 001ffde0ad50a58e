"""
Per-organization monthly quota and historical window enforcement for imports.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import and_, extract, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backfill.core.config import settings
from backfill.core.logging import get_logger
from backfill.models.database.events import Event
from backfill.models.database.organizations import Organization
from backfill.models.database.sites import Site
from backfill.models.schemas.imports import TIMESTAMP_FORMAT
from backfill.services.imports.errors import OrganizationNotFoundError, QuotaLookupError
from backfill.services.subscriptions import get_best_subscription, get_historical_window_months

logger = get_logger(__name__)

UNBOUNDED_OLDEST_MONTH = "190001"
BILLABLE_EVENT_TYPES = ("pageview", "custom_event", "performance")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_key(moment: datetime) -> str:
    """Format a datetime as its YYYYMM bucket."""
    return f"{moment.year:04d}{moment.month:02d}"


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move a (year, month) pair by ``delta`` months."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a canonical UTC timestamp, returning None when malformed."""
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class QuotaSummary:
    """Quota state used in user-facing failure messages."""
    months_at_capacity: int
    total_months_in_window: int


class ImportQuotaTracker:
    """
    Admits imported events against an organization's monthly event budget.

    The tracker is seeded once per job with the months already used in the
    event store and is never shared between jobs. Quota is granted strictly
    first-come in the order timestamps are presented.
    """

    def __init__(
        self,
        monthly_usage: Dict[str, int],
        monthly_limit: Optional[int],
        oldest_allowed_month: str,
        now: Callable[[], datetime] = utc_now,
    ):
        self._monthly_usage = dict(monthly_usage)
        self._monthly_limit = monthly_limit
        self._oldest_allowed_month = oldest_allowed_month
        self._now = now

    @classmethod
    async def create(
        cls,
        db: AsyncSession,
        organization_id: str,
        now: Callable[[], datetime] = utc_now,
    ) -> "ImportQuotaTracker":
        """
        Build a tracker for an organization from its subscription and usage.

        Args:
            db: Database session
            organization_id: Organization whose quota applies
            now: Clock used for the window and future-timestamp checks

        Returns:
            Tracker seeded with the organization's existing monthly usage

        Raises:
            OrganizationNotFoundError: If the organization does not exist
            QuotaLookupError: If existing usage cannot be queried
        """
        if not settings.IS_CLOUD:
            return cls({}, None, UNBOUNDED_OLDEST_MONTH, now=now)

        organization = await db.get(Organization, organization_id)
        if organization is None:
            raise OrganizationNotFoundError(organization_id)

        subscription = get_best_subscription(organization)
        if subscription.is_unbounded:
            return cls({}, None, UNBOUNDED_OLDEST_MONTH, now=now)

        window_months = get_historical_window_months(subscription)
        current = now()
        oldest_year, oldest_month = shift_month(current.year, current.month, -window_months)
        oldest_allowed_month = f"{oldest_year:04d}{oldest_month:02d}"

        result = await db.execute(select(Site.site_id).where(Site.organization_id == organization_id))
        site_ids = [row[0] for row in result.all()]

        if not site_ids:
            return cls({}, subscription.event_limit, oldest_allowed_month, now=now)

        window_start = datetime(oldest_year, oldest_month, 1)
        monthly_usage = await cls.query_monthly_usage(db, site_ids, window_start)

        logger.info(
            f"Quota tracker for organization {organization_id}: limit={subscription.event_limit}, "
            f"window={window_months} months from {oldest_allowed_month}, "
            f"{len(monthly_usage)} months with existing usage"
        )
        return cls(monthly_usage, subscription.event_limit, oldest_allowed_month, now=now)

    @staticmethod
    async def query_monthly_usage(
        db: AsyncSession,
        site_ids: Sequence[int],
        window_start: datetime,
    ) -> Dict[str, int]:
        """
        Count already-stored billable events per month across sites.

        Legacy sites are billed on pageviews only; newer sites also on custom
        and performance events.
        """
        if not site_ids:
            return {}

        legacy_sites = [site_id for site_id in site_ids if site_id < settings.LEGACY_SITE_ID_CUTOFF]
        current_sites = [site_id for site_id in site_ids if site_id >= settings.LEGACY_SITE_ID_CUTOFF]

        billable = []
        if legacy_sites:
            billable.append(and_(Event.site_id.in_(legacy_sites), Event.type == "pageview"))
        if current_sites:
            billable.append(and_(Event.site_id.in_(current_sites), Event.type.in_(BILLABLE_EVENT_TYPES)))

        month = (extract("year", Event.timestamp) * 100 + extract("month", Event.timestamp)).label("month")
        query = (
            select(month, func.count().label("event_count"))
            .where(Event.timestamp >= window_start, or_(*billable))
            .group_by(month)
            .order_by(month)
        )

        try:
            result = await db.execute(query)
        except SQLAlchemyError as e:
            raise QuotaLookupError(f"Failed to query monthly usage for quota check: {e}") from e

        return {f"{int(row.month):06d}": int(row.event_count) for row in result.all()}

    @property
    def monthly_limit(self) -> Optional[int]:
        return self._monthly_limit

    def can_import_batch(self, timestamps: Sequence[str]) -> List[int]:
        """
        Check and reserve quota for a batch of events.

        Every month's increments are applied together once the whole batch has
        been evaluated, so a batch is admitted against one consistent view of
        usage.

        Args:
            timestamps: Event timestamps formatted as YYYY-MM-DD HH:MM:SS (UTC)

        Returns:
            Indices of the events that can be imported, in input order
        """
        allowed_indices: List[int] = []
        monthly_increments: Dict[str, int] = {}
        now = self._now()

        for index, timestamp in enumerate(timestamps):
            moment = parse_timestamp(timestamp)
            if moment is None or moment > now:
                continue

            month = month_key(moment)
            if month < self._oldest_allowed_month:
                continue

            increment_in_batch = monthly_increments.get(month, 0)
            if self._monthly_limit is not None:
                total_usage = self._monthly_usage.get(month, 0) + increment_in_batch
                if total_usage >= self._monthly_limit:
                    continue

            allowed_indices.append(index)
            monthly_increments[month] = increment_in_batch + 1

        for month, increment in monthly_increments.items():
            self._monthly_usage[month] = self._monthly_usage.get(month, 0) + increment

        return allowed_indices

    def can_import_event(self, timestamp: str) -> bool:
        """Check and reserve quota for a single event."""
        return bool(self.can_import_batch([timestamp]))

    def get_oldest_allowed_month(self) -> str:
        return self._oldest_allowed_month

    def get_summary(self) -> QuotaSummary:
        """Count the months of the window, and those with no quota left."""
        current = self._now()
        year, month = int(self._oldest_allowed_month[:4]), int(self._oldest_allowed_month[4:])
        total = (current.year * 12 + current.month) - (year * 12 + month) + 1

        if self._monthly_limit is None:
            return QuotaSummary(months_at_capacity=0, total_months_in_window=max(total, 0))

        at_capacity = 0
        for offset in range(max(total, 0)):
            key = "%04d%02d" % shift_month(year, month, offset)
            if self._monthly_usage.get(key, 0) >= self._monthly_limit:
                at_capacity += 1

        return QuotaSummary(months_at_capacity=at_capacity, total_months_in_window=max(total, 0))

    def has_headroom(self) -> bool:
        """Whether any month of the window can still take events."""
        if self._monthly_limit is None:
            return True
        summary = self.get_summary()
        return summary.months_at_capacity < summary.total_months_in_window
