"""
Subscription lookup for organizations.
"""
from dataclasses import dataclass
from typing import Optional

from backfill.core.config import settings
from backfill.models.database.organizations import Organization, PlanSource


@dataclass(frozen=True)
class SubscriptionInfo:
    """Effective subscription of an organization."""
    source: str
    plan_name: str
    event_limit: Optional[int]  # None means unbounded

    @property
    def is_unbounded(self) -> bool:
        return self.event_limit is None


def get_best_subscription(organization: Organization) -> SubscriptionInfo:
    """Resolve the subscription an organization is currently billed on."""
    source = organization.plan_source or PlanSource.FREE.value
    if source == PlanSource.EXEMPT.value:
        return SubscriptionInfo(source=source, plan_name=organization.plan_name or "", event_limit=None)

    event_limit = organization.monthly_event_limit
    if event_limit is None:
        event_limit = settings.DEFAULT_EVENT_LIMIT

    return SubscriptionInfo(
        source=source,
        plan_name=organization.plan_name or "",
        event_limit=event_limit,
    )


def get_historical_window_months(subscription: SubscriptionInfo) -> int:
    """Number of past months an organization may import, by subscription tier."""
    if subscription.source == PlanSource.FREE.value:
        return 6

    if subscription.source == PlanSource.APPSUMO.value:
        return 24

    if subscription.source == PlanSource.STRIPE.value:
        if subscription.plan_name.startswith("pro"):
            return 60
        return 24

    return 6
