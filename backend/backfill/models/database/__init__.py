# Database models package
from backfill.models.database.organizations import Organization, PlanSource
from backfill.models.database.sites import Site
from backfill.models.database.import_jobs import (
    ImportJob,
    ImportStatus,
    ImportPlatform,
    ACTIVE_IMPORT_STATUSES,
    TERMINAL_IMPORT_STATUSES,
)
from backfill.models.database.events import Event

__all__ = [
    "Organization",
    "PlanSource",
    "Site",
    "ImportJob",
    "ImportStatus",
    "ImportPlatform",
    "ACTIVE_IMPORT_STATUSES",
    "TERMINAL_IMPORT_STATUSES",
    "Event",
]
