"""
Source mappers, one per supported analytics platform.
"""
from backfill.services.imports.errors import UnsupportedImportSourceError
from backfill.services.imports.mappers.base import SourceMapper, lookup_mapper, registered_platforms
from backfill.services.imports.mappers.simple_analytics import SimpleAnalyticsImportMapper
from backfill.services.imports.mappers.umami import UmamiImportMapper


def get_mapper(source: str) -> SourceMapper:
    """
    Return the mapper registered for a platform.

    Raises:
        UnsupportedImportSourceError: If no mapper handles the platform
    """
    mapper = lookup_mapper(source)
    if mapper is None:
        raise UnsupportedImportSourceError(str(source))
    return mapper


__all__ = [
    "SourceMapper",
    "SimpleAnalyticsImportMapper",
    "UmamiImportMapper",
    "get_mapper",
    "registered_platforms",
]
