"""
Base class for per-platform import mappers.
"""
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from backfill.models.database.import_jobs import ImportPlatform
from backfill.models.schemas.imports import CanonicalEvent


class SourceMapper(ABC):
    """
    Validates raw export rows of one platform and maps them to canonical events.

    Subclasses declare a single pydantic ``row_model``; its fields, in
    declaration order, are the CSV columns the mapper reads, and the same
    model validates every row. Rows that fail validation are dropped.
    """

    platform: ClassVar[ImportPlatform]
    row_model: ClassVar[Type[BaseModel]]
    timestamp_field: ClassVar[str]

    @property
    def headers(self) -> Tuple[str, ...]:
        """CSV columns expected in an export of this platform."""
        return tuple(self.row_model.model_fields)

    def validate_row(self, raw_row: Mapping[str, Any]) -> Optional[BaseModel]:
        """Validate a raw row, returning None instead of raising on bad data."""
        try:
            return self.row_model.model_validate(dict(raw_row))
        except (ValidationError, TypeError, ValueError):
            return None

    @abstractmethod
    def extract_timestamp(self, raw_row: Mapping[str, Any]) -> Optional[str]:
        """Event time of a raw row as a canonical UTC timestamp, or None."""

    @abstractmethod
    def to_canonical(self, row: BaseModel, site_id: int, import_id: str) -> Dict[str, Any]:
        """Build canonical event fields from a validated row."""

    def transform(self, raw_row: Mapping[str, Any], site_id: int, import_id: str) -> Optional[CanonicalEvent]:
        """
        Map one raw export row to a canonical event.

        Args:
            raw_row: Column name to raw string value
            site_id: Site receiving the import
            import_id: Import job the event belongs to

        Returns:
            The canonical event, or None when the row is invalid
        """
        row = self.validate_row(raw_row)
        if row is None:
            return None
        try:
            return CanonicalEvent(**self.to_canonical(row, site_id, import_id))
        except (ValidationError, TypeError, ValueError):
            return None


_REGISTRY: Dict[ImportPlatform, SourceMapper] = {}


def register_mapper(mapper_cls: Type[SourceMapper]) -> Type[SourceMapper]:
    """Class decorator adding a mapper to the platform registry."""
    _REGISTRY[mapper_cls.platform] = mapper_cls()
    return mapper_cls


def registered_platforms() -> Tuple[ImportPlatform, ...]:
    return tuple(_REGISTRY)


def lookup_mapper(source: str) -> Optional[SourceMapper]:
    try:
        return _REGISTRY.get(ImportPlatform(source))
    except ValueError:
        return None
