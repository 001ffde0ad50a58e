# Schemas package
from backfill.models.schemas.imports import (
    CanonicalEvent,
    ChunkMessage,
    CsvParseJob,
    ImportRequestFields,
    ImportAcceptedResponse,
    ImportJobResponse,
    ImportJobListResponse,
)

__all__ = [
    "CanonicalEvent",
    "ChunkMessage",
    "CsvParseJob",
    "ImportRequestFields",
    "ImportAcceptedResponse",
    "ImportJobResponse",
    "ImportJobListResponse",
]
