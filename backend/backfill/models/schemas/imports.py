"""
Pydantic schemas for historical data imports.
"""
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from backfill.models.database.import_jobs import ImportPlatform, ImportStatus

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"


class CanonicalEvent(BaseModel):
    """Normalized analytics event shared by imports and live tracking."""

    site_id: int
    timestamp: str = Field(..., description="UTC timestamp formatted as YYYY-MM-DD HH:MM:SS")
    session_id: str
    user_id: str
    hostname: str
    pathname: str
    querystring: str
    url_parameters: Dict[str, str] = Field(default_factory=dict)
    page_title: str = ""
    referrer: str
    channel: str
    browser: str
    browser_version: str
    operating_system: str
    operating_system_version: str
    language: str
    country: str
    region: str = ""
    city: str = ""
    lat: float = 0
    lon: float = 0
    screen_width: int
    screen_height: int
    device_type: str
    type: Literal["pageview", "custom_event"]
    event_name: str
    props: Dict[str, Any] = Field(default_factory=dict)
    import_id: str

    @model_validator(mode="after")
    def check_event_name_matches_type(self) -> "CanonicalEvent":
        if (self.type == "pageview") != (self.event_name == ""):
            raise ValueError("event_name must be empty for pageviews and only for pageviews")
        return self


class ChunkMessage(BaseModel):
    """Batch of canonical events handed to the insertion queue."""

    site: int
    import_id: str
    source: ImportPlatform
    chunk: List[Dict[str, Any]]
    chunk_number: Optional[int] = None
    all_chunks_sent: bool
    total_chunks: Optional[int] = None

    @model_validator(mode="after")
    def check_terminal_message(self) -> "ChunkMessage":
        if self.all_chunks_sent and (self.chunk or self.total_chunks is None):
            raise ValueError("The final message carries no events and a total chunk count")
        return self


class CsvParseJob(BaseModel):
    """Payload of a queued CSV parse job."""

    site: int
    import_id: str
    source: ImportPlatform
    storage_location: str
    organization: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class ImportRequestFields(BaseModel):
    """Form fields accompanying an uploaded export file."""

    source: ImportPlatform
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def check_date_format(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        datetime.strptime(v, DATE_FORMAT)
        return v

    @model_validator(mode="after")
    def check_date_range(self) -> "ImportRequestFields":
        start = datetime.strptime(self.start_date, DATE_FORMAT).date() if self.start_date else None
        end = datetime.strptime(self.end_date, DATE_FORMAT).date() if self.end_date else None
        if start and end and start > end:
            raise ValueError("Start date must be before or equal to end date")
        if start and start > datetime.now(timezone.utc).date():
            raise ValueError("Start date cannot be in the future")
        return self


class ImportAcceptedResponse(BaseModel):
    """Response returned once an upload is queued for processing."""
    import_id: str
    status: ImportStatus
    message: str


class ImportJobResponse(BaseModel):
    """Import job status as polled by clients."""
    id: str
    site_id: int
    organization_id: str
    source_platform: ImportPlatform
    status: ImportStatus
    file_name: str
    error_message: Optional[str]
    imported_events: int
    skipped_events: int
    invalid_events: int
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ImportJobListResponse(BaseModel):
    """Schema for list of import jobs."""
    imports: List[ImportJobResponse]
    total: int
