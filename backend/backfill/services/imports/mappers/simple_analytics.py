"""
Mapper for SimpleAnalytics data point exports.
"""
from datetime import datetime, timezone
from typing import Any, Annotated, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backfill.models.database.import_jobs import ImportPlatform
from backfill.models.schemas.imports import TIMESTAMP_FORMAT
from backfill.services.imports.mappers.base import SourceMapper, register_mapper
from backfill.services.imports.mappers.channels import get_channel
from backfill.services.imports.mappers.enrichment import (
    clear_self_referrer,
    get_all_url_params,
    get_device_type,
    parse_user_agent,
)
from backfill.services.imports.mappers.patterns import COUNTRY_CODE, DIGITS, EMPTY, ISO_DATETIME, UUID


def iso_to_timestamp(value: str) -> Optional[str]:
    """Convert an ISO-8601 instant to the canonical UTC timestamp format."""
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


class SimpleAnalyticsRow(BaseModel):
    """One data point of a SimpleAnalytics CSV export."""

    model_config = ConfigDict(extra="ignore")

    added_iso: Annotated[str, Field(pattern=ISO_DATETIME)]
    country_code: Annotated[str, Field(pattern=f"{COUNTRY_CODE}|{EMPTY}")]
    datapoint: Annotated[str, Field(min_length=1, max_length=256)]
    document_referrer: Annotated[str, Field(max_length=253 + 2048)]
    hostname: Annotated[str, Field(max_length=253)]
    lang_language: Annotated[str, Field(max_length=35)]
    lang_region: Annotated[str, Field(max_length=35)]
    path: Annotated[str, Field(max_length=2048)]
    query: Annotated[str, Field(max_length=2048)]
    screen_height: Annotated[str, Field(pattern=DIGITS)]
    screen_width: Annotated[str, Field(pattern=DIGITS)]
    session_id: Annotated[str, Field(pattern=UUID)]
    user_agent: Annotated[str, Field(max_length=1024)]
    uuid: Annotated[str, Field(pattern=UUID)]

    @field_validator("query", mode="after")
    @classmethod
    def prefix_query(cls, v: str) -> str:
        return f"?{v}" if v else ""


@register_mapper
class SimpleAnalyticsImportMapper(SourceMapper):
    """Maps SimpleAnalytics exports; any datapoint other than ``pageview`` is a custom event."""

    platform = ImportPlatform.SIMPLE_ANALYTICS
    row_model = SimpleAnalyticsRow
    timestamp_field = "added_iso"

    def extract_timestamp(self, raw_row: Mapping[str, Any]) -> Optional[str]:
        value = raw_row.get(self.timestamp_field)
        if not isinstance(value, str) or not value:
            return None
        return iso_to_timestamp(value)

    def to_canonical(self, row: SimpleAnalyticsRow, site_id: int, import_id: str) -> Dict[str, Any]:
        timestamp = iso_to_timestamp(row.added_iso)
        if timestamp is None:
            raise ValueError(f"Unparseable timestamp {row.added_iso!r}")

        ua = parse_user_agent(row.user_agent)
        screen_width = int(row.screen_width)
        screen_height = int(row.screen_height)
        is_pageview = row.datapoint == "pageview"

        if row.lang_region:
            language = f"{row.lang_language}-{row.lang_region.upper()}"
        else:
            language = row.lang_language

        return {
            "site_id": site_id,
            "timestamp": timestamp,
            "session_id": row.session_id,
            "user_id": row.uuid,
            "hostname": row.hostname,
            "pathname": row.path,
            "querystring": row.query,
            "url_parameters": get_all_url_params(row.query),
            "page_title": "",
            "referrer": clear_self_referrer(row.document_referrer, row.hostname),
            "channel": get_channel(row.document_referrer, row.query, row.hostname),
            "browser": ua.browser,
            "browser_version": ua.browser_version,
            "operating_system": ua.operating_system,
            "operating_system_version": ua.operating_system_version,
            "language": language,
            "country": row.country_code,
            "region": "",
            "city": "",
            "screen_width": screen_width,
            "screen_height": screen_height,
            "device_type": get_device_type(screen_width, screen_height, ua.operating_system),
            "type": "pageview" if is_pageview else "custom_event",
            "event_name": "" if is_pageview else row.datapoint,
            "props": {},
            "import_id": import_id,
        }
