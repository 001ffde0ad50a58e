"""
Mapper for Umami event exports.
"""
from datetime import datetime
from typing import Any, Annotated, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backfill.models.database.import_jobs import ImportPlatform
from backfill.models.schemas.imports import TIMESTAMP_FORMAT
from backfill.services.imports.mappers.base import SourceMapper, register_mapper
from backfill.services.imports.mappers.channels import get_channel
from backfill.services.imports.mappers.enrichment import (
    clear_self_referrer,
    get_all_url_params,
    strip_www,
)
from backfill.services.imports.mappers.patterns import (
    COUNTRY_CODE,
    CREATED_AT,
    EMPTY,
    REGION_CODE,
    SCREEN_SIZE,
    UUID,
)

BROWSER_NAMES = {
    "chrome": "Chrome",
    "opera": "Opera",
    "crios": "Mobile Chrome",
    "firefox": "Firefox",
    "facebook": "Facebook",
    "safari": "Safari",
    "ios": "Mobile Safari",
    "ios-webview": "Mobile Safari",
    "edge-chromium": "Edge",
    "samsung": "Samsung Internet",
    "yandexbrowser": "Yandex",
    "edge-ios": "Edge",
    "chromium-webview": "Chrome WebView",
    "fxios": "Mobile Firefox",
    "edge": "Edge",
}

OS_NAMES = {
    "windows 10": "Windows",
    "windows 7": "Windows",
    "windows server 2003": "Windows",
    "mac os": "macOS",
    "ios": "iOS",
    "android os": "Android",
    "linux": "Linux",
    "chrome os": "Chrome OS",
}

OS_VERSIONS = {
    "windows 10": "10",
    "windows 7": "7",
}

DEVICE_NAMES = {
    "laptop": "Desktop",
    "desktop": "Desktop",
    "mobile": "Mobile",
    "tablet": "Mobile",
}

PAGEVIEW_EVENT_TYPE = "1"


class UmamiRow(BaseModel):
    """One row of an Umami ``website_event`` export."""

    model_config = ConfigDict(extra="ignore")

    session_id: Annotated[str, Field(pattern=UUID)]
    hostname: Annotated[str, Field(max_length=253)]
    browser: Annotated[str, Field(max_length=30)]
    os: Annotated[str, Field(max_length=25)]
    device: Annotated[str, Field(max_length=20)]
    screen: Annotated[str, Field(pattern=f"{SCREEN_SIZE}|{EMPTY}")]
    language: Annotated[str, Field(max_length=35)]
    country: Annotated[str, Field(pattern=f"{COUNTRY_CODE}|{EMPTY}")]
    region: Annotated[str, Field(pattern=f"{REGION_CODE}|{EMPTY}")]
    city: Annotated[str, Field(max_length=60)]
    url_path: Annotated[str, Field(max_length=2048)]
    url_query: Annotated[str, Field(max_length=2048)]
    referrer_path: Annotated[str, Field(max_length=2048)]
    referrer_domain: Annotated[str, Field(max_length=253)]
    page_title: Annotated[str, Field(max_length=512)]
    event_type: Literal["1", "2"]
    event_name: Annotated[str, Field(max_length=256)]
    distinct_id: Annotated[str, Field(max_length=64)]
    created_at: Annotated[str, Field(pattern=CREATED_AT)]

    @field_validator("url_query", mode="after")
    @classmethod
    def prefix_query(cls, v: str) -> str:
        return f"?{v}" if v else ""

    @field_validator("referrer_domain", mode="after")
    @classmethod
    def referrer_url(cls, v: str) -> str:
        return f"https://{v}" if v else ""


@register_mapper
class UmamiImportMapper(SourceMapper):
    """Maps Umami exports; ``event_type`` 1 is a pageview, 2 a custom event."""

    platform = ImportPlatform.UMAMI
    row_model = UmamiRow
    timestamp_field = "created_at"

    def extract_timestamp(self, raw_row: Mapping[str, Any]) -> Optional[str]:
        value = raw_row.get(self.timestamp_field)
        if not isinstance(value, str) or not value:
            return None
        try:
            datetime.strptime(value, TIMESTAMP_FORMAT)
        except ValueError:
            return None
        return value

    def to_canonical(self, row: UmamiRow, site_id: int, import_id: str) -> Dict[str, Any]:
        referrer = row.referrer_domain + row.referrer_path
        screen_width, screen_height = row.screen.split("x") if row.screen else ("0", "0")
        os_key = row.os.lower()
        is_pageview = row.event_type == PAGEVIEW_EVENT_TYPE

        return {
            "site_id": site_id,
            "timestamp": row.created_at,
            "session_id": row.session_id,
            "user_id": row.distinct_id,
            "hostname": row.hostname,
            "pathname": row.url_path,
            "querystring": row.url_query,
            "url_parameters": get_all_url_params(row.url_query),
            "page_title": row.page_title,
            "referrer": clear_self_referrer(referrer, strip_www(row.hostname)),
            "channel": get_channel(referrer, row.url_query, row.hostname),
            "browser": BROWSER_NAMES.get(row.browser.lower(), row.browser),
            "browser_version": "",
            "operating_system": OS_NAMES.get(os_key, row.os),
            "operating_system_version": OS_VERSIONS.get(os_key, ""),
            "language": row.language,
            "country": row.country,
            "region": row.region,
            "city": row.city,
            "screen_width": int(screen_width),
            "screen_height": int(screen_height),
            "device_type": DEVICE_NAMES.get(row.device.lower(), row.device),
            "type": "pageview" if is_pageview else "custom_event",
            "event_name": "" if is_pageview else row.event_name,
            "props": {},
            "import_id": import_id,
        }
