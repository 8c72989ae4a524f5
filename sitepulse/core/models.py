# ==============================================================================
# Telemetry Domain Models
# ==============================================================================
"""
Pydantic models for telemetry events, sessions and dashboard summaries.

These models are used for:
- Composing the canonical event and session rows written to the Data Store
- Validating rows and summaries read back from the Data Store
- Type safety throughout the application

This module is part of the core domain layer and has no external dependencies
beyond Pydantic.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN = "Unknown"

EVENTS_TABLE = "analytics_events"
SESSIONS_TABLE = "analytics_sessions"


class EventType(str, Enum):
    """Kinds of tracked actions."""

    PAGE_VIEW = "page_view"
    CLICK = "click"
    SCROLL = "scroll"
    ENGAGEMENT = "engagement"
    FORM = "form"
    CUSTOM = "custom"


class DeviceType(str, Enum):
    """Device classes derived from the user agent."""

    DESKTOP = "desktop"
    TABLET = "tablet"
    MOBILE = "mobile"


class GeoData(BaseModel):
    """Geolocation resolved from the caller IP."""

    model_config = ConfigDict(frozen=True)

    country: str = UNKNOWN
    city: str = UNKNOWN
    region: str = UNKNOWN
    timezone: str = UNKNOWN
    isp: str = UNKNOWN

    @classmethod
    def unknown(cls) -> "GeoData":
        """The fixed fallback used whenever the lookup fails."""
        return cls()

    @property
    def is_unknown(self) -> bool:
        return self == GeoData.unknown()


class DeviceInfo(BaseModel):
    """Environment fingerprint of the browsing context."""

    model_config = ConfigDict(frozen=True)

    device_type: DeviceType = DeviceType.DESKTOP
    browser: str = UNKNOWN
    os: str = UNKNOWN
    screen_resolution: str = "0x0"
    viewport_size: str = "0x0"
    color_depth: int = 24
    language: str = "en-US"
    cookie_enabled: bool = True
    online_status: bool = True


class MousePosition(BaseModel):
    x: int = 0
    y: int = 0


class TrackingEvent(BaseModel):
    """
    An action handed to the event emitter.

    Attributes:
        event_type: Kind of action
        event_name: Human readable label (e.g. "Scroll 50%")
        page_url: Path the action happened on; defaults to the current path
        properties: Open key/value bag stored with the event
        element_id, element_type, element_text: DOM element metadata
        scroll_depth: Scroll depth in percent
        time_on_page: Seconds since the page was shown
        mouse_position: Pointer position for clicks
    """

    event_type: EventType
    event_name: str
    page_url: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    element_id: str | None = None
    element_type: str | None = None
    element_text: str | None = None
    scroll_depth: int | None = None
    time_on_page: int | None = None
    mouse_position: MousePosition | None = None

    def merged_properties(self) -> dict[str, Any]:
        """Properties with the element, scroll, time and mouse fields folded in."""
        merged = dict(self.properties)
        for field in ("element_id", "element_type", "element_text", "scroll_depth", "time_on_page"):
            value = getattr(self, field)
            if value is not None:
                merged.setdefault(field, value)
        if self.mouse_position is not None:
            merged.setdefault("mouse_position", self.mouse_position.model_dump())
        return merged


class EventRecord(BaseModel):
    """Row of the analytics_events table. Append-only."""

    event_type: EventType
    event_name: str
    page_url: str
    referrer: str | None = None
    session_id: str
    user_agent: str
    country: str | None = None
    city: str | None = None
    device_type: DeviceType
    browser: str
    os: str
    properties: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    def to_db_record(self) -> dict:
        """Convert event to database record format."""
        record = self.model_dump()
        record["event_type"] = self.event_type.value
        record["device_type"] = self.device_type.value
        return record


class SessionRecord(BaseModel):
    """Row of the analytics_sessions table. One row per session_id."""

    session_id: str
    started_at: datetime
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    entry_page: str
    exit_page: str | None = None
    page_count: int = Field(default=1, ge=1)
    referrer: str | None = None
    device_type: DeviceType = DeviceType.DESKTOP
    browser: str = UNKNOWN
    os: str = UNKNOWN
    country: str | None = None
    city: str | None = None
    is_bounce: bool | None = None

    def to_db_record(self) -> dict:
        """Convert session to database record format."""
        record = self.model_dump()
        record["device_type"] = self.device_type.value
        return record


class PageCount(BaseModel):
    page: str
    views: int


class SourceCount(BaseModel):
    source: str
    sessions: int


class DeviceCount(BaseModel):
    device: str
    sessions: int


class AggregationSummary(BaseModel):
    """
    Precomputed statistics over the raw session and event rows.

    Refreshed wholesale on every pull and never mutated locally.
    """

    model_config = ConfigDict(frozen=True)

    total_page_views: int = 0
    unique_visitors: int = 0
    total_sessions: int = 0
    avg_session_duration: float = 0.0
    bounce_rate: float = 0.0
    top_pages: list[PageCount] = Field(default_factory=list)
    traffic_sources: list[SourceCount] = Field(default_factory=list)
    device_breakdown: list[DeviceCount] = Field(default_factory=list)


class HourlyTraffic(BaseModel):
    hour: int = Field(ge=0, le=23)
    visitors: int = 0
    page_views: int = 0


class FunnelStage(BaseModel):
    """
    One stage of the conversion funnel.

    Stages flagged approximate are fixed fractions of page views, not measured
    counts, and must be presented as estimates.
    """

    stage: str
    users: int
    approximate: bool = False


class TodayStats(BaseModel):
    visitors: int = 0
    page_views: int = 0
    avg_duration: float = 0.0
    bounce_rate: float = 0.0


class DashboardSnapshot(BaseModel):
    """Everything the dashboard renders after one pull."""

    model_config = ConfigDict(frozen=True)

    summary: AggregationSummary
    hourly_traffic: list[HourlyTraffic]
    conversion_funnel: list[FunnelStage]
    realtime_visitors: int
    today_stats: TodayStats
    fetched_at: datetime
