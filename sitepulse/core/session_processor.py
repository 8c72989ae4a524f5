# ==============================================================================
# Session Processor - Pure Domain Logic
# ==============================================================================
"""
Pure session lifecycle rules with no external dependencies.

This module contains the domain logic for the analytics_sessions row:
- Session creation on the first page view
- Page count and exit page updates on later page views
- Duration and bounce computation at finalization

All methods work with plain dicts and timestamps - no database, cache, or
framework dependencies. The session lifecycle writer composes these with the
Data Store.
"""

import math
from datetime import datetime, timezone

from sitepulse.core.models import DeviceInfo, GeoData, SessionRecord


def to_datetime(timestamp: float) -> datetime:
    """Convert epoch seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def parse_datetime(value: datetime | str) -> datetime:
    """Accept a datetime or ISO-8601 string as stored by the Data Store."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SessionProcessor:
    """
    Pure session lifecycle logic.

    Session row structure (analytics_sessions):
        {
            "session_id": str,           # "session_<epochMillis>_<random9>"
            "started_at": datetime,
            "ended_at": datetime | None,
            "duration_seconds": int | None,
            "entry_page": str,
            "exit_page": str | None,
            "page_count": int,           # >= 1
            "referrer": str | None,
            "device_type": str,          # "desktop", "tablet", "mobile"
            "browser": str,
            "os": str,
            "country": str | None,
            "city": str | None,
            "is_bounce": bool | None,
        }
    """

    @staticmethod
    def create_session(
        session_id: str,
        page_url: str,
        timestamp: float,
        geo: GeoData,
        device: DeviceInfo,
        referrer: str | None = None,
    ) -> dict:
        """
        Build the row inserted on a session's first page view.

        Args:
            session_id: Client-generated session identifier
            page_url: Path of the first page view (the entry page)
            timestamp: Epoch seconds of the first page view
            geo: Resolved geolocation
            device: Environment fingerprint

        Returns:
            Session row with page_count 1 and no end fields
        """
        record = SessionRecord(
            session_id=session_id,
            started_at=to_datetime(timestamp),
            entry_page=page_url,
            page_count=1,
            referrer=referrer or None,
            device_type=device.device_type,
            browser=device.browser,
            os=device.os,
            country=geo.country,
            city=geo.city,
        )
        return record.to_db_record()

    @staticmethod
    def page_view_patch(previous_page_count: int, page_url: str) -> dict:
        """Patch applied on every page view after the first."""
        return {
            "page_count": max(previous_page_count, 0) + 1,
            "exit_page": page_url,
        }

    @staticmethod
    def is_bounce(page_count: int) -> bool:
        """A bounce is a session with exactly one page view."""
        return page_count == 1

    @classmethod
    def finalize_patch(cls, started_at: datetime | str, page_count: int, timestamp: float) -> dict:
        """
        Patch applied when the tab is hidden or unloaded.

        Args:
            started_at: Session start as stored
            page_count: Page views seen in the session
            timestamp: Epoch seconds of finalization

        Returns:
            Dict with ended_at, duration_seconds (whole seconds, never negative)
            and is_bounce
        """
        ended_at = to_datetime(timestamp)
        elapsed = (ended_at - parse_datetime(started_at)).total_seconds()
        return {
            "ended_at": ended_at,
            "duration_seconds": max(math.floor(round(elapsed, 3)), 0),
            "is_bounce": cls.is_bounce(page_count),
        }
