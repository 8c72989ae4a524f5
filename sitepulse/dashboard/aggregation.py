# ==============================================================================
# Aggregation Reader
# ==============================================================================
"""
Pulls the dashboard snapshot from the Data Store.

One pull combines:
- the server-side summary over the last summary_window_days
- today's page views bucketed by local hour
- sessions started within the realtime window
- today's summary (visitors, page views, duration, bounce rate)
- the estimated conversion funnel

Any failure yields None. The reader never substitutes zeros for data it could
not read, so consumers can tell "no data" from "zero traffic".
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta, tzinfo

from pydantic import ValidationError

from sitepulse.base.data_store import DataStore, StoreResponse
from sitepulse.core.aggregation import bucket_hourly, build_conversion_funnel
from sitepulse.core.errors import AggregationError
from sitepulse.core.models import (
    EVENTS_TABLE,
    SESSIONS_TABLE,
    AggregationSummary,
    DashboardSnapshot,
    EventType,
    TodayStats,
)
from sitepulse.core.session_processor import to_datetime
from sitepulse.utils.config import get_settings

logger = logging.getLogger(__name__)


def _unwrap(response: StoreResponse, what: str):
    if not response.ok:
        raise AggregationError(f"{what}: {response.error}")
    return response.data


class AggregationReader:
    """
    Reads dashboard snapshots.

    Args:
        store: Data Store to read from
        tz: Timezone defining "today" and the hour buckets. None means the
            system local timezone.
        clock: Epoch-seconds clock
        realtime_window_minutes: If None, uses settings
        summary_window_days: If None, uses settings
    """

    def __init__(
        self,
        store: DataStore,
        tz: tzinfo | None = None,
        clock: Callable[[], float] = time.time,
        realtime_window_minutes: int | None = None,
        summary_window_days: int | None = None,
    ):
        settings = get_settings().dashboard
        self._store = store
        self._tz = tz
        self._clock = clock
        self.realtime_window = timedelta(
            minutes=realtime_window_minutes
            if realtime_window_minutes is not None
            else settings.realtime_window_minutes
        )
        self.summary_window = timedelta(
            days=summary_window_days
            if summary_window_days is not None
            else settings.summary_window_days
        )
        self.snapshot: DashboardSnapshot | None = None
        self.last_error: str | None = None

    @property
    def store(self) -> DataStore:
        return self._store

    def _now(self) -> datetime:
        return to_datetime(self._clock()).astimezone(self._tz)

    async def fetch_summary(self) -> DashboardSnapshot | None:
        """
        Pull a fresh snapshot.

        Returns:
            The snapshot, or None when any part of the pull failed
        """
        try:
            snapshot = await self._pull()
        except AggregationError as e:
            logger.error("Error fetching analytics: %s", e)
            self.last_error = str(e)
            self.snapshot = None
            return None
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.error("Malformed analytics data: %s", e)
            self.last_error = f"malformed analytics data: {e}"
            self.snapshot = None
            return None
        except Exception as e:
            logger.error("Analytics fetch error: %s", e)
            self.last_error = str(e) or type(e).__name__
            self.snapshot = None
            return None

        self.snapshot = snapshot
        self.last_error = None
        return snapshot

    async def _pull(self) -> DashboardSnapshot:
        now = self._now()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)

        summary_resp, today_resp, hourly_resp, recent_resp = await asyncio.gather(
            self._store.fetch_summary(now - self.summary_window, None),
            self._store.fetch_summary(day_start, day_end),
            self._store.select(
                EVENTS_TABLE,
                columns=["created_at", "session_id"],
                eq={"event_type": EventType.PAGE_VIEW.value},
                gte={"created_at": day_start},
                lt={"created_at": day_end},
            ),
            self._store.select(
                SESSIONS_TABLE,
                columns=["session_id"],
                gte={"started_at": now - self.realtime_window},
            ),
        )

        summary = AggregationSummary.model_validate(_unwrap(summary_resp, "summary"))
        today = AggregationSummary.model_validate(_unwrap(today_resp, "today's summary"))
        hourly_rows = _unwrap(hourly_resp, "hourly traffic")
        recent_rows = _unwrap(recent_resp, "realtime visitors")

        return DashboardSnapshot(
            summary=summary,
            hourly_traffic=bucket_hourly(hourly_rows, self._tz),
            conversion_funnel=build_conversion_funnel(summary.total_page_views),
            realtime_visitors=len({row["session_id"] for row in recent_rows}),
            today_stats=TodayStats(
                visitors=today.unique_visitors,
                page_views=today.total_page_views,
                avg_duration=today.avg_session_duration,
                bounce_rate=today.bounce_rate,
            ),
            fetched_at=now,
        )
