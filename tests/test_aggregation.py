# ==============================================================================
# Tests for Aggregation
# ==============================================================================
"""
Tests for the pure summary rules and the dashboard AggregationReader.

The reader must report a failed pull as None with last_error set, never as a
zero-filled snapshot.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import START_TIME
from sitepulse.core.aggregation import (
    DIRECT_SOURCE,
    bucket_hourly,
    build_conversion_funnel,
    summarize,
    traffic_source,
)
from sitepulse.core.models import EVENTS_TABLE, SESSIONS_TABLE
from sitepulse.core.session_processor import to_datetime
from sitepulse.dashboard.aggregation import AggregationReader
from sitepulse.infrastructure.repositories.memory import InMemoryDataStore


def _event(session_id: str, page: str, at: float, event_type: str = "page_view") -> dict:
    return {
        "event_type": event_type,
        "event_name": "Page View" if event_type == "page_view" else "Other",
        "page_url": page,
        "session_id": session_id,
        "created_at": to_datetime(at),
    }


def _session(session_id: str, at: float, **fields) -> dict:
    row = {
        "session_id": session_id,
        "started_at": to_datetime(at),
        "entry_page": "/home",
        "page_count": 1,
        "device_type": "desktop",
        "referrer": None,
        "duration_seconds": None,
        "is_bounce": None,
    }
    row.update(fields)
    return row


def _seed(store, events: list[dict], sessions: list[dict]) -> None:
    async def insert_all():
        for row in events:
            await store.insert(EVENTS_TABLE, row)
        for row in sessions:
            await store.insert(SESSIONS_TABLE, row)

    asyncio.run(insert_all())


def _make_reader(store, clock) -> AggregationReader:
    return AggregationReader(
        store,
        tz=timezone.utc,
        clock=clock,
        realtime_window_minutes=5,
        summary_window_days=30,
    )


# ==============================================================================
# traffic_source
# ==============================================================================


class TestTrafficSource:
    @pytest.mark.parametrize(
        "referrer,expected",
        [
            (None, DIRECT_SOURCE),
            ("", DIRECT_SOURCE),
            ("https://www.google.com/search?q=x", "google.com"),
            ("http://News.Ycombinator.com/item?id=1", "news.ycombinator.com"),
            ("duckduckgo.com/?q=x", "duckduckgo.com"),
        ],
    )
    def test_collapses_referrers(self, referrer, expected):
        assert traffic_source(referrer) == expected


# ==============================================================================
# summarize
# ==============================================================================


class TestSummarize:
    @pytest.fixture()
    def rows(self):
        events = [
            _event("s1", "/home", START_TIME),
            _event("s2", "/home", START_TIME + 1),
            _event("s2", "/services", START_TIME + 2),
            _event("s3", "/home", START_TIME + 3, event_type="click"),
        ]
        sessions = [
            _session("s1", START_TIME, duration_seconds=10, is_bounce=True),
            _session(
                "s2",
                START_TIME + 1,
                duration_seconds=20,
                is_bounce=False,
                referrer="https://www.google.com/",
                device_type="mobile",
            ),
            _session("s3", START_TIME + 3, referrer="news.ycombinator.com/item"),
        ]
        return events, sessions

    def test_counts(self, rows):
        summary = summarize(*rows)
        assert summary.total_page_views == 3
        assert summary.unique_visitors == 3
        assert summary.total_sessions == 3

    def test_open_sessions_excluded_from_duration_and_bounce(self, rows):
        summary = summarize(*rows)
        assert summary.avg_session_duration == 15.0
        assert summary.bounce_rate == 50.0

    def test_top_pages_ranked(self, rows):
        summary = summarize(*rows)
        assert [(p.page, p.views) for p in summary.top_pages] == [("/home", 2), ("/services", 1)]

    def test_sources_and_devices(self, rows):
        summary = summarize(*rows)
        assert [s.source for s in summary.traffic_sources] == [
            "Direct",
            "google.com",
            "news.ycombinator.com",
        ]
        assert [(d.device, d.sessions) for d in summary.device_breakdown] == [
            ("desktop", 2),
            ("mobile", 1),
        ]

    def test_window_bounds(self, rows):
        summary = summarize(*rows, start=to_datetime(START_TIME + 1), end=to_datetime(START_TIME + 3))
        assert summary.total_page_views == 2
        assert summary.total_sessions == 1

    def test_empty(self):
        summary = summarize([], [])
        assert summary.total_page_views == 0
        assert summary.bounce_rate == 0.0
        assert summary.top_pages == []

    def test_top_pages_limited_to_ten(self):
        events = [_event("s1", f"/p{i:02d}", START_TIME) for i in range(15)]
        assert len(summarize(events, []).top_pages) == 10


# ==============================================================================
# Hourly buckets and funnel
# ==============================================================================


class TestHourlyAndFunnel:
    def test_bucket_hourly(self):
        rows = [
            {"created_at": datetime(2023, 11, 14, 9, 5, tzinfo=timezone.utc), "session_id": "a"},
            {"created_at": datetime(2023, 11, 14, 9, 50, tzinfo=timezone.utc), "session_id": "a"},
            {"created_at": "2023-11-14T09:59:59+00:00", "session_id": "b"},
            {"created_at": datetime(2023, 11, 14, 17, 0, tzinfo=timezone.utc), "session_id": "c"},
        ]

        buckets = bucket_hourly(rows, timezone.utc)

        assert len(buckets) == 24
        assert (buckets[9].page_views, buckets[9].visitors) == (3, 2)
        assert (buckets[17].page_views, buckets[17].visitors) == (1, 1)
        assert sum(b.page_views for b in buckets) == 4

    def test_bucket_uses_local_timezone(self):
        rows = [{"created_at": datetime(2023, 11, 14, 23, 30, tzinfo=timezone.utc), "session_id": "a"}]
        buckets = bucket_hourly(rows, timezone(timedelta(hours=2)))
        assert buckets[1].page_views == 1

    def test_conversion_funnel(self):
        funnel = build_conversion_funnel(1000)
        assert [(s.stage, s.users, s.approximate) for s in funnel] == [
            ("Page Views", 1000, False),
            ("Engagement", 600, True),
            ("Contact Forms", 150, True),
            ("Conversions", 80, True),
        ]

    def test_funnel_rounds_down(self):
        assert [s.users for s in build_conversion_funnel(7)] == [7, 4, 1, 0]


# ==============================================================================
# AggregationReader
# ==============================================================================


class TestAggregationReader:
    @pytest.fixture()
    def seeded(self, store):
        _seed(
            store,
            events=[
                _event("s1", "/home", START_TIME - 60),
                _event("s2", "/services", START_TIME - 7200),
                _event("s2", "/pricing", START_TIME - 7100),
                _event("s3", "/home", START_TIME - 86400),
            ],
            sessions=[
                _session("s1", START_TIME - 60),
                _session("s2", START_TIME - 7200, duration_seconds=100, is_bounce=False),
                _session("s3", START_TIME - 86400, duration_seconds=4, is_bounce=True),
            ],
        )
        return store

    def test_snapshot(self, seeded, clock):
        snapshot = asyncio.run(_make_reader(seeded, clock).fetch_summary())

        assert snapshot is not None
        assert snapshot.summary.total_page_views == 4
        assert snapshot.summary.total_sessions == 3
        assert snapshot.realtime_visitors == 1
        assert snapshot.conversion_funnel[0].users == 4
        assert snapshot.fetched_at == to_datetime(START_TIME)

    def test_today_stats_are_day_bounded(self, seeded, clock):
        snapshot = asyncio.run(_make_reader(seeded, clock).fetch_summary())

        today = snapshot.today_stats
        assert today.page_views == 3
        assert today.visitors == 2
        assert today.avg_duration == 100.0
        assert today.bounce_rate == 0.0

    def test_hourly_traffic_covers_today(self, seeded, clock):
        snapshot = asyncio.run(_make_reader(seeded, clock).fetch_summary())

        by_hour = {h.hour: h for h in snapshot.hourly_traffic if h.page_views}
        assert set(by_hour) == {20, 22}
        assert (by_hour[20].page_views, by_hour[20].visitors) == (2, 1)

    def test_summary_window_excludes_old_rows(self, store, clock):
        _seed(store, [_event("old", "/home", START_TIME - 40 * 86400)], [])
        snapshot = asyncio.run(_make_reader(store, clock).fetch_summary())
        assert snapshot.summary.total_page_views == 0

    def test_failed_read_returns_none(self, seeded, clock):
        reader = _make_reader(seeded, clock)
        asyncio.run(reader.fetch_summary())
        assert reader.snapshot is not None

        seeded.fail_reads = "connection refused"
        snapshot = asyncio.run(reader.fetch_summary())

        assert snapshot is None
        assert reader.snapshot is None
        assert "connection refused" in reader.last_error

    def test_recovers_after_failure(self, seeded, clock):
        reader = _make_reader(seeded, clock)
        seeded.fail_reads = "timeout"
        asyncio.run(reader.fetch_summary())

        seeded.fail_reads = None
        assert asyncio.run(reader.fetch_summary()) is not None
        assert reader.last_error is None

    def test_malformed_summary_returns_none(self, clock):
        class _GarbageStore(InMemoryDataStore):
            async def fetch_summary(self, start=None, end=None):
                response = await super().fetch_summary(start, end)
                response.data["total_page_views"] = "lots"
                return response

        reader = _make_reader(_GarbageStore(clock=clock), clock)

        assert asyncio.run(reader.fetch_summary()) is None
        assert reader.last_error.startswith("malformed analytics data")

    def test_zero_traffic_is_a_snapshot(self, store, clock):
        snapshot = asyncio.run(_make_reader(store, clock).fetch_summary())
        assert snapshot is not None
        assert snapshot.summary.total_page_views == 0
        assert snapshot.realtime_visitors == 0
