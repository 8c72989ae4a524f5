# ==============================================================================
# Aggregation Rules - Pure Domain Logic
# ==============================================================================
"""
Statistics over raw session and event rows.

The Data Store normally computes the summary server-side (see the
get_analytics_summary function in schema/init.sql). The same rules are
implemented here for the in-memory store and for the dashboard's hourly
breakdown and funnel, so both paths agree on:
- what counts as a page view, a visitor and a bounce
- how referrers collapse into traffic sources
- ordering and limits of the top-N lists
"""

import math
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, tzinfo
from urllib.parse import urlparse

from sitepulse.core.models import (
    AggregationSummary,
    DeviceCount,
    EventType,
    FunnelStage,
    HourlyTraffic,
    PageCount,
    SourceCount,
)
from sitepulse.core.session_processor import parse_datetime

TOP_N = 10
DIRECT_SOURCE = "Direct"

# Derived funnel stages as fractions of total page views. These are estimates,
# not measurements.
FUNNEL_FRACTIONS = (
    ("Engagement", 0.6),
    ("Contact Forms", 0.15),
    ("Conversions", 0.08),
)


def traffic_source(referrer: str | None) -> str:
    """Collapse a referrer URL into a source label (host without www.)."""
    if not referrer:
        return DIRECT_SOURCE
    parsed = urlparse(referrer if "://" in referrer else f"//{referrer}")
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or DIRECT_SOURCE


def _in_window(value, start: datetime | None, end: datetime | None) -> bool:
    if value is None:
        return start is None and end is None
    moment = parse_datetime(value)
    if start is not None and moment < start:
        return False
    if end is not None and moment >= end:
        return False
    return True


def _ranked(counter: Counter, limit: int | None = TOP_N) -> list[tuple[str, int]]:
    ranked = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    return ranked[:limit] if limit is not None else ranked


def summarize(
    events: Iterable[dict],
    sessions: Iterable[dict],
    start: datetime | None = None,
    end: datetime | None = None,
) -> AggregationSummary:
    """
    Compute the aggregation summary from raw rows.

    Args:
        events: analytics_events rows
        sessions: analytics_sessions rows
        start: Inclusive lower bound on created_at / started_at
        end: Exclusive upper bound on created_at / started_at

    Returns:
        AggregationSummary with rates rounded to two decimals
    """
    events = [e for e in events if _in_window(e.get("created_at"), start, end)]
    sessions = [s for s in sessions if _in_window(s.get("started_at"), start, end)]

    page_views = [e for e in events if e.get("event_type") == EventType.PAGE_VIEW.value]
    visitors = {e["session_id"] for e in events if e.get("session_id")}

    durations = [s["duration_seconds"] for s in sessions if s.get("duration_seconds") is not None]
    bounce_flags = [s["is_bounce"] for s in sessions if s.get("is_bounce") is not None]

    avg_duration = round(sum(durations) / len(durations), 2) if durations else 0.0
    bounce_rate = (
        round(100.0 * sum(1 for flag in bounce_flags if flag) / len(bounce_flags), 2)
        if bounce_flags
        else 0.0
    )

    pages = Counter(e.get("page_url") or "/" for e in page_views)
    sources = Counter(traffic_source(s.get("referrer")) for s in sessions)
    devices = Counter(s.get("device_type") or "desktop" for s in sessions)

    return AggregationSummary(
        total_page_views=len(page_views),
        unique_visitors=len(visitors),
        total_sessions=len(sessions),
        avg_session_duration=avg_duration,
        bounce_rate=bounce_rate,
        top_pages=[PageCount(page=p, views=n) for p, n in _ranked(pages)],
        traffic_sources=[SourceCount(source=s, sessions=n) for s, n in _ranked(sources)],
        device_breakdown=[DeviceCount(device=d, sessions=n) for d, n in _ranked(devices, None)],
    )


def bucket_hourly(rows: Iterable[dict], tz: tzinfo | None = None) -> list[HourlyTraffic]:
    """
    Bucket page-view rows by local hour of created_at.

    Args:
        rows: Rows with created_at and session_id
        tz: Local timezone; None means the system local timezone

    Returns:
        24 HourlyTraffic entries, hour 0 through 23
    """
    views = [0] * 24
    visitors: list[set[str]] = [set() for _ in range(24)]
    for row in rows:
        hour = parse_datetime(row["created_at"]).astimezone(tz).hour
        views[hour] += 1
        if row.get("session_id"):
            visitors[hour].add(row["session_id"])
    return [
        HourlyTraffic(hour=hour, visitors=len(visitors[hour]), page_views=views[hour])
        for hour in range(24)
    ]


def build_conversion_funnel(total_page_views: int) -> list[FunnelStage]:
    """Page Views (measured) followed by the fixed-fraction estimated stages."""
    stages = [FunnelStage(stage="Page Views", users=total_page_views, approximate=False)]
    for stage, fraction in FUNNEL_FRACTIONS:
        stages.append(
            FunnelStage(
                stage=stage,
                users=math.floor(total_page_views * fraction),
                approximate=True,
            )
        )
    return stages
