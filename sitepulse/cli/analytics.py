# ==============================================================================
# Analytics Command
# ==============================================================================
"""
Analytics command for the sitepulse CLI.

Pulls one dashboard snapshot from PostgreSQL and prints it. Funnel stages
derived from page views are estimates and are marked with "~".
"""

import asyncio
import json
from typing import Annotated

import typer

from sitepulse.cli.shared import (
    BOX_WIDTH,
    B,
    C,
    I,
    _box_bottom,
    _box_header,
    _box_line,
    _empty_line,
    _section_header,
    build_postgres_store,
)
from sitepulse.core.models import DashboardSnapshot
from sitepulse.dashboard.aggregation import AggregationReader

NO_DATA_MESSAGE = "No data available or database unreachable"


# ==============================================================================
# Helper Functions
# ==============================================================================


async def _pull_snapshot() -> tuple[DashboardSnapshot | None, str | None]:
    store = build_postgres_store(with_channel=False)
    reader = AggregationReader(store)
    try:
        snapshot = await reader.fetch_summary()
    finally:
        await store.close()
    return snapshot, reader.last_error


def fetch_snapshot() -> tuple[DashboardSnapshot | None, str | None]:
    """Pull one snapshot. Returns the snapshot (or None) and the error text."""
    return asyncio.run(_pull_snapshot())


def _duration(seconds: float) -> str:
    minutes, secs = divmod(int(round(seconds)), 60)
    return f"{minutes}m {secs:02d}s" if minutes else f"{secs}s"


def render_snapshot(snapshot: DashboardSnapshot, width: int = BOX_WIDTH) -> list[str]:
    """Format a snapshot as boxed lines."""
    s = snapshot.summary
    t = snapshot.today_stats
    lines = [_box_header("SITEPULSE ANALYTICS", width), _empty_line(width)]

    header = f"  {'':26}{'Period':>12}  {'Today':>10}"
    lines.append(_box_line(header, width))
    lines.append(_box_line("  " + B.H * (width - 6), width))
    lines.append(_box_line(f"  {'Page Views':<26}{s.total_page_views:>12,}  {t.page_views:>10,}", width))
    lines.append(_box_line(f"  {'Unique Visitors':<26}{s.unique_visitors:>12,}  {t.visitors:>10,}", width))
    lines.append(_box_line(f"  {'Sessions':<26}{s.total_sessions:>12,}  {'':>10}", width))
    lines.append(
        _box_line(
            f"  {'Avg Session':<26}{_duration(s.avg_session_duration):>12}  "
            f"{_duration(t.avg_duration):>10}",
            width,
        )
    )
    lines.append(
        _box_line(f"  {'Bounce Rate':<26}{s.bounce_rate:>11.1f}%  {t.bounce_rate:>9.1f}%", width)
    )
    lines.append(
        _box_line(
            f"  {C.BRIGHT_GREEN}{I.CIRCLE}{C.RESET} {'Active now':<24}{snapshot.realtime_visitors:>12,}",
            width,
        )
    )
    lines.append(_empty_line(width))

    if s.top_pages:
        lines.append(_section_header("Top Pages", I.ARROW, width))
        for entry in s.top_pages:
            lines.append(_box_line(f"  {entry.page[:38]:<40}{entry.views:>12,}", width))
    if s.traffic_sources:
        lines.append(_section_header("Traffic Sources", I.ARROW, width))
        for entry in s.traffic_sources:
            lines.append(_box_line(f"  {entry.source[:38]:<40}{entry.sessions:>12,}", width))
    if s.device_breakdown:
        lines.append(_section_header("Devices", I.ARROW, width))
        for entry in s.device_breakdown:
            lines.append(_box_line(f"  {entry.device:<40}{entry.sessions:>12,}", width))

    busy_hours = [h for h in snapshot.hourly_traffic if h.page_views]
    if busy_hours:
        lines.append(_section_header("Today by Hour", I.ARROW, width))
        for h in busy_hours:
            lines.append(
                _box_line(
                    f"  {h.hour:02d}:00{'':<21}{h.page_views:>12,} views  {h.visitors:>6,} visitors",
                    width,
                )
            )

    lines.append(_section_header("Conversion Funnel", I.ARROW, width))
    for stage in snapshot.conversion_funnel:
        marker = "~" if stage.approximate else " "
        lines.append(_box_line(f"  {stage.stage:<26}{marker}{stage.users:>11,}", width))
    lines.append(
        _box_line(f"  {C.DIM}~ estimated as a fixed share of page views{C.RESET}", width)
    )
    lines.append(_empty_line(width))
    lines.append(_box_bottom(width))
    return lines


# ==============================================================================
# Commands
# ==============================================================================


def show_analytics(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON for scripting")
    ] = False,
) -> None:
    """Show the analytics dashboard snapshot.

    Displays summary totals, today's figures, active visitors, top pages,
    traffic sources, devices, today's hourly traffic and the estimated
    conversion funnel.

    Examples:
        sitepulse analytics          # Formatted output
        sitepulse analytics --json   # JSON output for scripting
    """
    snapshot, error = fetch_snapshot()

    if snapshot is None:
        if json_output:
            print(json.dumps({"error": NO_DATA_MESSAGE, "detail": error}))
        else:
            print(f"\n{C.BRIGHT_RED}{I.CROSS} {NO_DATA_MESSAGE}{C.RESET}")
            if error:
                print(f"  {C.DIM}{error}{C.RESET}")
            print()
        raise typer.Exit(1)

    if json_output:
        print(json.dumps(snapshot.model_dump(mode="json"), indent=2))
        return

    print()
    for line in render_snapshot(snapshot):
        print(line)
    print()
