# ==============================================================================
# Watch Command
# ==============================================================================
"""
Live dashboard for the sitepulse CLI.

Runs the realtime refresh controller against PostgreSQL, with insert
notifications from Valkey when it is reachable, and prints a table after
every refresh until interrupted.
"""

import asyncio
from datetime import datetime
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from sitepulse.cli.analytics import NO_DATA_MESSAGE
from sitepulse.cli.shared import C, I, build_postgres_store
from sitepulse.core.models import DashboardSnapshot
from sitepulse.dashboard.aggregation import AggregationReader
from sitepulse.dashboard.refresh import RealtimeRefreshController

# Recent events shown under the table
FEED_LINES = 5


# ==============================================================================
# Helper Functions
# ==============================================================================


def build_snapshot_table(snapshot: DashboardSnapshot) -> Table:
    """Summary, today and realtime figures as a rich table."""
    s = snapshot.summary
    t = snapshot.today_stats
    table = Table(
        title=f"sitepulse {I.PULSE} {snapshot.fetched_at.strftime('%H:%M:%S')}",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Metric", justify="left")
    table.add_column("Period", justify="right")
    table.add_column("Today", justify="right")

    table.add_row("Page views", f"{s.total_page_views:,}", f"{t.page_views:,}")
    table.add_row("Unique visitors", f"{s.unique_visitors:,}", f"{t.visitors:,}")
    table.add_row("Sessions", f"{s.total_sessions:,}", "")
    table.add_row(
        "Avg session (s)", f"{s.avg_session_duration:.1f}", f"{t.avg_duration:.1f}"
    )
    table.add_row("Bounce rate", f"{s.bounce_rate:.1f}%", f"{t.bounce_rate:.1f}%")
    table.add_row("Active now", "", f"{snapshot.realtime_visitors:,}")
    for stage in snapshot.conversion_funnel[1:]:
        table.add_row(f"~ {stage.stage}", f"{stage.users:,}", "")
    return table


def _print_update(
    console: Console,
    controller: RealtimeRefreshController,
    snapshot: DashboardSnapshot | None,
) -> None:
    if snapshot is None:
        error = controller.reader.last_error
        print(f"{C.BRIGHT_RED}{I.CROSS} {NO_DATA_MESSAGE}{C.RESET}")
        if error:
            print(f"  {C.DIM}{error}{C.RESET}")
        return

    console.print(build_snapshot_table(snapshot))
    channel = (
        f"{C.BRIGHT_GREEN}{I.CIRCLE} live{C.RESET}"
        if controller.connected
        else f"{C.BRIGHT_YELLOW}{I.WARN} polling every {controller.poll_interval:g}s{C.RESET}"
    )
    print(f"  {C.BOLD}Updates:{C.RESET}  {channel}")
    for row in controller.recent_activity[:FEED_LINES]:
        created = row.get("created_at")
        if isinstance(created, datetime):
            created = created.strftime("%H:%M:%S")
        print(
            f"  {C.DIM}{created or ''}{C.RESET}  {row.get('event_name', '?')}"
            f"  {C.DIM}{row.get('page_url', '')}{C.RESET}"
        )
    print()


async def _run_watch(once: bool) -> bool:
    store = build_postgres_store(with_channel=not once)
    reader = AggregationReader(store)
    controller = RealtimeRefreshController(reader)
    console = Console()
    try:
        if once:
            snapshot = await controller.refresh()
            _print_update(console, controller, snapshot)
            return snapshot is not None

        controller.on_update(lambda snapshot: _print_update(console, controller, snapshot))
        async with controller:
            # Runs until cancelled by Ctrl+C
            await asyncio.Event().wait()
        return True
    finally:
        await store.close()


# ==============================================================================
# Commands
# ==============================================================================


def watch(
    once: Annotated[
        bool, typer.Option("--once", help="Print one snapshot and exit")
    ] = False,
) -> None:
    """Watch the dashboard update as events arrive.

    Re-pulls the summary after insert notifications (debounced) and on a
    fallback poll interval. Press Ctrl+C to stop.

    Examples:
        sitepulse watch
        sitepulse watch --once
    """
    print()
    try:
        ok = asyncio.run(_run_watch(once))
    except KeyboardInterrupt:
        print(f"\n  {C.DIM}Stopped.{C.RESET}\n")
        return
    if not ok:
        raise typer.Exit(1)
