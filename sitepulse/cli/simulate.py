# ==============================================================================
# Simulate Command
# ==============================================================================
"""
Drives a simulated visitor through the tracker.

A BrowsingContext stands in for the browser tab. The visitor lands on the
first page, navigates through the rest with a pause between pages and closes
the tab after staying on the last one. Time is a manual clock, so the
simulation runs instantly while the stored timestamps and durations reflect
the simulated pauses. With --valkey-context the session id lives in Valkey
context storage, as it would for a tab shared by several page loads.
"""

import asyncio
import secrets
import time
from datetime import datetime
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from sitepulse.base.data_store import DataStore
from sitepulse.base.storage import ContextStorage
from sitepulse.cli.shared import (
    C,
    I,
    _box_bottom,
    _box_header,
    _box_line,
    _empty_line,
    build_postgres_store,
)
from sitepulse.core.environment import BrowsingContext
from sitepulse.core.models import EVENTS_TABLE, SESSIONS_TABLE
from sitepulse.infrastructure.repositories.memory import InMemoryDataStore
from sitepulse.infrastructure.storage.valkey import ValkeyContextStorage
from sitepulse.tracking.client import TelemetryClient
from sitepulse.tracking.geolocation import GeolocationCache
from sitepulse.tracking.harness import ListenerHarness

DEFAULT_PAGES = ["/home", "/services"]
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0 Safari/537.36"
)

SESSION_FIELDS = (
    "session_id",
    "entry_page",
    "exit_page",
    "page_count",
    "started_at",
    "ended_at",
    "duration_seconds",
    "is_bounce",
    "device_type",
    "browser",
    "os",
    "country",
)


class ManualClock:
    """Epoch-seconds clock that only moves when advanced."""

    def __init__(self, start: float | None = None):
        self.now = start if start is not None else time.time()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ==============================================================================
# Simulation
# ==============================================================================


async def _settle(client: TelemetryClient) -> None:
    # Let zero-delay harness timers fire, then wait for the tracking they spawn
    await asyncio.sleep(0.01)
    await client.drain()


async def run_visit(
    store: DataStore,
    clock: ManualClock,
    pages: list[str],
    pause: float,
    stay: float,
    referrer: str = "",
    geolocation: GeolocationCache | None = None,
    storage: ContextStorage | None = None,
) -> str:
    """
    Simulate one visit and return its session id.

    Args:
        store: Data Store the tracker writes to
        clock: Clock shared by the tracker and the simulation
        pages: Paths visited in order; the first is the landing page
        pause: Seconds spent on each page before navigating to the next
        stay: Seconds spent on the last page before the tab is closed
        referrer: document.referrer of the landing page
        geolocation: Geolocation cache (lookups disabled if None)
        storage: Context storage holding the session id (in-memory if None)
    """
    context = BrowsingContext(
        user_agent=DEFAULT_USER_AGENT,
        path=pages[0],
        referrer=referrer,
        title=f"sitepulse demo {pages[0]}",
        scroll_height=2400,
    )
    client = TelemetryClient(
        context,
        store,
        storage=storage,
        geolocation=geolocation if geolocation is not None else GeolocationCache(enabled=False),
        clock=clock,
    )
    harness = ListenerHarness(client, settle_delay=0, scroll_throttle=0)

    with harness.mount():
        await _settle(client)
        for page in pages[1:]:
            clock.advance(pause)
            context.title = f"sitepulse demo {page}"
            context.navigate(page)
            await _settle(client)
        clock.advance(stay)
        context.unload()
        await _settle(client)

    return client.session_id


def _context_storage(use_valkey: bool) -> ContextStorage | None:
    """Valkey-backed storage for a fresh simulated tab, or None for in-memory."""
    if not use_valkey:
        return None
    return ValkeyContextStorage(f"simulate-{secrets.token_hex(6)}")


async def _simulate(
    use_memory: bool,
    pages: list[str],
    pause: float,
    stay: float,
    geo: bool,
    referrer: str,
    valkey_context: bool = False,
) -> tuple[dict | None, list[dict], str | None]:
    clock = ManualClock()
    store = InMemoryDataStore(clock=clock) if use_memory else build_postgres_store(with_channel=True)
    storage = _context_storage(valkey_context)
    try:
        session_id = await run_visit(
            store,
            clock,
            pages,
            pause,
            stay,
            referrer=referrer,
            geolocation=GeolocationCache(enabled=geo),
            storage=storage,
        )
        session_resp = await store.select(
            SESSIONS_TABLE, eq={"session_id": session_id}, single=True
        )
        events_resp = await store.select(EVENTS_TABLE, eq={"session_id": session_id})
    finally:
        await store.close()
        if storage is not None:
            storage.close()

    error = session_resp.error or events_resp.error
    if error:
        return None, [], error
    events = sorted(events_resp.data or [], key=lambda row: str(row.get("created_at")))
    return session_resp.data, events, None


def _format_value(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if value is None:
        return "-"
    return str(value)


# ==============================================================================
# Commands
# ==============================================================================


def simulate(
    memory: Annotated[
        bool,
        typer.Option("--memory/--postgres", help="Write to an in-memory store or to PostgreSQL"),
    ] = True,
    pages: Annotated[
        Optional[list[str]],
        typer.Option("--page", "-p", help="Page path to visit (repeat for more pages)"),
    ] = None,
    pause: Annotated[
        float, typer.Option("--pause", help="Seconds on each page before the next one")
    ] = 3.0,
    stay: Annotated[
        float, typer.Option("--stay", help="Seconds on the last page before closing the tab")
    ] = 9.0,
    referrer: Annotated[
        str, typer.Option("--referrer", "-r", help="Referrer of the landing page")
    ] = "",
    geo: Annotated[
        bool, typer.Option("--geo/--no-geo", help="Resolve geolocation over HTTP")
    ] = False,
    valkey_context: Annotated[
        bool,
        typer.Option(
            "--valkey-context/--memory-context",
            help="Keep the session id in Valkey instead of in memory",
        ),
    ] = False,
) -> None:
    """Simulate a visitor and print the resulting session and events.

    The default visit lands on /home, moves to /services 3 seconds later and
    closes the tab after 12 seconds in total.

    Examples:
        sitepulse simulate
        sitepulse simulate -p /home -p /pricing -p /contact --pause 5
        sitepulse simulate --postgres --geo
        sitepulse simulate --postgres --valkey-context
    """
    pages = pages or DEFAULT_PAGES
    if pause < 0 or stay < 0:
        raise typer.BadParameter("--pause and --stay must not be negative")

    session, events, error = asyncio.run(
        _simulate(memory, pages, pause, stay, geo, referrer, valkey_context=valkey_context)
    )

    if error or session is None:
        print(f"\n{C.BRIGHT_RED}{I.CROSS} Simulation produced no session row{C.RESET}")
        if error:
            print(f"  {C.DIM}{error}{C.RESET}")
        print()
        raise typer.Exit(1)

    print()
    print(_box_header("SIMULATED SESSION"))
    print(_empty_line())
    for field in SESSION_FIELDS:
        print(_box_line(f"  {field:<20}{C.WHITE}{_format_value(session.get(field))}{C.RESET}"))
    print(_empty_line())
    print(_box_bottom())

    table = Table(title=f"Events ({len(events)})", show_header=True, header_style="bold")
    table.add_column("Time", justify="left")
    table.add_column("Type", justify="left")
    table.add_column("Name", justify="left")
    table.add_column("Page", justify="left")
    for row in events:
        table.add_row(
            _format_value(row.get("created_at")),
            str(row.get("event_type")),
            str(row.get("event_name")),
            str(row.get("page_url")),
        )
    print()
    Console().print(table)
    print()
