# ==============================================================================
# Realtime Refresh Controller
# ==============================================================================
"""
Keeps a dashboard snapshot fresh.

Two triggers cause a re-pull through the AggregationReader:
- insert notifications on analytics_events / analytics_sessions, debounced so
  a burst of inserts inside the debounce window yields one refresh
- a fixed-interval fallback poll, for missed notifications and dropped
  channels

A refresh requested while another one runs is coalesced into a single
follow-up pull. Reconnection belongs to the channel; the controller only
reflects channel status in its connection state.
"""

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Callable
from enum import Enum
from functools import partial

from sitepulse.base.channel import CHANNEL_ERROR, CLOSED, SUBSCRIBED
from sitepulse.base.data_store import DataStore
from sitepulse.core.models import EVENTS_TABLE, SESSIONS_TABLE, DashboardSnapshot
from sitepulse.dashboard.aggregation import AggregationReader
from sitepulse.utils.config import get_settings

logger = logging.getLogger(__name__)

WATCHED_TABLES = (EVENTS_TABLE, SESSIONS_TABLE)

UpdateCallback = Callable[[DashboardSnapshot | None], None]


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    SYNCING = "syncing"
    DISCONNECTED = "disconnected"


class RealtimeRefreshController:
    """
    Debounced, poll-backed refresh of an AggregationReader.

    Args:
        reader: Reader performing the pulls
        store: Source of change notifications. Defaults to the reader's store.
        debounce: Seconds between the first notification of a burst and the
            re-pull. If None, uses settings.
        poll_interval: Seconds between fallback pulls. If None, uses settings.
        feed_size: Length of the recent-activity feed. If None, uses settings.
    """

    def __init__(
        self,
        reader: AggregationReader,
        store: DataStore | None = None,
        debounce: float | None = None,
        poll_interval: float | None = None,
        feed_size: int | None = None,
    ):
        settings = get_settings().dashboard
        self.reader = reader
        self._store = store if store is not None else reader.store
        self.debounce = debounce if debounce is not None else settings.debounce_seconds
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.poll_interval_seconds
        )
        self.activity: deque[dict] = deque(
            maxlen=feed_size if feed_size is not None else settings.activity_feed_size
        )

        self.refresh_count = 0
        self.notification_count = 0

        self._loop: asyncio.AbstractEventLoop | None = None
        self._channel_up: dict[str, bool] = {}
        self._unsubscribes: list[Callable[[], None]] = []
        self._listeners: list[UpdateCallback] = []
        self._debounce_timer: asyncio.TimerHandle | None = None
        self._poll_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._refreshing = False
        self._rerun = False
        self._running = False

    # ==========================================================================
    # State
    # ==========================================================================

    @property
    def connected(self) -> bool:
        """True while every watched table's channel is subscribed."""
        return bool(self._channel_up) and all(self._channel_up.values())

    @property
    def state(self) -> ConnectionState:
        if self._refreshing:
            return ConnectionState.SYNCING
        if self.connected:
            return ConnectionState.CONNECTED
        return ConnectionState.DISCONNECTED

    @property
    def snapshot(self) -> DashboardSnapshot | None:
        return self.reader.snapshot

    @property
    def recent_activity(self) -> list[dict]:
        """Newest first."""
        return list(self.activity)

    def on_update(self, callback: UpdateCallback) -> Callable[[], None]:
        """Register a callback receiving every snapshot (or None). Returns a remover."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        """Subscribe to both tables, pull once and start the fallback poll."""
        if self._running:
            return
        self._running = True
        self._loop = asyncio.get_running_loop()
        for table in WATCHED_TABLES:
            self._channel_up[table] = False
            self._unsubscribes.append(
                self._store.subscribe(
                    table, partial(self._on_insert, table), partial(self._on_status, table)
                )
            )
        await self.refresh()
        self._poll_task = self._loop.create_task(self._poll())
        logger.info("Realtime refresh started (poll every %ss)", self.poll_interval)

    async def stop(self) -> None:
        """Unsubscribe and cancel every pending timer and task."""
        if not self._running:
            return
        self._running = False
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()
        self._channel_up.clear()

        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
            self._debounce_timer = None

        pending = [t for t in (self._poll_task, *self._tasks) if t is not None]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._poll_task = None
        self._tasks.clear()
        logger.info("Realtime refresh stopped")

    async def __aenter__(self) -> "RealtimeRefreshController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ==========================================================================
    # Triggers
    # ==========================================================================

    def _on_insert(self, table: str, row: dict) -> None:
        self.notification_count += 1
        if table == EVENTS_TABLE:
            self.activity.appendleft(row)
        self._schedule_refresh()

    def _on_status(self, table: str, status: str) -> None:
        was_up = self._channel_up.get(table, False)
        if status == SUBSCRIBED:
            self._channel_up[table] = True
            if not was_up and self.refresh_count:
                # Catch up on inserts missed while the channel was down
                self._schedule_refresh()
        elif status in (CHANNEL_ERROR, CLOSED):
            if table in self._channel_up:
                self._channel_up[table] = False
            if was_up:
                logger.warning("Change channel for %s is %s", table, status)

    def _schedule_refresh(self) -> None:
        if not self._running or self._loop is None or self._debounce_timer is not None:
            return
        self._debounce_timer = self._loop.call_later(self.debounce, self._debounce_elapsed)

    def _debounce_elapsed(self) -> None:
        self._debounce_timer = None
        if not self._running:
            return
        task = self._loop.create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.refresh()

    async def refresh(self) -> DashboardSnapshot | None:
        """Pull now; a call made during a running pull schedules one follow-up pull."""
        if self._refreshing:
            self._rerun = True
            return self.reader.snapshot

        self._refreshing = True
        try:
            while True:
                self._rerun = False
                snapshot = await self.reader.fetch_summary()
                self.refresh_count += 1
                self._notify(snapshot)
                if not self._rerun:
                    return snapshot
        finally:
            self._refreshing = False

    def _notify(self, snapshot: DashboardSnapshot | None) -> None:
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception as e:
                logger.warning("Dashboard update callback failed: %s", e)
