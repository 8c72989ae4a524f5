# ==============================================================================
# Listener Harness
# ==============================================================================
"""
Attaches interaction listeners to a browsing context exactly once per mount.

State machine:

    UNINITIALIZED --mount()--> INITIALIZING --settle delay--> ACTIVE
    ACTIVE --routechange--> INITIALIZING --settle delay--> ACTIVE
    any --handle.close()--> TORN_DOWN --mount()--> INITIALIZING

Activation attaches click, scroll, unload, visibility, submit and route-change
listeners, marks the client ready and records the first page view. A route
change only re-runs the page-view path; listeners stay attached.

Everything a mount acquires (listener registrations and timers) is recorded on
one ListenerHandle, and closing that handle releases all of it. End-of-page
work accepted by the unload or visibility listener still runs when the handle
is closed before it completes.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from sitepulse.core.environment import DomEvent, EventTarget, FormElement, Listener
from sitepulse.core.models import MousePosition
from sitepulse.tracking.client import TelemetryClient
from sitepulse.utils.config import get_settings

logger = logging.getLogger(__name__)

CLICK_TAGS = ("BUTTON", "A")


class HarnessState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    TORN_DOWN = "torn_down"


class ListenerHandle:
    """
    The resources acquired by one mount.

    Use close() or a with-block to release them. Closing is idempotent.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, on_close: Callable[["ListenerHandle"], None]):
        self._loop = loop
        self._on_close = on_close
        self._registrations: list[tuple[EventTarget, str, Listener]] = []
        self._timers: set[asyncio.TimerHandle] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def listener_count(self) -> int:
        return len(self._registrations)

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def listen(self, target: EventTarget, event_type: str, listener: Listener, **options) -> None:
        if self._closed:
            return
        target.add_event_listener(event_type, listener, **options)
        self._registrations.append((target, event_type, listener))

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle | None:
        if self._closed:
            return None
        timer: asyncio.TimerHandle | None = None

        def fire() -> None:
            self._timers.discard(timer)
            callback()

        timer = self._loop.call_later(delay, fire)
        self._timers.add(timer)
        return timer

    def cancel_timer(self, timer: asyncio.TimerHandle | None) -> None:
        if timer is not None:
            timer.cancel()
            self._timers.discard(timer)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for target, event_type, listener in self._registrations:
            target.remove_event_listener(event_type, listener)
        self._registrations.clear()
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        self._on_close(self)

    def __enter__(self) -> "ListenerHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ListenerHarness:
    """
    Wires a BrowsingContext's events to a TelemetryClient.

    Args:
        client: The telemetry client of the page load
        settle_delay: Seconds between mount (or route change) and capture.
            If None, uses settings.
        scroll_throttle: Quiet period before a scroll position is sampled.
            If None, uses settings.
    """

    def __init__(
        self,
        client: TelemetryClient,
        settle_delay: float | None = None,
        scroll_throttle: float | None = None,
    ):
        settings = get_settings().tracking
        self.client = client
        self.context = client.context
        self.settle_delay = settle_delay if settle_delay is not None else settings.settle_delay_seconds
        self.scroll_throttle = (
            scroll_throttle if scroll_throttle is not None else settings.scroll_throttle_seconds
        )
        self.state = HarnessState.UNINITIALIZED
        self._handle: ListenerHandle | None = None
        self._scroll_timer: asyncio.TimerHandle | None = None
        self._route_timer: asyncio.TimerHandle | None = None

    def mount(self) -> ListenerHandle:
        """
        Start instrumenting the context.

        Must be called from a running event loop. Mounting again while
        initializing or active returns the existing handle untouched.
        """
        if self._handle is not None and not self._handle.closed:
            logger.debug("Harness already mounted (%s)", self.state.value)
            return self._handle

        handle = ListenerHandle(asyncio.get_running_loop(), self._on_handle_closed)
        self._handle = handle
        self.state = HarnessState.INITIALIZING
        handle.call_later(self.settle_delay, self._activate)
        return handle

    def _on_handle_closed(self, handle: ListenerHandle) -> None:
        if handle is not self._handle:
            return
        self._handle = None
        self._scroll_timer = None
        self._route_timer = None
        self.client.mark_unready()
        self.state = HarnessState.TORN_DOWN
        logger.debug("Harness torn down")

    def _activate(self) -> None:
        handle = self._handle
        if handle is None:
            return
        try:
            document, window = self.context.document, self.context.window
            handle.listen(document, "click", self._on_click)
            handle.listen(window, "scroll", self._on_scroll, passive=True)
            handle.listen(window, "beforeunload", self._on_unload)
            handle.listen(document, "visibilitychange", self._on_visibility_change)
            handle.listen(document, "submit", self._on_submit)
            handle.listen(window, "routechange", self._on_route_change)

            self.client.mark_ready()
            self.state = HarnessState.ACTIVE
            self.client.spawn(self.client.track_page_view())
        except Exception as e:
            logger.warning("Harness activation failed: %s", e)

    # ==========================================================================
    # Listeners
    # ==========================================================================

    def _on_click(self, event: DomEvent) -> None:
        try:
            target = event.target
            if target is not None and getattr(target, "tag_name", "").upper() in CLICK_TAGS:
                position = MousePosition(x=event.client_x, y=event.client_y)
                self.client.spawn(self.client.track_click(target, mouse_position=position))
        except Exception as e:
            logger.warning("Click handler error: %s", e)

    def _on_scroll(self, event: DomEvent) -> None:
        try:
            if self._handle is None:
                return
            self._handle.cancel_timer(self._scroll_timer)
            self._scroll_timer = self._handle.call_later(self.scroll_throttle, self._sample_scroll)
        except Exception as e:
            logger.warning("Scroll handler error: %s", e)

    def _sample_scroll(self) -> None:
        self._scroll_timer = None
        try:
            self.client.spawn(self.client.track_scroll_depth(self.context.scroll_depth()))
        except Exception as e:
            logger.warning("Scroll sampling error: %s", e)

    def _on_unload(self, event: DomEvent) -> None:
        try:
            self._schedule_end_page()
        except Exception as e:
            logger.warning("Before unload error: %s", e)

    def _on_visibility_change(self, event: DomEvent) -> None:
        try:
            if self.context.visibility_state == "hidden":
                self._schedule_end_page()
        except Exception as e:
            logger.warning("Visibility handler error: %s", e)

    def _on_submit(self, event: DomEvent) -> None:
        try:
            if isinstance(event.target, FormElement):
                self.client.spawn(self.client.track_form_interaction(event.target, "submit"))
        except Exception as e:
            logger.warning("Submit handler error: %s", e)

    def _on_route_change(self, event: DomEvent) -> None:
        try:
            if self._handle is None:
                return
            path = event.detail.get("path") or self.context.path
            self.state = HarnessState.INITIALIZING
            self._handle.cancel_timer(self._route_timer)
            self._route_timer = self._handle.call_later(
                self.settle_delay, lambda: self._reenter(path)
            )
        except Exception as e:
            logger.warning("Route change handler error: %s", e)

    def _reenter(self, path: str) -> None:
        self._route_timer = None
        try:
            self.state = HarnessState.ACTIVE
            self.client.spawn(self.client.track_page_view(path))
        except Exception as e:
            logger.warning("Page view after route change failed: %s", e)

    def _schedule_end_page(self) -> None:
        # Readiness is checked now; the spawned task may run after close()
        if self.client.ready:
            self.client.spawn(self._end_page())

    async def _end_page(self) -> None:
        await self.client.track_time_on_page(force=True)
        await self.client.track_session_end(force=True)
