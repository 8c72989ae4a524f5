# ==============================================================================
# Telemetry Client (Event Emitter)
# ==============================================================================
"""
The capture API for one page load.

A TelemetryClient owns the per-page tracking state: the session identity, the
geolocation cache, the initialization flag, the page-start clock and the
scroll high-water mark. Construct one per page load and hand it to the
listener harness; independent instances share nothing.

Every track_* coroutine composes session id, geolocation and device info into
an EventRecord and hands it to the delivery layer. None of them raise: failures
are logged at WARNING and returned as a Result, which callers are free to
ignore.

One emission never waits longer than the delivery timeout in total. The
geolocation lookup may use up to half of that budget and the write gets the
rest; an event whose lookup is still pending at that point is sent without
location.
"""

import asyncio
import logging
import math
import time
from collections.abc import Callable
from typing import Any

from sitepulse.base.data_store import DataStore
from sitepulse.base.storage import ContextStorage
from sitepulse.core.environment import BrowsingContext, Element, FormElement
from sitepulse.core.errors import Result, TelemetryError
from sitepulse.core.fingerprint import get_device_info
from sitepulse.core.models import (
    EVENTS_TABLE,
    EventRecord,
    EventType,
    GeoData,
    MousePosition,
    TrackingEvent,
)
from sitepulse.core.session_processor import to_datetime
from sitepulse.infrastructure.storage.memory import MemoryContextStorage
from sitepulse.tracking.delivery import DeliveryLayer
from sitepulse.tracking.geolocation import GeolocationCache
from sitepulse.tracking.identity import SessionIdentityManager
from sitepulse.tracking.lifecycle import SessionLifecycleWriter

logger = logging.getLogger(__name__)

SCROLL_MILESTONES = (25, 50, 75, 100)

FORM_ACTIONS = ("focus", "submit", "abandon")
VIDEO_ACTIONS = ("play", "pause", "complete")

# Longest element text stored with a click
MAX_ELEMENT_TEXT = 100

# Share of the delivery timeout a pending geolocation lookup may use
GEOLOCATION_BUDGET_SHARE = 0.5


def _failure(error: Exception) -> Result:
    if isinstance(error, TelemetryError):
        return Result.failure(error)
    return Result.failure(TelemetryError(str(error)))


class TelemetryClient:
    """
    Event emitter for one browsing context and page load.

    Args:
        context: The browsing context being instrumented
        store: Data Store events and sessions are written to
        storage: Context-scoped storage for the session id. A fresh
            MemoryContextStorage if None (one session per client).
        geolocation: Geolocation cache. A new GeolocationCache if None.
        clock: Epoch-seconds clock
        delivery_timeout: Per-write timeout. If None, uses settings.
    """

    def __init__(
        self,
        context: BrowsingContext,
        store: DataStore,
        storage: ContextStorage | None = None,
        geolocation: GeolocationCache | None = None,
        clock: Callable[[], float] = time.time,
        delivery_timeout: float | None = None,
    ):
        self.context = context
        self._clock = clock
        self.identity = SessionIdentityManager(
            storage if storage is not None else MemoryContextStorage(), clock=clock
        )
        self.geolocation = geolocation if geolocation is not None else GeolocationCache()
        self.delivery = DeliveryLayer(store, timeout=delivery_timeout)
        self.sessions = SessionLifecycleWriter(self.delivery, clock=clock)

        self._ready = False
        self._loaded_at = clock()
        self._page_start = self._loaded_at
        self._max_scroll = 0
        self._milestones: set[int] = set()

    # ==========================================================================
    # Initialization flag
    # ==========================================================================

    @property
    def ready(self) -> bool:
        return self._ready

    def mark_ready(self) -> None:
        """Accept events from now on. Called by the harness once listeners are attached."""
        self._ready = True

    def mark_unready(self) -> None:
        self._ready = False

    @property
    def session_id(self) -> str:
        return self.identity.get_session_id()

    @property
    def max_scroll_depth(self) -> int:
        return self._max_scroll

    def time_on_page(self) -> int:
        """Whole seconds since the current page view."""
        return max(math.floor(self._clock() - self._page_start), 0)

    def spawn(self, coro):
        """Run a tracking coroutine in the background."""
        return self.delivery.spawn(coro)

    async def drain(self) -> None:
        """Wait for background tracking work to finish."""
        await self.delivery.drain()

    # ==========================================================================
    # Emission
    # ==========================================================================

    def _geolocation_budget(self) -> float:
        return self.delivery.timeout * GEOLOCATION_BUDGET_SHARE

    async def _locate(self, budget: float) -> GeoData:
        """The cached geolocation, or unknown if the lookup outlasts budget seconds."""
        if self.geolocation.resolved or not self.geolocation.enabled:
            return await self.geolocation.get_geolocation()
        if budget <= 0:
            return GeoData.unknown()
        try:
            return await asyncio.wait_for(self.geolocation.get_geolocation(), budget)
        except asyncio.TimeoutError:
            # The shared lookup keeps running for later events
            logger.debug("Geolocation pending after %.2fs, sending without it", budget)
            return GeoData.unknown()

    async def _compose(self, event: TrackingEvent, budget: float) -> EventRecord:
        captured_at = to_datetime(self._clock())
        session_id = self.identity.get_session_id()
        geo = await self._locate(budget)
        device = get_device_info(self.context)

        properties = event.merged_properties()
        properties["timestamp"] = captured_at.isoformat()

        return EventRecord(
            event_type=event.event_type,
            event_name=event.event_name,
            page_url=event.page_url or self.context.path,
            referrer=self.context.referrer or None,
            session_id=session_id,
            user_agent=self.context.user_agent,
            country=geo.country,
            city=geo.city,
            device_type=device.device_type,
            browser=device.browser,
            os=device.os,
            properties=properties,
            created_at=captured_at,
        )

    async def emit(self, event: TrackingEvent, force: bool = False) -> Result:
        """
        Compose and deliver one event.

        Args:
            event: The event to record
            force: Deliver even if the client is not ready. Used for work a
                listener accepted while the client was still ready.

        Returns:
            Result of the delivery; skipped before mark_ready()
        """
        if not (self._ready or force):
            logger.debug("Dropping %r before initialization", event.event_name)
            return Result.skip()
        try:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.delivery.timeout
            record = await self._compose(event, self._geolocation_budget())
            result, _ = await self.delivery.insert(
                EVENTS_TABLE,
                record.to_db_record(),
                timeout=max(deadline - loop.time(), 0.0),
            )
            return result
        except Exception as e:
            logger.warning("Analytics tracking error for %r: %s", event.event_name, e)
            return _failure(e)

    async def track_event(self, event: TrackingEvent) -> Result:
        return await self.emit(event)

    # ==========================================================================
    # Derived operations
    # ==========================================================================

    async def track_page_view(self, page_url: str | None = None) -> Result:
        """
        Record a page view, then create or update the session row.

        Resets the page-start clock and the scroll high-water mark.
        """
        page_url = page_url or self.context.path
        now = self._clock()
        self._page_start = now
        self._max_scroll = 0
        self._milestones = set()

        result = await self.emit(
            TrackingEvent(
                event_type=EventType.PAGE_VIEW,
                event_name="Page View",
                page_url=page_url,
                properties={
                    "title": self.context.title,
                    "page_load_time": round((now - self._loaded_at) * 1000),
                },
            )
        )
        if result.skipped:
            return result

        try:
            geo = await self._locate(self._geolocation_budget())
            session_result = await self.sessions.record_page_view(
                self.identity.get_session_id(),
                page_url,
                geo,
                get_device_info(self.context),
                referrer=self.context.referrer or None,
            )
        except Exception as e:
            logger.warning("Session tracking error: %s", e)
            session_result = _failure(e)
        return Result.combine(result, session_result)

    async def track_click(
        self,
        element: Element,
        custom_properties: dict[str, Any] | None = None,
        mouse_position: MousePosition | None = None,
    ) -> Result:
        """Record a click with the element's id, tag, text, class, href and value."""
        text = (element.text_content or "").strip()[:MAX_ELEMENT_TEXT]
        element_info = {
            "element_id": element.id or None,
            "element_type": element.tag_name.lower(),
            "element_text": text,
            "element_class": element.class_name or None,
            "element_href": element.get_attribute("href"),
            "element_value": element.get_attribute("value"),
        }
        properties = {**(custom_properties or {}), **element_info}
        return await self.emit(
            TrackingEvent(
                event_type=EventType.CLICK,
                event_name="Element Click",
                element_id=element_info["element_id"],
                element_type=element_info["element_type"],
                element_text=text,
                properties=properties,
                mouse_position=mouse_position or MousePosition(),
            )
        )

    async def track_scroll_depth(self, depth: int) -> Result:
        """
        Record scroll milestones crossed since the previous maximum.

        Depths not above the current maximum are ignored. Each milestone is
        emitted at most once per page view.
        """
        depth = min(max(int(depth), 0), 100)
        if depth <= self._max_scroll:
            return Result.skip()

        previous = self._max_scroll
        self._max_scroll = depth
        crossed = [
            m for m in SCROLL_MILESTONES if previous < m <= depth and m not in self._milestones
        ]
        self._milestones.update(crossed)

        results = []
        for milestone in crossed:
            results.append(
                await self.emit(
                    TrackingEvent(
                        event_type=EventType.SCROLL,
                        event_name=f"Scroll {milestone}%",
                        scroll_depth=milestone,
                        time_on_page=self.time_on_page(),
                        properties={"observed_depth": depth},
                    )
                )
            )
        return Result.combine(*results) if results else Result.skip()

    async def track_time_on_page(self, force: bool = False) -> Result:
        return await self.emit(
            TrackingEvent(
                event_type=EventType.ENGAGEMENT,
                event_name="Time on Page",
                time_on_page=self.time_on_page(),
                scroll_depth=self._max_scroll,
            ),
            force=force,
        )

    async def track_form_interaction(self, form: FormElement, action: str) -> Result:
        """Record a form focus, submit or abandon with its field names, action and method."""
        if action not in FORM_ACTIONS:
            logger.warning("Ignoring unknown form action %r", action)
            return Result.skip()
        return await self.emit(
            TrackingEvent(
                event_type=EventType.FORM,
                event_name=f"Form {action}",
                element_id=form.id or None,
                element_type="form",
                properties={
                    "form_fields": list(form.field_names),
                    "form_action": form.action,
                    "form_method": form.method,
                },
            )
        )

    async def track_session_end(self, force: bool = False) -> Result:
        """Finalize the current session row. force has the same meaning as in emit()."""
        if not (self._ready or force):
            return Result.skip()
        try:
            return await self.sessions.finalize_session(self.identity.get_session_id())
        except Exception as e:
            logger.warning("Session finalize error: %s", e)
            return _failure(e)

    # ==========================================================================
    # Custom events
    # ==========================================================================

    async def track_custom_event(
        self, event_name: str, properties: dict[str, Any] | None = None
    ) -> Result:
        return await self.emit(
            TrackingEvent(
                event_type=EventType.CUSTOM,
                event_name=event_name,
                page_url=self.context.path,
                properties=properties or {},
            )
        )

    async def track_button_click(self, button_name: str, context: str | None = None) -> Result:
        return await self.track_custom_event(
            "Button Click",
            {"button_name": button_name, "context": context or self.context.path},
        )

    async def track_form_submission(
        self, form_name: str, form_data: dict[str, Any] | None = None
    ) -> Result:
        return await self.track_custom_event(
            "Form Submission", {"form_name": form_name, "form_data": form_data}
        )

    async def track_lead_generation(
        self, lead_type: str, lead_data: dict[str, Any] | None = None
    ) -> Result:
        return await self.track_custom_event(
            "Lead Generated", {"lead_type": lead_type, "lead_data": lead_data}
        )

    async def track_video_interaction(self, action: str, video_title: str | None = None) -> Result:
        if action not in VIDEO_ACTIONS:
            logger.warning("Ignoring unknown video action %r", action)
            return Result.skip()
        return await self.track_custom_event(
            "Video Interaction", {"action": action, "video_title": video_title}
        )

    async def track_download(self, file_name: str, file_type: str | None = None) -> Result:
        return await self.track_custom_event(
            "File Download", {"file_name": file_name, "file_type": file_type}
        )
