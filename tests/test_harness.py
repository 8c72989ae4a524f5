# ==============================================================================
# Tests for the Listener Harness
# ==============================================================================
"""
Tests for mounting, DOM event wiring and teardown.

A harness mounted with settle_delay=0 activates on the next loop iteration;
each test settles the loop and drains the client before asserting.
"""

import asyncio
import logging

from sitepulse.core.environment import DomEvent, Element, FormElement
from sitepulse.core.models import EVENTS_TABLE, SESSIONS_TABLE
from sitepulse.tracking.harness import HarnessState, ListenerHarness


async def _settle(client, delay: float = 0.01) -> None:
    await asyncio.sleep(delay)
    await client.drain()


def _make_harness(client, settle_delay: float = 0, scroll_throttle: float = 0) -> ListenerHarness:
    return ListenerHarness(client, settle_delay=settle_delay, scroll_throttle=scroll_throttle)


def _event_types(store) -> list[str]:
    return [row["event_type"] for row in store.rows(EVENTS_TABLE)]


class _ExplodingTarget:
    """Click target whose tag lookup fails."""

    @property
    def tag_name(self):
        raise RuntimeError("detached node")


# ==============================================================================
# Mounting
# ==============================================================================


class TestMount:
    def test_activation_records_page_view(self, make_client, store):
        client = make_client(ready=False)
        harness = _make_harness(client)

        async def scenario():
            with harness.mount():
                assert harness.state == HarnessState.INITIALIZING
                await _settle(client)
                return harness.state, client.ready

        state, ready = asyncio.run(scenario())

        assert state == HarnessState.ACTIVE
        assert ready
        assert _event_types(store) == ["page_view"]
        assert len(store.rows(SESSIONS_TABLE)) == 1

    def test_nothing_captured_before_settle_delay(self, make_client, store):
        client = make_client(ready=False)
        harness = _make_harness(client, settle_delay=0.2)

        async def scenario():
            handle = harness.mount()
            await asyncio.sleep(0.01)
            await client.drain()
            handle.close()

        asyncio.run(scenario())
        assert store.rows(EVENTS_TABLE) == []

    def test_mount_is_idempotent(self, make_client, store, context):
        client = make_client(ready=False)
        harness = _make_harness(client)

        async def scenario():
            first = harness.mount()
            second = harness.mount()
            await _settle(client)
            third = harness.mount()
            await _settle(client)
            counts = context.document.listener_count("click"), context.window.listener_count("scroll")
            first.close()
            return first is second is third, counts

        same, counts = asyncio.run(scenario())

        assert same
        assert counts == (1, 1)
        assert _event_types(store) == ["page_view"]

    def test_scroll_listener_is_passive(self, make_client, context):
        client = make_client(ready=False)
        harness = _make_harness(client)

        async def scenario():
            with harness.mount():
                await _settle(client)
                return context.window.listener_options("scroll")

        assert asyncio.run(scenario()) == [{"passive": True}]


# ==============================================================================
# Event wiring
# ==============================================================================


class TestListeners:
    def _run(self, client, action):
        harness = _make_harness(client)

        async def scenario():
            with harness.mount():
                await _settle(client)
                action()
                await _settle(client)

        asyncio.run(scenario())

    def test_button_and_link_clicks_are_tracked(self, make_client, store, context):
        def clicks():
            context.click(Element(tag_name="BUTTON", text_content="Buy"), 5, 6)
            context.click(Element(tag_name="a", attributes={"href": "/pricing"}))
            context.click(Element(tag_name="DIV", text_content="ignored"))

        self._run(make_client(ready=False), clicks)

        rows = [r for r in store.rows(EVENTS_TABLE) if r["event_type"] == "click"]
        assert [r["properties"]["element_type"] for r in rows] == ["button", "a"]
        assert rows[0]["properties"]["mouse_position"] == {"x": 5, "y": 6}

    def test_scroll_is_sampled_after_quiet_period(self, make_client, store, context):
        def scroll():
            context.scroll_to_depth(20)
            context.scroll_to_depth(55)

        self._run(make_client(ready=False), scroll)

        names = [r["event_name"] for r in store.rows(EVENTS_TABLE) if r["event_type"] == "scroll"]
        assert names == ["Scroll 25%", "Scroll 50%"]

    def test_submit_is_tracked(self, make_client, store, context):
        form = FormElement(id="contact", field_names=["email"])
        self._run(make_client(ready=False), lambda: context.submit(form))

        rows = [r for r in store.rows(EVENTS_TABLE) if r["event_type"] == "form"]
        assert [r["event_name"] for r in rows] == ["Form submit"]

    def test_submit_from_non_form_is_ignored(self, make_client, store, context):
        def submit():
            context.document.dispatch_event(DomEvent("submit", target=Element(tag_name="DIV")))

        self._run(make_client(ready=False), submit)
        assert "form" not in _event_types(store)

    def test_route_change_records_page_view(self, make_client, store, context):
        self._run(make_client(ready=False), lambda: context.navigate("/services"))

        views = [r for r in store.rows(EVENTS_TABLE) if r["event_type"] == "page_view"]
        assert [v["page_url"] for v in views] == ["/home", "/services"]
        (session,) = store.rows(SESSIONS_TABLE)
        assert session["page_count"] == 2
        assert session["exit_page"] == "/services"

    def test_hidden_tab_finalizes(self, make_client, store, context, clock):
        def hide():
            clock.advance(6)
            context.set_visibility("hidden")

        self._run(make_client(ready=False), hide)

        assert "engagement" in _event_types(store)
        session = store.rows(SESSIONS_TABLE)[0]
        assert session["duration_seconds"] == 6
        assert session["is_bounce"] is True

    def test_visible_again_does_not_finalize(self, make_client, store, context):
        self._run(make_client(ready=False), lambda: context.set_visibility("visible"))
        assert store.rows(SESSIONS_TABLE)[0]["ended_at"] is None

    def test_unload_then_hidden_finalizes_once(self, make_client, store, context, clock):
        def leave():
            clock.advance(3)
            context.unload()
            context.set_visibility("hidden")

        client = make_client(ready=False)
        self._run(client, leave)

        updates = [c for c in store.calls if c == ("update", SESSIONS_TABLE)]
        assert len(updates) == 1
        assert store.rows(SESSIONS_TABLE)[0]["duration_seconds"] == 3

    def test_failing_handler_does_not_break_tracking(self, make_client, store, context, caplog):
        def clicks():
            context.click(_ExplodingTarget())
            context.click(Element(tag_name="BUTTON", text_content="Still works"))

        with caplog.at_level(logging.WARNING):
            self._run(make_client(ready=False), clicks)

        assert "detached node" in caplog.text
        assert _event_types(store).count("click") == 1


# ==============================================================================
# Teardown
# ==============================================================================


class TestTeardown:
    def test_close_removes_every_listener(self, make_client, context):
        client = make_client(ready=False)
        harness = _make_harness(client)

        async def scenario():
            handle = harness.mount()
            await _settle(client)
            attached = handle.listener_count
            handle.close()
            return attached

        attached = asyncio.run(scenario())

        assert attached == 6
        assert context.document.listener_count() == 0
        assert context.window.listener_count() == 0
        assert harness.state == HarnessState.TORN_DOWN
        assert not client.ready

    def test_close_cancels_pending_timers(self, make_client, store, context):
        client = make_client(ready=False)
        harness = _make_harness(client, settle_delay=0, scroll_throttle=0.2)

        async def scenario():
            handle = harness.mount()
            await _settle(client)
            context.scroll_to_depth(90)
            pending = handle.pending_timers
            handle.close()
            await asyncio.sleep(0.3)
            await client.drain()
            return pending, handle.pending_timers

        assert asyncio.run(scenario()) == (1, 0)
        assert "scroll" not in _event_types(store)

    def test_close_before_activation(self, make_client, store, context):
        client = make_client(ready=False)
        harness = _make_harness(client, settle_delay=0.05)

        async def scenario():
            harness.mount().close()
            await asyncio.sleep(0.1)
            await client.drain()

        asyncio.run(scenario())

        assert store.rows(EVENTS_TABLE) == []
        assert context.document.listener_count() == 0

    def test_events_after_close_are_ignored(self, make_client, store, context):
        client = make_client(ready=False)
        harness = _make_harness(client)

        async def scenario():
            with harness.mount():
                await _settle(client)
            context.click(Element(tag_name="BUTTON"))
            context.unload()
            await _settle(client)

        asyncio.run(scenario())
        assert _event_types(store) == ["page_view"]

    def test_unload_right_before_close_finalizes(self, make_client, store, context, clock):
        client = make_client(ready=False)
        harness = _make_harness(client)

        async def scenario():
            with harness.mount():
                await _settle(client)
                clock.advance(12)
                context.unload()
            await client.drain()

        asyncio.run(scenario())

        assert _event_types(store) == ["page_view", "engagement"]
        assert store.rows(EVENTS_TABLE)[1]["properties"]["time_on_page"] == 12
        session = store.rows(SESSIONS_TABLE)[0]
        assert session["ended_at"] is not None
        assert session["duration_seconds"] == 12
        assert session["is_bounce"] is True
        assert not client.ready

    def test_hidden_right_before_close_finalizes(self, make_client, store, context, clock):
        client = make_client(ready=False)
        harness = _make_harness(client)

        async def scenario():
            handle = harness.mount()
            await _settle(client)
            clock.advance(4)
            context.set_visibility("hidden")
            handle.close()
            await client.drain()

        asyncio.run(scenario())

        assert store.rows(SESSIONS_TABLE)[0]["duration_seconds"] == 4

    def test_remount_after_close(self, make_client, store, context):
        client = make_client(ready=False)
        harness = _make_harness(client)

        async def scenario():
            with harness.mount():
                await _settle(client)
            with harness.mount():
                await _settle(client)
                return context.document.listener_count("click")

        assert asyncio.run(scenario()) == 1
        assert _event_types(store) == ["page_view", "page_view"]

    def test_close_is_idempotent(self, make_client):
        client = make_client(ready=False)
        harness = _make_harness(client)

        async def scenario():
            handle = harness.mount()
            handle.close()
            handle.close()
            return handle.closed

        assert asyncio.run(scenario())
