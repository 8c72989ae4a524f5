# ==============================================================================
# Browsing Context
# ==============================================================================
"""
Model of the ambient browser state the tracker instruments.

A BrowsingContext bundles what a tab exposes to instrumentation code: the
navigator fields used for fingerprinting, the current location, the document
referrer and title, scroll geometry, visibility, and the two event targets
(document and window) listeners are attached to.

Hosts embed the tracker by keeping a BrowsingContext up to date and
dispatching DomEvents on its targets; tests do the same to simulate a visitor.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


Listener = Callable[["DomEvent"], None]


@dataclass
class Element:
    """A DOM element as seen by click tracking."""

    tag_name: str
    id: str = ""
    text_content: str = ""
    class_name: str = ""
    attributes: dict[str, str] = field(default_factory=dict)

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)


@dataclass
class FormElement(Element):
    """A form with its field names, target and method."""

    tag_name: str = "FORM"
    action: str = ""
    method: str = "get"
    field_names: list[str] = field(default_factory=list)


@dataclass
class DomEvent:
    """An event dispatched on an EventTarget."""

    type: str
    target: Any = None
    client_x: int = 0
    client_y: int = 0
    detail: dict[str, Any] = field(default_factory=dict)


class EventTarget:
    """
    Listener registry with add/remove/dispatch semantics.

    A listener registered twice for the same type is kept once. Dispatch
    iterates over a snapshot so listeners may remove themselves.
    """

    def __init__(self, name: str):
        self.name = name
        self._listeners: dict[str, list[tuple[Listener, dict]]] = {}

    def add_event_listener(self, event_type: str, listener: Listener, **options) -> None:
        entries = self._listeners.setdefault(event_type, [])
        if any(existing is listener for existing, _ in entries):
            return
        entries.append((listener, options))

    def remove_event_listener(self, event_type: str, listener: Listener) -> None:
        entries = self._listeners.get(event_type, [])
        self._listeners[event_type] = [(fn, opts) for fn, opts in entries if fn is not listener]
        if not self._listeners[event_type]:
            del self._listeners[event_type]

    def dispatch_event(self, event: DomEvent) -> None:
        """Invoke every listener for event.type. Listener errors propagate."""
        for listener, _ in list(self._listeners.get(event.type, [])):
            listener(event)

    def listener_count(self, event_type: str | None = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return sum(len(entries) for entries in self._listeners.values())

    def listener_options(self, event_type: str) -> list[dict]:
        return [options for _, options in self._listeners.get(event_type, [])]


@dataclass
class BrowsingContext:
    """
    One tab: navigator fields, location, document state and event targets.

    Attributes:
        user_agent: navigator.userAgent
        path: location.pathname
        referrer: document.referrer ("" when the visit is direct)
        title: document.title
        scroll_y: window.scrollY
        scroll_height: document.documentElement.scrollHeight
        visibility_state: "visible" or "hidden"
    """

    user_agent: str = ""
    path: str = "/"
    referrer: str = ""
    title: str = ""
    language: str = "en-US"
    screen_width: int = 1920
    screen_height: int = 1080
    viewport_width: int = 1280
    viewport_height: int = 720
    color_depth: int = 24
    cookie_enabled: bool = True
    online: bool = True
    scroll_y: int = 0
    scroll_height: int = 720
    visibility_state: str = "visible"
    document: EventTarget = field(default_factory=lambda: EventTarget("document"))
    window: EventTarget = field(default_factory=lambda: EventTarget("window"))

    def navigate(self, path: str) -> None:
        """Client-side navigation: change the path and announce the route change."""
        self.path = path
        self.scroll_y = 0
        self.window.dispatch_event(DomEvent("routechange", detail={"path": path}))

    def scroll_to(self, scroll_y: int) -> None:
        self.scroll_y = scroll_y
        self.window.dispatch_event(DomEvent("scroll"))

    def scroll_to_depth(self, depth: int) -> None:
        """Scroll so that the given percentage of the scrollable height is passed."""
        scrollable = max(self.scroll_height - self.viewport_height, 0)
        self.scroll_to(round(scrollable * depth / 100))

    def click(self, element: Element, client_x: int = 0, client_y: int = 0) -> None:
        self.document.dispatch_event(
            DomEvent("click", target=element, client_x=client_x, client_y=client_y)
        )

    def submit(self, form: FormElement) -> None:
        self.document.dispatch_event(DomEvent("submit", target=form))

    def set_visibility(self, state: str) -> None:
        self.visibility_state = state
        self.document.dispatch_event(DomEvent("visibilitychange"))

    def unload(self) -> None:
        self.window.dispatch_event(DomEvent("beforeunload"))

    def scroll_depth(self) -> int:
        """Current scroll depth in percent of the scrollable height."""
        scrollable = self.scroll_height - self.viewport_height
        if scrollable <= 0:
            return 100
        return round(self.scroll_y / scrollable * 100)
