"""
Page facade observed by the tracker.

A ``Page`` stands in for the browser's ``window``/``document`` pair: it holds
the metadata the tracker reads (URL, title, viewport, scroll position, ...)
and dispatches DOM-style events to listeners. Host code (a headless browser
bridge, a test, an SSR hook) mutates the page and calls ``dispatch_event``;
the tracker only reads it.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

Listener = Callable[["DomEvent"], None]


@dataclass
class Element:
    """A DOM element that can be the target of a click."""

    tag_name: str
    text_content: str = ""
    href: str | None = None
    class_name: str = ""
    id: str = ""
    attributes: dict[str, str] = field(default_factory=dict)

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)


@dataclass
class Form(Element):
    """A form element; the target of ``submit`` events."""

    tag_name: str = "form"
    action: str = ""


@dataclass
class DomEvent:
    """An event delivered to page listeners."""

    type: str
    target: Element | None = None


@dataclass
class Page:
    """Browser page state plus a listener registry.

    Attributes:
        url: Full location href.
        title: Document title.
        referrer: Document referrer ("" when none).
        user_agent: Navigator user-agent string.
        language: Navigator locale, e.g. "en-US".
        timezone: IANA timezone name, e.g. "Europe/Rome".
        screen_width, screen_height: Screen size in CSS pixels.
        viewport_width, viewport_height: Window inner size.
        scroll_y: Vertical scroll offset.
        scroll_height: Total document height.
        visibility_state: "visible" or "hidden".
        supports_beacon: Whether a navigation-surviving transport is available.
    """

    url: str
    title: str = ""
    referrer: str = ""
    user_agent: str = ""
    language: str = "en-US"
    timezone: str = "UTC"
    screen_width: int = 1920
    screen_height: int = 1080
    viewport_width: int = 1280
    viewport_height: int = 800
    scroll_y: float = 0.0
    scroll_height: float = 800.0
    visibility_state: str = "visible"
    supports_beacon: bool = True
    _listeners: dict[str, list[Listener]] = field(default_factory=dict, repr=False)

    def add_event_listener(self, event_type: str, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def remove_event_listener(self, event_type: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    def dispatch_event(self, event_type: str, target: Element | None = None) -> None:
        """Deliver an event to every listener, isolating listener failures.

        A failing listener is logged and skipped, like an uncaught error in a
        browser event handler: other listeners and the caller are unaffected.
        """
        event = DomEvent(type=event_type, target=target)
        for listener in list(self._listeners.get(event_type, [])):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener for %r failed", event_type)

    # Convenience mutators mirroring what a browser does before firing events.

    def scroll_to(self, scroll_y: float) -> None:
        self.scroll_y = scroll_y
        self.dispatch_event("scroll")

    def set_visibility(self, state: str) -> None:
        self.visibility_state = state
        self.dispatch_event("visibilitychange")

    def click(self, element: Element) -> None:
        self.dispatch_event("click", element)

    def submit(self, form: Form) -> None:
        self.dispatch_event("submit", form)

    def unload(self) -> None:
        self.dispatch_event("beforeunload")
