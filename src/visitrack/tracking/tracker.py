"""Visitrack client tracker."""

import asyncio
import logging
import math
import time
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import ValidationError

from visitrack.tracking.config import TrackerSettings
from visitrack.tracking.identity import (
    Storage,
    generate_session_id,
    get_or_create_visitor_id,
)
from visitrack.tracking.page import DomEvent, Listener, Page
from visitrack.tracking.schema import CustomData, TrackingEvent
from visitrack.tracking.transport import Transport, select_transport

logger = logging.getLogger("visitrack.tracking")

SCROLL_THRESHOLDS = (25, 50, 75, 100)
CLICK_TEXT_LIMIT = 100
CLICK_OPT_IN_ATTRIBUTE = "data-track-click"
_CLICKABLE_TAGS = {"a", "button"}


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with ``call_later`` semantics, e.g. an asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


def scroll_percent(page: Page) -> int | None:
    """Percentage of the scrollable height scrolled, or None if the page cannot scroll."""
    scrollable = page.scroll_height - page.viewport_height
    if scrollable <= 0:
        return None
    percent = math.floor(page.scroll_y / scrollable * 100 + 0.5)
    return max(0, min(100, percent))


class ScrollDepth:
    """Per-page-load scroll threshold bookkeeping.

    Only the highest threshold newly crossed by an observation is reported,
    and never one at or below a threshold already reported, so scrolling up
    and back down does not fire again.
    """

    def __init__(self, thresholds: tuple[int, ...] = SCROLL_THRESHOLDS) -> None:
        self.thresholds = thresholds
        self.max_threshold = 0
        self.max_percent = 0

    def observe(self, percent: int) -> int | None:
        self.max_percent = max(self.max_percent, percent)
        crossed = [t for t in self.thresholds if self.max_threshold < t <= percent]
        if not crossed:
            return None
        self.max_threshold = crossed[-1]
        return self.max_threshold


class Tracker:
    """
    Tracker handle for one page.

    Each handle owns its identity, queue and listeners, so several trackers
    can coexist (one per page, or one per test).

    Usage:
        from visitrack.tracking import MemoryStorage, Page, Tracker, TrackerSettings

        page = Page(url="https://example.com/", title="Home")
        tracker = Tracker(page, MemoryStorage(), TrackerSettings(api_url="https://t.example.com"))
        tracker.track_event("newsletter_open")   # queued until initialized
        tracker.initialize("T1")                 # page_view, then the queued event
        page.scroll_to(1200)                     # scroll_depth after the debounce
        tracker.close()
    """

    def __init__(
        self,
        page: Page,
        storage: Storage,
        settings: TrackerSettings | None = None,
        transport: Transport | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create an uninitialized tracker.

        Args:
            page: Page to observe and read metadata from.
            storage: Durable storage holding the visitor id.
            settings: Tracker settings; defaults to ``TrackerSettings()``.
            transport: Delivery transport; chosen by ``select_transport`` when omitted.
            scheduler: Debounce scheduler; defaults to the running event loop,
                and scroll depth is evaluated immediately when there is none.
            clock: Monotonic clock in seconds, used for time on page.
        """
        self.page = page
        self.storage = storage
        self.settings = settings or TrackerSettings()
        self.transport = transport
        self.scheduler = scheduler
        self.clock = clock

        self.tracking_id: str | None = None
        self.visitor_id: str | None = None
        self.session_id: str | None = None

        self._initialized = False
        self._queue: deque[tuple[str, CustomData | None]] = deque()
        self._page_load_time = clock()
        self._scroll = ScrollDepth()
        self._scroll_timer: TimerHandle | None = None
        self._listeners: list[tuple[str, Listener]] = []

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def max_scroll_depth(self) -> int:
        return self._scroll.max_threshold

    def _log(self, message: str, *args: object) -> None:
        if self.settings.debug:
            logger.debug("[Analytics] " + message, *args)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self, tracking_id: str | None = None) -> bool:
        """Initialize the tracker; a no-op when already initialized.

        Returns:
            True if the tracker is initialized after the call.
        """
        if self._initialized:
            return True

        tracking_id = tracking_id or self.settings.tracking_id
        if not tracking_id:
            logger.error("No tracking ID provided; tracker not initialized")
            return False

        self.tracking_id = tracking_id
        self.visitor_id = get_or_create_visitor_id(self.storage)
        self.session_id = generate_session_id()
        if self.transport is None:
            self.transport = select_transport(self.page)

        self._install_listeners()
        self._initialized = True

        if self.settings.auto_track:
            self.track_page_view()

        while self._queue:
            event_type, custom_data = self._queue.popleft()
            self.track_event(event_type, custom_data)

        self._log(
            "Tracker initialized (trackingId=%s visitorId=%s sessionId=%s)",
            self.tracking_id,
            self.visitor_id,
            self.session_id,
        )
        return True

    def close(self) -> None:
        """Remove listeners, cancel pending work and close the transport."""
        for event_type, listener in self._listeners:
            self.page.remove_event_listener(event_type, listener)
        self._listeners.clear()
        self._cancel_scroll_timer()
        if self.transport is not None:
            self.transport.close()

    # -------------------------------------------------------------------------
    # Emission
    # -------------------------------------------------------------------------

    def track_page_view(self, custom_data: CustomData | None = None) -> TrackingEvent | None:
        """Track a ``page_view`` enriched with page and device metadata."""
        page = self.page
        data: CustomData = {
            "title": page.title,
            "url": page.url,
            "referrer": page.referrer,
            "userAgent": page.user_agent,
            "screenResolution": f"{page.screen_width}x{page.screen_height}",
            "viewportSize": f"{page.viewport_width}x{page.viewport_height}",
            "language": page.language,
            "timezone": page.timezone,
        }
        data.update(custom_data or {})
        return self.track_event("page_view", data)

    def track_event(
        self,
        event_type: str,
        custom_data: CustomData | None = None,
    ) -> TrackingEvent | None:
        """Track an event, queueing it if the tracker is not initialized yet.

        Returns:
            The event handed to the transport, or None if it was queued or dropped.
        """
        if not self._initialized:
            self._queue.append((event_type, custom_data))
            return None

        try:
            event = TrackingEvent(
                tracking_id=self.tracking_id,
                visitor_id=self.visitor_id,
                session_id=self.session_id,
                event_type=event_type,
                page_url=self.page.url,
                page_title=self.page.title or None,
                referrer=self.page.referrer or None,
                timestamp=datetime.now(UTC),
                custom_data=dict(custom_data or {}),
            )
        except ValidationError as exc:
            self._log("Dropping invalid %r event: %s", event_type, exc)
            return None

        self.transport.send(self.settings.track_url, event.to_wire())
        self._log("Event sent: %s", event.event_type)
        return event

    def gtag(self, *args: Any) -> None:
        """Accept calls in the ``gtag('config', id)`` / ``gtag('event', type, data)`` style."""
        if not args:
            return
        command = args[0]
        if command == "config" and len(args) > 1 and args[1]:
            self.initialize(args[1])
        elif command == "event" and len(args) > 1:
            self.track_event(args[1], args[2] if len(args) > 2 else None)

    # -------------------------------------------------------------------------
    # Automatic instrumentation
    # -------------------------------------------------------------------------

    def _install_listeners(self) -> None:
        for event_type, listener in (
            ("visibilitychange", self._on_visibility_change),
            ("click", self._on_click),
            ("submit", self._on_submit),
            ("scroll", self._on_scroll),
            ("beforeunload", self._on_unload),
        ):
            self.page.add_event_listener(event_type, listener)
            self._listeners.append((event_type, listener))

    def _time_on_page_ms(self) -> int:
        return int((self.clock() - self._page_load_time) * 1000)

    def _on_visibility_change(self, event: DomEvent) -> None:
        if self.page.visibility_state == "hidden":
            self.track_event("page_hidden", {"timeOnPage": self._time_on_page_ms()})
        else:
            self._page_load_time = self.clock()
            self.track_event("page_visible")

    def _on_click(self, event: DomEvent) -> None:
        target = event.target
        if target is None:
            return
        tag = target.tag_name.lower()
        if tag not in _CLICKABLE_TAGS and target.get_attribute(CLICK_OPT_IN_ATTRIBUTE) is None:
            return
        self.track_event(
            "click",
            {
                "element": tag,
                "text": target.text_content.strip()[:CLICK_TEXT_LIMIT],
                "href": target.href or None,
                "classes": target.class_name,
                "id": target.id,
            },
        )

    def _on_submit(self, event: DomEvent) -> None:
        form = event.target
        if form is None:
            return
        self.track_event(
            "form_submit",
            {
                "formId": form.id,
                "formClasses": form.class_name,
                "action": getattr(form, "action", ""),
            },
        )

    def _on_scroll(self, event: DomEvent) -> None:
        self._cancel_scroll_timer()
        scheduler = self.scheduler
        if scheduler is None:
            try:
                scheduler = asyncio.get_running_loop()
            except RuntimeError:
                self._check_scroll_depth()
                return
        self._scroll_timer = scheduler.call_later(
            self.settings.scroll_debounce, self._check_scroll_depth
        )

    def _cancel_scroll_timer(self) -> bool:
        if self._scroll_timer is None:
            return False
        self._scroll_timer.cancel()
        self._scroll_timer = None
        return True

    def _check_scroll_depth(self) -> None:
        self._scroll_timer = None
        percent = scroll_percent(self.page)
        if percent is None:
            return
        threshold = self._scroll.observe(percent)
        if threshold is not None:
            self.track_event("scroll_depth", {"depth": threshold})

    def _on_unload(self, event: DomEvent) -> None:
        # A scroll still inside its debounce window is evaluated before leaving.
        if self._cancel_scroll_timer():
            self._check_scroll_depth()
        self.track_event(
            "page_unload",
            {
                "timeOnPage": self._time_on_page_ms(),
                "scrollDepth": self._scroll.max_threshold,
            },
        )


def init(
    page: Page,
    storage: Storage,
    tracking_id: str | None = None,
    settings: TrackerSettings | None = None,
    transport: Transport | None = None,
    scheduler: Scheduler | None = None,
) -> Tracker:
    """Create a tracker for ``page`` and initialize it.

    The returned handle is initialized unless no tracking id was available,
    in which case it keeps queueing calls until ``initialize`` succeeds.
    """
    tracker = Tracker(
        page,
        storage,
        settings=settings,
        transport=transport,
        scheduler=scheduler,
    )
    tracker.initialize(tracking_id)
    return tracker
