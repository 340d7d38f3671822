"""Pytest fixtures for the Visitrack tracker tests."""

from collections.abc import Callable

import pytest

from visitrack.tracking import MemoryStorage, Page, Tracker, TrackerSettings


class RecordingTransport:
    """Transport that keeps every payload instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []
        self.closed = False

    def send(self, url: str, payload: dict) -> None:
        self.sent.append((url, payload))

    def close(self) -> None:
        self.closed = True

    @property
    def payloads(self) -> list[dict]:
        return [payload for _, payload in self.sent]

    def of_type(self, event_type: str) -> list[dict]:
        return [p for p in self.payloads if p["eventType"] == event_type]


class ManualTimer:
    def __init__(self, scheduler: "ManualScheduler", due: float, callback: Callable[[], object]):
        self.scheduler = scheduler
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """``call_later`` driven by an explicit ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], object]) -> ManualTimer:
        timer = ManualTimer(self, self.now + delay, callback)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [t for t in self.timers if not t.cancelled and t.due <= self.now]
        self.timers = [t for t in self.timers if t not in due and not t.cancelled]
        for timer in due:
            timer.callback()

    @property
    def pending(self) -> int:
        return sum(1 for t in self.timers if not t.cancelled)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def page() -> Page:
    """A scrollable page: 1000px of scrollable height."""
    return Page(
        url="https://example.com/",
        title="Example",
        referrer="https://search.example.org/",
        user_agent="Mozilla/5.0 (X11; Linux x86_64) Test/1.0",
        language="en-GB",
        timezone="Europe/London",
        screen_width=2560,
        screen_height=1440,
        viewport_width=1280,
        viewport_height=800,
        scroll_height=1800,
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> TrackerSettings:
    return TrackerSettings(api_url="https://track.example.com/", tracking_id=None, debug=True)


@pytest.fixture
def tracker(page, storage, settings, transport, scheduler, clock) -> Tracker:
    """An uninitialized tracker wired to recording test doubles."""
    return Tracker(
        page,
        storage,
        settings=settings,
        transport=transport,
        scheduler=scheduler,
        clock=clock,
    )
