"""Pytest fixtures for Visitrack ingestion server tests."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from visitrack.tracking_server.config import Settings
from visitrack.tracking_server.main import app
from visitrack.tracking_server.models import TrackedEvent
from visitrack.tracking_server.services.counters import MemoryCounterStore
from visitrack.tracking_server.services.ratelimit import RateLimiter, build_policies


class RecordingForwarder:
    """Forwarder that keeps events in memory."""

    def __init__(self) -> None:
        self.events: list[TrackedEvent] = []

    async def forward(self, event: TrackedEvent) -> None:
        self.events.append(event)


class FakeClock:
    def __init__(self, start: float = 500.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    """Settings with a small tracking limit so tests can exhaust it."""
    return Settings(
        max_events_per_minute=50,
        rate_limit_window_ms=60_000,
        rate_limit_max_requests=10,
        redis_url=None,
        forwarder="log",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemoryCounterStore:
    return MemoryCounterStore(clock=clock)


@pytest.fixture
def limiter(store: MemoryCounterStore, settings: Settings) -> RateLimiter:
    return RateLimiter(store, build_policies(settings))


@pytest.fixture
def forwarder() -> RecordingForwarder:
    return RecordingForwarder()


@pytest_asyncio.fixture
async def client(
    settings: Settings,
    limiter: RateLimiter,
    forwarder: RecordingForwarder,
) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for testing."""
    app.state.settings = settings
    app.state.rate_limiter = limiter
    app.state.forwarder = forwarder

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def sample_event_data() -> dict:
    """A complete event as the tracker posts it."""
    return {
        "trackingId": "T1",
        "eventType": "click",
        "pageUrl": "https://example.com/pricing",
        "pageTitle": "Pricing",
        "referrer": "https://example.com/",
        "sessionId": "session_1769335200000_a1b2c3d4e",
        "visitorId": "visitor_1769335100000_f5g6h7i8j",
        "timestamp": "2026-01-25T10:00:00.000Z",
        "customData": {
            "element": "button",
            "text": "Buy now",
            "href": None,
            "classes": "cta",
            "id": "buy",
            "position": [120, 48.5],
            "flags": {"experiment": True},
        },
    }
