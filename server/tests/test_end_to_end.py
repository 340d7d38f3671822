"""A tracker driving the ingestion server in-process."""

import asyncio

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport

from visitrack.tracking import FetchTransport, Form, MemoryStorage, Page, Tracker, TrackerSettings
from visitrack.tracking_server.main import app


@pytest.fixture
def statuses() -> list[int]:
    return []


@pytest_asyncio.fixture
async def fetch(client, statuses):
    """FetchTransport posting straight into the app (``client`` wires app.state)."""

    async def record(response: httpx.Response) -> None:
        statuses.append(response.status_code)

    transport = FetchTransport(
        httpx.AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            event_hooks={"response": [record]},
        )
    )
    yield transport
    await transport.aclose()


def _page() -> Page:
    return Page(
        url="https://example.com/",
        title="Home",
        viewport_height=800,
        scroll_height=1800,
        supports_beacon=False,
    )


class TestPageLoad:
    async def test_one_page_load(self, fetch, statuses, forwarder):
        """GIVEN a visit that scrolls, submits and leaves SHOULD land four correlated events."""
        page = _page()
        tracker = Tracker(
            page,
            MemoryStorage(),
            TrackerSettings(api_url="http://test", tracking_id="T1", scroll_debounce=10),
            transport=fetch,
        )

        assert tracker.initialize()
        page.scroll_to(600)
        page.submit(Form(id="signup", action="/signup"))
        page.unload()
        await fetch.drain()

        assert statuses == [200, 200, 200, 200]
        by_type = {event.event_type: event for event in forwarder.events}
        assert set(by_type) == {"page_view", "form_submit", "scroll_depth", "page_unload"}
        assert {event.visitor_id for event in forwarder.events} == {tracker.visitor_id}
        assert {event.session_id for event in forwarder.events} == {tracker.session_id}
        assert {event.tracking_id for event in forwarder.events} == {"T1"}

        assert by_type["scroll_depth"].custom_data == {"depth": 50}
        assert by_type["page_unload"].custom_data["scrollDepth"] == 50
        assert by_type["form_submit"].custom_data["formId"] == "signup"
        assert by_type["page_view"].custom_data["viewportSize"] == "1280x800"

        tracker.close()

    async def test_debounced_scroll_on_event_loop(self, fetch, statuses, forwarder):
        page = _page()
        tracker = Tracker(
            page,
            MemoryStorage(),
            TrackerSettings(
                api_url="http://test", tracking_id="T1", scroll_debounce=0.01, auto_track=False
            ),
            transport=fetch,
        )
        tracker.initialize()

        for y in (200, 500, 1000):
            page.scroll_to(y)
        await asyncio.sleep(0.05)
        await fetch.drain()

        assert statuses == [200]
        [event] = forwarder.events
        assert event.custom_data == {"depth": 100}

        tracker.close()

    async def test_visitor_survives_page_loads(self, fetch, forwarder):
        storage = MemoryStorage()
        settings = TrackerSettings(api_url="http://test", tracking_id="T1")

        first = Tracker(_page(), storage, settings, transport=fetch)
        first.initialize()
        second = Tracker(_page(), storage, settings, transport=fetch)
        second.initialize()
        await fetch.drain()

        assert first.visitor_id == second.visitor_id
        assert first.session_id != second.session_id
        assert len({event.session_id for event in forwarder.events}) == 2
