"""Event transports.

Both transports share one contract: ``send`` returns immediately, never
raises, never retries, and never reads the response on behalf of the caller.
Delivery failures are logged at debug level and otherwise dropped.
"""

import asyncio
import logging
import queue
import threading
from typing import Protocol

import httpx

from visitrack.tracking.page import Page

logger = logging.getLogger(__name__)

_HEADERS = {"Content-Type": "application/json"}


class Transport(Protocol):
    """Non-blocking, non-retrying event delivery."""

    def send(self, url: str, payload: dict) -> None: ...

    def close(self) -> None: ...


class BeaconTransport:
    """Delivery that survives tracker teardown.

    Payloads are queued and posted by a daemon worker thread, so ``send``
    never waits on the network. ``close`` stops accepting new payloads but
    lets the queued ones finish, the way a browser completes beacons after
    the page has gone.
    """

    _STOP = object()

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        drain_timeout: float = 5.0,
    ) -> None:
        self.client = client or httpx.Client(timeout=timeout, headers=_HEADERS)
        self.drain_timeout = drain_timeout
        self._queue: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None
        self._closed = False
        self._lock = threading.Lock()

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._worker is None:
                self._worker = threading.Thread(
                    target=self._run, name="visitrack-beacon", daemon=True
                )
                self._worker.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is self._STOP:
                break
            url, payload = item
            try:
                response = self.client.post(url, json=payload)
                logger.debug("Beacon to %s answered %s", url, response.status_code)
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                logger.debug("Beacon to %s failed: %s", url, exc)
        self.client.close()

    def send(self, url: str, payload: dict) -> None:
        if self._closed:
            logger.debug("Beacon transport closed, dropping event for %s", url)
            return
        self._ensure_worker()
        self._queue.put((url, payload))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._worker is None:
            self.client.close()
            return
        self._queue.put(self._STOP)
        self._worker.join(self.drain_timeout)


class FetchTransport:
    """Keep-alive POST scheduled on the running event loop and never awaited.

    Used where the navigation-surviving transport is unavailable. A call made
    outside a running event loop cannot be scheduled and is dropped.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.client = client or httpx.AsyncClient(timeout=timeout, headers=_HEADERS)
        self._pending: set[asyncio.Task] = set()
        self._closed = False
        self._closing: asyncio.Future | None = None

    async def _post(self, url: str, payload: dict) -> None:
        try:
            response = await self.client.post(url, json=payload)
            logger.debug("Fetch to %s answered %s", url, response.status_code)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Fetch to %s failed: %s", url, exc)

    def send(self, url: str, payload: dict) -> None:
        if self._closed:
            logger.debug("Fetch transport closed, dropping event for %s", url)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, dropping event for %s", url)
            return
        task = loop.create_task(self._post(url, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for in-flight requests to complete."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _release(self) -> None:
        await self.drain()
        await self.client.aclose()

    def close(self) -> None:
        """Stop accepting events; the client is released once in-flight requests finish.

        Without a running event loop the release is left to ``aclose``.
        """
        if self._closed:
            return
        self._closed = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, HTTP client left for aclose()")
            return
        self._closing = loop.create_task(self._release())

    async def aclose(self) -> None:
        self._closed = True
        if self._closing is None:
            self._closing = asyncio.ensure_future(self._release())
        await self._closing


def select_transport(page: Page) -> Transport:
    """Pick the navigation-surviving transport when the page supports it."""
    if page.supports_beacon:
        return BeaconTransport()
    return FetchTransport()
