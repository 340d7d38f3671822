"""Downstream forwarding of accepted events.

Forwarding is fire-and-forget from the endpoint's point of view: the
response is sent before ``forward`` runs, and a failure here is logged but
never reaches the client (at-most-once delivery).
"""

import asyncio
import logging
from typing import Any, Protocol

from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from visitrack.tracking_server.models import TrackedEvent

logger = logging.getLogger(__name__)


class ForwardingError(Exception):
    """Raised when an event cannot be handed downstream."""


class EventForwarder(Protocol):
    async def forward(self, event: TrackedEvent) -> None: ...


class LogForwarder:
    """Writes accepted events to the log; the default when no queue is wired up."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    async def forward(self, event: TrackedEvent) -> None:
        logger.log(
            self.level,
            "Tracking event received: %s",
            event.model_dump_json(by_alias=True),
        )


class QueueForwarder:
    """Hands events to an in-process asyncio queue drained by a worker."""

    def __init__(self, queue: asyncio.Queue[TrackedEvent] | None = None, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue[TrackedEvent] = queue or asyncio.Queue(maxsize=maxsize)

    async def forward(self, event: TrackedEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull as e:
            raise ForwardingError(
                f"Forward queue full ({self.queue.maxsize}), dropping {event.event_type} event"
            ) from e


class PostgresForwarder:
    """Inserts events into the ``tracked_events`` table (see ``sql/schema.sql``)."""

    def __init__(self, pool: AsyncConnectionPool[Any]) -> None:
        self.pool = pool

    async def forward(self, event: TrackedEvent) -> None:
        async with self.pool.connection() as conn:
            await conn.execute(
                """
                INSERT INTO tracked_events (
                    tracking_id, visitor_id, session_id, event_type,
                    page_url, page_title, referrer, client_timestamp,
                    custom_data, user_agent, ip_address, received_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    event.tracking_id,
                    event.visitor_id,
                    event.session_id,
                    event.event_type,
                    event.page_url,
                    event.page_title,
                    event.referrer,
                    event.timestamp,
                    Jsonb(event.custom_data),
                    event.user_agent,
                    event.ip_address,
                    event.received_at,
                ),
            )


async def dispatch(forwarder: EventForwarder, event: TrackedEvent) -> None:
    """Forward one event, logging instead of raising on failure."""
    try:
        await forwarder.forward(event)
    except Exception:
        logger.exception(
            "Failed to forward %s event for tracking id %s",
            event.event_type,
            event.tracking_id,
        )
