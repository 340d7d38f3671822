"""Tracking routes - the ingestion API the tracker posts to."""

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from visitrack.tracking_server.models import TrackedEvent, TrackingHealth, TrackRequest, TrackResponse
from visitrack.tracking_server.services.forwarding import EventForwarder, dispatch
from visitrack.tracking_server.services.ratelimit import client_key, rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tracking"], dependencies=[Depends(rate_limit("tracking"))])


def get_forwarder(request: Request) -> EventForwarder:
    """Get the downstream forwarder from app state."""
    return request.app.state.forwarder


Forwarder = Annotated[EventForwarder, Depends(get_forwarder)]


@router.post("/track")
async def track(
    data: TrackRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    forwarder: Forwarder,
) -> TrackResponse:
    """Accept one event and hand it to downstream processing.

    Forwarding runs after the response is sent; its outcome never changes
    the acknowledgement.
    """
    missing = data.missing_fields()
    if missing:
        raise HTTPException(400, f"Missing required fields: {', '.join(missing)}")

    try:
        event = TrackedEvent.from_request(
            data,
            user_agent=request.headers.get("user-agent", ""),
            ip_address=client_key(request, request.app.state.settings.trust_forwarded_for),
            received_at=datetime.now(UTC),
        )
        background_tasks.add_task(dispatch, forwarder, event)
    except Exception as e:
        logger.exception("Tracking error for tracking id %s", data.tracking_id)
        raise HTTPException(500, "Failed to track event") from e

    return TrackResponse()


@router.get("/track/health")
async def tracking_health() -> TrackingHealth:
    """Liveness probe scoped to the tracking subsystem."""
    return TrackingHealth(timestamp=datetime.now(UTC))
