"""Server-side models for Visitrack ingestion."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Re-export SDK schema types for convenience
from visitrack.tracking.schema import (
    BUILTIN_EVENT_TYPES,
    DEFAULT_EVENT_TYPE,
    CustomData,
    TrackingEvent,
)

__all__ = [
    # SDK re-exports
    "BUILTIN_EVENT_TYPES",
    "DEFAULT_EVENT_TYPE",
    "CustomData",
    "TrackingEvent",
    # Server models
    "REQUIRED_FIELDS",
    "TrackRequest",
    "TrackedEvent",
    "TrackResponse",
    "ErrorResponse",
    "TrackingHealth",
    "RateLimitError",
]

REQUIRED_FIELDS = {
    "trackingId": "tracking_id",
    "pageUrl": "page_url",
    "sessionId": "session_id",
    "visitorId": "visitor_id",
}
"""Wire name to attribute name of fields that must be present and non-empty."""


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# API Input Models
# =============================================================================


class TrackRequest(_CamelModel):
    """Input for POST /track.

    Every field is optional at parse time so that missing required fields are
    reported together, by wire name, instead of as a generic validation error.
    The client is never trusted: presence is checked here, not in the tracker.
    """

    model_config = ConfigDict(extra="ignore")

    tracking_id: str | None = None
    event_type: str | None = None
    page_url: str | None = None
    page_title: str | None = None
    referrer: str | None = None
    session_id: str | None = None
    visitor_id: str | None = None
    timestamp: str | None = None
    custom_data: CustomData | None = None

    def missing_fields(self) -> list[str]:
        """Wire names of required fields that are absent or empty."""
        return [alias for alias, name in REQUIRED_FIELDS.items() if not getattr(self, name)]


# =============================================================================
# Forwarded Models
# =============================================================================


class TrackedEvent(_CamelModel):
    """An accepted event as handed to downstream processing.

    Submitted fields are carried verbatim (``event_type`` defaulted to
    ``page_view``); ``user_agent``, ``ip_address`` and ``received_at`` are
    observed by the server.
    """

    model_config = ConfigDict(frozen=True)

    tracking_id: str
    event_type: str = DEFAULT_EVENT_TYPE
    page_url: str
    page_title: str | None = None
    referrer: str | None = None
    session_id: str
    visitor_id: str
    timestamp: str | None = None
    custom_data: CustomData = Field(default_factory=dict)
    user_agent: str = ""
    ip_address: str = ""
    received_at: datetime

    @classmethod
    def from_request(
        cls,
        data: TrackRequest,
        user_agent: str,
        ip_address: str,
        received_at: datetime,
    ) -> "TrackedEvent":
        return cls(
            tracking_id=data.tracking_id,
            event_type=data.event_type or DEFAULT_EVENT_TYPE,
            page_url=data.page_url,
            page_title=data.page_title,
            referrer=data.referrer,
            session_id=data.session_id,
            visitor_id=data.visitor_id,
            timestamp=data.timestamp,
            custom_data=data.custom_data or {},
            user_agent=user_agent,
            ip_address=ip_address,
            received_at=received_at,
        )


# =============================================================================
# Responses
# =============================================================================


class TrackResponse(BaseModel):
    """Success acknowledgement; carries no event id."""

    success: bool = True
    message: str = "Event tracked successfully"


class ErrorResponse(BaseModel):
    """Client or server error envelope."""

    success: bool = False
    error: str


class TrackingHealth(BaseModel):
    """Liveness of the tracking subsystem."""

    success: bool = True
    service: str = "tracking"
    timestamp: datetime


class RateLimitError(_CamelModel):
    """Body of a 429 response."""

    error: str
    retry_after: int
