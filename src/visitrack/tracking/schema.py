"""
Visitrack event schema.

This module defines the wire format shared by the tracker and the ingestion
server. Every event is bound to a tracking id (the tenant's site), a visitor
id (durable, per browser/device) and a session id (per tracker lifetime).

Field names are snake_case in Python and camelCase on the wire, so the JSON
produced here is exactly what ``POST /track`` accepts.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, JsonValue
from pydantic.alias_generators import to_camel

# =============================================================================
# TYPE DEFINITIONS
# =============================================================================

BuiltinEventType = Literal[
    # Page lifecycle
    "page_view",      # Page loaded (or SPA route shown)
    "page_hidden",    # Tab hidden; carries timeOnPage
    "page_visible",   # Tab visible again; time-on-page timer reset
    "page_unload",    # Page being torn down; carries timeOnPage and scrollDepth

    # Interaction
    "click",          # Anchor, button or opted-in element clicked
    "form_submit",    # Form submitted
    "scroll_depth",   # 25/50/75/100 percent threshold crossed
]
"""
Event types emitted by the tracker's automatic instrumentation.

Tenants may emit any other non-empty string as a custom event type.
"""

BUILTIN_EVENT_TYPES: tuple[str, ...] = BuiltinEventType.__args__

DEFAULT_EVENT_TYPE = "page_view"

CustomData = dict[str, JsonValue]
"""Event payload: string keys mapped to JSON values (str, number, bool, null, list, dict)."""


# =============================================================================
# CORE MODELS
# =============================================================================

class TrackingEvent(BaseModel):
    """
    One recorded interaction or lifecycle signal.

    Events are immutable once constructed. Which ``custom_data`` keys carry
    meaning depends on ``event_type``, but no per-type schema is enforced.

    Attributes:
        tracking_id: Tenant site/property identifier, assigned out-of-band.
        visitor_id: Durable client-generated visitor identifier.
        session_id: Identifier minted per tracker initialization.
        event_type: Built-in or custom event type.
        page_url: Full URL of the page that produced the event.
        page_title: Document title, if any.
        referrer: Document referrer, if any.
        timestamp: Client-side capture time (UTC).
        custom_data: Event-specific payload.

    Example:
        >>> event = TrackingEvent(
        ...     tracking_id="T1",
        ...     visitor_id="visitor_1700000000000_k3j9x0a2b",
        ...     session_id="session_1700000000000_q8w7e6r5t",
        ...     event_type="scroll_depth",
        ...     page_url="https://example.com/",
        ...     timestamp="2026-01-25T10:00:00Z",
        ...     custom_data={"depth": 50},
        ... )
        >>> event.model_dump(mode="json", by_alias=True)["eventType"]
        'scroll_depth'
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    tracking_id: str = Field(min_length=1)
    visitor_id: str = Field(min_length=1)
    session_id: str = Field(min_length=1)
    event_type: str = Field(default=DEFAULT_EVENT_TYPE, min_length=1)
    page_url: str = Field(min_length=1)
    page_title: str | None = None
    referrer: str | None = None
    timestamp: datetime
    custom_data: CustomData = Field(default_factory=dict)

    def to_wire(self) -> dict:
        """Serialise to the camelCase JSON object posted to ``/track``."""
        return self.model_dump(mode="json", by_alias=True)
