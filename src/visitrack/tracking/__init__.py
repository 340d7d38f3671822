"""
Visitrack Tracking - client tracker for the Visitrack ingestion pipeline.

The tracker establishes visitor and session identity, observes a page's
interaction signals and sends every event to ``POST /track`` over a
non-blocking, non-retrying transport.

Example:
    >>> from visitrack.tracking import FileStorage, Page, TrackerSettings, init
    >>> page = Page(url="https://example.com/", title="Home")
    >>> tracker = init(
    ...     page,
    ...     FileStorage("~/.visitrack/storage.json"),
    ...     tracking_id="T1",
    ...     settings=TrackerSettings(api_url="https://track.example.com"),
    ... )
    >>> tracker.track_event("signup_started", {"plan": "pro"})
"""

from visitrack.tracking.config import TrackerSettings
from visitrack.tracking.identity import (
    VISITOR_STORAGE_KEY,
    FileStorage,
    MemoryStorage,
    Storage,
    generate_session_id,
    generate_visitor_id,
    get_or_create_visitor_id,
)
from visitrack.tracking.page import DomEvent, Element, Form, Page
from visitrack.tracking.schema import (
    BUILTIN_EVENT_TYPES,
    DEFAULT_EVENT_TYPE,
    BuiltinEventType,
    CustomData,
    TrackingEvent,
)
from visitrack.tracking.tracker import SCROLL_THRESHOLDS, ScrollDepth, Tracker, init
from visitrack.tracking.transport import (
    BeaconTransport,
    FetchTransport,
    Transport,
    select_transport,
)

__all__ = [
    # Tracker
    "Tracker",
    "TrackerSettings",
    "init",
    "ScrollDepth",
    "SCROLL_THRESHOLDS",
    # Identity
    "Storage",
    "MemoryStorage",
    "FileStorage",
    "VISITOR_STORAGE_KEY",
    "generate_visitor_id",
    "generate_session_id",
    "get_or_create_visitor_id",
    # Page facade
    "Page",
    "Element",
    "Form",
    "DomEvent",
    # Transports
    "Transport",
    "BeaconTransport",
    "FetchTransport",
    "select_transport",
    # Schema
    "BuiltinEventType",
    "BUILTIN_EVENT_TYPES",
    "DEFAULT_EVENT_TYPE",
    "CustomData",
    "TrackingEvent",
]

__version__ = "0.1.0"
