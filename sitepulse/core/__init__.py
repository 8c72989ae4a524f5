# ==============================================================================
# Core Domain Logic
# ==============================================================================
"""
Pure domain logic with no external dependencies.

This module contains:
- Domain models (EventRecord, SessionRecord, AggregationSummary, ...)
- Error taxonomy and the Result type
- Environment fingerprinting, session lifecycle and aggregation rules
"""

from sitepulse.core.errors import (
    AggregationError,
    DeliveryError,
    DeliveryTimeout,
    GeolocationError,
    Result,
    StorageUnavailableError,
    StoreRejected,
    TelemetryError,
)
from sitepulse.core.models import (
    EVENTS_TABLE,
    SESSIONS_TABLE,
    AggregationSummary,
    DashboardSnapshot,
    DeviceInfo,
    DeviceType,
    EventRecord,
    EventType,
    GeoData,
    SessionRecord,
    TrackingEvent,
)
from sitepulse.core.session_processor import SessionProcessor

__all__ = [
    # Errors
    "AggregationError",
    "DeliveryError",
    "DeliveryTimeout",
    "GeolocationError",
    "Result",
    "StorageUnavailableError",
    "StoreRejected",
    "TelemetryError",
    # Models
    "EVENTS_TABLE",
    "SESSIONS_TABLE",
    "AggregationSummary",
    "DashboardSnapshot",
    "DeviceInfo",
    "DeviceType",
    "EventRecord",
    "EventType",
    "GeoData",
    "SessionRecord",
    "TrackingEvent",
    # Processing
    "SessionProcessor",
]
