# ==============================================================================
# Tracking
# ==============================================================================
"""
Client-side capture: session identity, geolocation, event emission, delivery,
session lifecycle and the listener harness.
"""

from sitepulse.tracking.client import TelemetryClient
from sitepulse.tracking.delivery import DeliveryLayer
from sitepulse.tracking.geolocation import GeolocationCache
from sitepulse.tracking.harness import HarnessState, ListenerHandle, ListenerHarness
from sitepulse.tracking.identity import SessionIdentityManager
from sitepulse.tracking.lifecycle import SessionLifecycleWriter

__all__ = [
    "DeliveryLayer",
    "GeolocationCache",
    "HarnessState",
    "ListenerHandle",
    "ListenerHarness",
    "SessionIdentityManager",
    "SessionLifecycleWriter",
    "TelemetryClient",
]
