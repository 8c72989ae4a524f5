# ==============================================================================
# Telemetry Errors
# ==============================================================================
"""
Error taxonomy for the telemetry pipeline.

Adapters translate library exceptions (psycopg2, redis, requests) into these
types at the boundary. Tracking entry points never raise them to the host
application; they are logged and returned inside a Result so failures stay
visible to diagnostics and tests.
"""

from dataclasses import dataclass


class TelemetryError(Exception):
    """Base exception for telemetry pipeline errors."""

    pass


class DeliveryError(TelemetryError):
    """Raised when an event or session write fails."""

    pass


class DeliveryTimeout(DeliveryError):
    """Raised when a write does not complete within the delivery timeout."""

    pass


class StoreRejected(DeliveryError):
    """Raised when the Data Store answers a write with an error."""

    pass


class StorageUnavailableError(TelemetryError):
    """Raised when browsing-context storage is blocked or unreachable."""

    pass


class GeolocationError(TelemetryError):
    """Raised when the geolocation lookup fails."""

    pass


class AggregationError(TelemetryError):
    """Raised when the dashboard summary cannot be fetched."""

    pass


@dataclass(frozen=True)
class Result:
    """
    Outcome of a fire-and-forget telemetry operation.

    Attributes:
        ok: True if the operation completed
        error: The failure, when ok is False and the operation was attempted
        skipped: True if the operation was dropped without being attempted
    """

    ok: bool
    error: TelemetryError | None = None
    skipped: bool = False

    @classmethod
    def success(cls) -> "Result":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: TelemetryError) -> "Result":
        return cls(ok=False, error=error)

    @classmethod
    def skip(cls) -> "Result":
        return cls(ok=False, skipped=True)

    @classmethod
    def combine(cls, *results: "Result") -> "Result":
        """Return the first failure, otherwise the first result."""
        for result in results:
            if not result.ok:
                return result
        return results[0] if results else cls.success()
