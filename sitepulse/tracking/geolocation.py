# ==============================================================================
# Geolocation Cache
# ==============================================================================
"""
Memoized geolocation for one telemetry client.

The first call starts a single lookup; concurrent callers await the same
in-flight task, and every later call returns the stored result. Failures are
stored too, as GeoData.unknown(), so a blocked or rate-limited resolver is
asked exactly once.
"""

import asyncio
import logging
from typing import Protocol

from sitepulse.core.errors import GeolocationError
from sitepulse.core.models import GeoData
from sitepulse.infrastructure.geolocation import HttpGeolocationResolver
from sitepulse.utils.config import get_settings

logger = logging.getLogger(__name__)


class GeolocationResolver(Protocol):
    def lookup(self) -> GeoData: ...


class GeolocationCache:
    """
    Geolocation memoized for the lifetime of the instance.

    Args:
        resolver: Object with a blocking lookup() -> GeoData. If None, an
            HttpGeolocationResolver is created on first use.
        timeout: Hard timeout for the lookup in seconds. If None, uses settings.
        enabled: When False, every call returns GeoData.unknown() without a
            lookup. If None, uses settings.
    """

    def __init__(
        self,
        resolver: GeolocationResolver | None = None,
        timeout: float | None = None,
        enabled: bool | None = None,
    ):
        settings = get_settings().geolocation
        self._resolver = resolver
        self.timeout = timeout if timeout is not None else settings.timeout_seconds
        self.enabled = enabled if enabled is not None else settings.enabled
        self._result: GeoData | None = None
        self._pending: asyncio.Future | None = None

    @property
    def resolved(self) -> bool:
        return self._result is not None

    def _get_resolver(self) -> GeolocationResolver:
        if self._resolver is None:
            self._resolver = HttpGeolocationResolver(timeout=self.timeout)
        return self._resolver

    async def get_geolocation(self) -> GeoData:
        """Return the cached geolocation, resolving it on first use. Never raises."""
        if self._result is not None:
            return self._result
        if not self.enabled:
            self._result = GeoData.unknown()
            return self._result

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._resolve())
        return await asyncio.shield(self._pending)

    async def _resolve(self) -> GeoData:
        try:
            geo = await asyncio.wait_for(
                asyncio.to_thread(self._get_resolver().lookup), self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Geolocation lookup timed out after %.1fs", self.timeout)
            geo = GeoData.unknown()
        except GeolocationError as e:
            logger.warning("Geolocation unavailable: %s", e)
            geo = GeoData.unknown()
        except Exception as e:
            logger.warning("Geolocation lookup error: %s", e)
            geo = GeoData.unknown()

        self._result = geo
        return geo

    def reset(self) -> None:
        """Forget the cached result."""
        self._result = None
        self._pending = None
