# ==============================================================================
# HTTP Geolocation Resolver
# ==============================================================================
"""
IP geolocation over HTTP using requests.

The lookup resolves the caller's own public IP (the service sees the source
address of the request), so no IP is passed in.
"""

import logging

import requests

from sitepulse.core.errors import GeolocationError
from sitepulse.core.models import UNKNOWN, GeoData
from sitepulse.utils.config import get_settings

logger = logging.getLogger(__name__)

# Response field -> GeoData field
FIELD_MAP = {
    "country_name": "country",
    "city": "city",
    "region": "region",
    "timezone": "timezone",
    "org": "isp",
}


def parse_geolocation(payload: dict) -> GeoData:
    """Map a lookup response body to GeoData; missing or empty fields become Unknown."""
    values = {}
    for source, target in FIELD_MAP.items():
        value = payload.get(source)
        values[target] = str(value) if value not in (None, "") else UNKNOWN
    return GeoData(**values)


class HttpGeolocationResolver:
    """
    Resolves the caller's geolocation with one GET request.

    Args:
        url: Lookup URL. If None, uses settings.
        timeout: Socket timeout in seconds. If None, uses settings.
        session: requests.Session to reuse connections (new one if None)
    """

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        settings = get_settings().geolocation
        self.url = url or settings.url
        self.timeout = timeout if timeout is not None else settings.timeout_seconds
        self._session = session or requests.Session()

    def lookup(self) -> GeoData:
        """
        Perform the lookup.

        Raises:
            GeolocationError: On network errors, non-2xx responses or a body
                that is not a JSON object
        """
        try:
            response = self._session.get(self.url, timeout=self.timeout)
        except requests.RequestException as e:
            raise GeolocationError(f"geolocation request failed: {e}") from e

        if not response.ok:
            raise GeolocationError(f"geolocation lookup returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise GeolocationError("geolocation response is not JSON") from e
        if not isinstance(payload, dict):
            raise GeolocationError("geolocation response is not a JSON object")

        # ipapi.co reports quota and lookup failures in a 200 body
        if payload.get("error"):
            raise GeolocationError(f"geolocation lookup failed: {payload.get('reason', 'error')}")

        return parse_geolocation(payload)

    def close(self) -> None:
        self._session.close()
