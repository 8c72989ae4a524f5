# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- fakeredis-backed Valkey context storage and change channel
- An in-memory Data Store on a manual clock
- A browsing context and a telemetry client factory
"""

import fakeredis
import pytest

from sitepulse.cli.simulate import ManualClock
from sitepulse.core.environment import BrowsingContext
from sitepulse.core.errors import GeolocationError
from sitepulse.core.models import GeoData
from sitepulse.infrastructure.channels.valkey import ValkeyChangeChannel
from sitepulse.infrastructure.repositories.memory import InMemoryDataStore
from sitepulse.infrastructure.storage.memory import MemoryContextStorage
from sitepulse.infrastructure.storage.valkey import ValkeyContextStorage
from sitepulse.tracking.client import TelemetryClient
from sitepulse.tracking.geolocation import GeolocationCache

# 2023-11-14 22:13:20 UTC
START_TIME = 1_700_000_000.0

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0 Safari/537.36"
)

BERLIN = GeoData(
    country="Germany", city="Berlin", region="Berlin", timezone="Europe/Berlin", isp="ExampleNet"
)


class StaticResolver:
    """Geolocation resolver returning a fixed answer and counting lookups."""

    def __init__(self, geo: GeoData = BERLIN, error: Exception | None = None):
        self.geo = geo
        self.error = error
        self.calls = 0

    def lookup(self) -> GeoData:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.geo


@pytest.fixture()
def fake_redis():
    """A clean fakeredis instance for each test.

    Uses decode_responses=True to match the real Valkey client behavior.
    """
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.flushall()
    client.close()


@pytest.fixture()
def valkey_storage(fake_redis):
    """Context storage for tab "tab-1" backed by fakeredis."""
    return ValkeyContextStorage("tab-1", client=fake_redis, ttl_seconds=60)


@pytest.fixture()
def valkey_channel(fake_redis):
    """A change channel backed by fakeredis pub/sub."""
    channel = ValkeyChangeChannel(client=fake_redis, prefix="test:changes:")
    yield channel
    for worker in list(channel._workers):
        worker.stop()


@pytest.fixture()
def clock():
    return ManualClock(START_TIME)


@pytest.fixture()
def store(clock):
    return InMemoryDataStore(clock=clock)


@pytest.fixture()
def context():
    return BrowsingContext(
        user_agent=CHROME_WINDOWS_UA,
        path="/home",
        title="Home",
        scroll_height=2720,
        viewport_height=720,
    )


@pytest.fixture()
def resolver():
    return StaticResolver()


@pytest.fixture()
def failing_resolver():
    return StaticResolver(error=GeolocationError("HTTP 429"))


@pytest.fixture()
def make_client(context, store, clock, resolver):
    """Factory for telemetry clients sharing the test's store and clock.

    Keyword arguments override the defaults; ready=True marks the client
    ready so track_* calls are delivered without mounting a harness.
    """

    def _make(ready: bool = True, **overrides) -> TelemetryClient:
        kwargs = {
            "context": context,
            "store": store,
            "storage": MemoryContextStorage(),
            "geolocation": GeolocationCache(resolver=resolver, timeout=1.0, enabled=True),
            "clock": clock,
            "delivery_timeout": 1.0,
        }
        kwargs.update(overrides)
        client = TelemetryClient(**kwargs)
        if ready:
            client.mark_ready()
        return client

    return _make
