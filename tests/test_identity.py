# ==============================================================================
# Tests for Session Identity and Context Storage
# ==============================================================================
"""
Tests for session id minting, persistence across page loads of one tab and
the in-memory fallback when context storage is blocked.
"""

import re

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from sitepulse.core.errors import StorageUnavailableError
from sitepulse.infrastructure.storage.memory import MemoryContextStorage
from sitepulse.infrastructure.storage.valkey import ValkeyContextStorage
from sitepulse.tracking.identity import (
    SESSION_STORAGE_KEY,
    SessionIdentityManager,
    mint_session_id,
)

SESSION_ID_PATTERN = re.compile(r"^session_\d+_[0-9a-z]{9}$")


class _BrokenRedis:
    """Client whose every call fails like an unreachable server."""

    def get(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")

    setex = delete = get


# ==============================================================================
# mint_session_id
# ==============================================================================


class TestMintSessionId:
    def test_format(self):
        assert SESSION_ID_PATTERN.match(mint_session_id(1_700_000_000.5))

    def test_embeds_epoch_millis(self):
        assert mint_session_id(1_700_000_000.5).startswith("session_1700000000500_")

    def test_suffix_is_random(self):
        ids = {mint_session_id(1_700_000_000.0) for _ in range(50)}
        assert len(ids) == 50


# ==============================================================================
# SessionIdentityManager
# ==============================================================================


class TestSessionIdentityManager:
    def test_mints_and_persists(self, clock):
        storage = MemoryContextStorage()
        manager = SessionIdentityManager(storage, clock=clock)

        session_id = manager.get_session_id()

        assert SESSION_ID_PATTERN.match(session_id)
        assert storage.get_item(SESSION_STORAGE_KEY) == session_id

    def test_stable_within_instance(self, clock):
        manager = SessionIdentityManager(MemoryContextStorage(), clock=clock)
        assert manager.get_session_id() == manager.get_session_id()

    def test_shared_across_page_loads(self, clock):
        """A new page load in the same tab reuses the stored id."""
        storage = MemoryContextStorage()
        first = SessionIdentityManager(storage, clock=clock).get_session_id()
        clock.advance(30)
        second = SessionIdentityManager(storage, clock=clock).get_session_id()
        assert first == second

    def test_separate_tabs_get_separate_ids(self, clock):
        a = SessionIdentityManager(MemoryContextStorage(), clock=clock).get_session_id()
        b = SessionIdentityManager(MemoryContextStorage(), clock=clock).get_session_id()
        assert a != b

    def test_blocked_storage_falls_back_to_memory(self, clock):
        manager = SessionIdentityManager(MemoryContextStorage(blocked=True), clock=clock)

        session_id = manager.get_session_id()

        assert SESSION_ID_PATTERN.match(session_id)
        assert manager.get_session_id() == session_id

    def test_blocked_storage_degrades_to_one_session_per_load(self, clock):
        storage = MemoryContextStorage(blocked=True)
        first = SessionIdentityManager(storage, clock=clock).get_session_id()
        second = SessionIdentityManager(storage, clock=clock).get_session_id()
        assert first != second


# ==============================================================================
# ValkeyContextStorage
# ==============================================================================


class TestValkeyContextStorage:
    def test_round_trip(self, valkey_storage):
        valkey_storage.set_item("k", "v")
        assert valkey_storage.get_item("k") == "v"

    def test_missing_key(self, valkey_storage):
        assert valkey_storage.get_item("missing") is None

    def test_keys_are_namespaced_by_context(self, valkey_storage, fake_redis):
        valkey_storage.set_item(SESSION_STORAGE_KEY, "session_1_abc")
        assert fake_redis.get(f"sitepulse:context:tab-1:{SESSION_STORAGE_KEY}") == "session_1_abc"

    def test_writes_set_ttl(self, valkey_storage, fake_redis):
        valkey_storage.set_item("k", "v")
        ttl = fake_redis.ttl("sitepulse:context:tab-1:k")
        assert 0 < ttl <= 60

    def test_contexts_are_isolated(self, fake_redis):
        tab1 = ValkeyContextStorage("tab-1", client=fake_redis, ttl_seconds=60)
        tab2 = ValkeyContextStorage("tab-2", client=fake_redis, ttl_seconds=60)
        tab1.set_item("k", "one")
        assert tab2.get_item("k") is None

    def test_remove_item(self, valkey_storage):
        valkey_storage.set_item("k", "v")
        assert valkey_storage.remove_item("k") is True
        assert valkey_storage.remove_item("k") is False

    def test_redis_errors_become_storage_unavailable(self):
        storage = ValkeyContextStorage("tab-1", client=_BrokenRedis(), ttl_seconds=60)
        with pytest.raises(StorageUnavailableError):
            storage.get_item("k")
        with pytest.raises(StorageUnavailableError):
            storage.set_item("k", "v")

    def test_identity_survives_reload_through_valkey(self, valkey_storage, fake_redis, clock):
        first = SessionIdentityManager(valkey_storage, clock=clock).get_session_id()
        reloaded = ValkeyContextStorage("tab-1", client=fake_redis, ttl_seconds=60)
        assert SessionIdentityManager(reloaded, clock=clock).get_session_id() == first

    def test_unreachable_valkey_falls_back_to_memory(self, clock):
        storage = ValkeyContextStorage("tab-1", client=_BrokenRedis(), ttl_seconds=60)
        manager = SessionIdentityManager(storage, clock=clock)
        assert SESSION_ID_PATTERN.match(manager.get_session_id())
