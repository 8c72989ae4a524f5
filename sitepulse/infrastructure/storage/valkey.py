# ==============================================================================
# Valkey Context Storage Implementation
# ==============================================================================
"""
Valkey/Redis implementation of the ContextStorage interface.

Keys are namespaced per browsing context:
    sitepulse:context:{context_id}:{key}

Every write refreshes a TTL, so a context that stops navigating (a closed
tab) loses its values after the TTL expires. Expiry is best-effort, like
sessionStorage being cleared on tab close.
"""

import logging

import redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from sitepulse.base.storage import ContextStorage
from sitepulse.core.errors import StorageUnavailableError
from sitepulse.utils.config import get_settings
from sitepulse.utils.retry import VALKEY_RETRIES

logger = logging.getLogger(__name__)

CONTEXT_KEY_PREFIX = "sitepulse:context:"


def get_valkey_client(url: str | None = None, socket_timeout: int = 2) -> redis.Redis:
    """
    Get a Valkey/Redis client connection.

    Configured with:
    - Short socket timeouts; storage sits on the capture path
    - Automatic retries with exponential backoff for transient failures
    - Health check interval to keep connections alive
    """
    if url is None:
        url = get_settings().valkey.url

    retry = Retry(ExponentialBackoff(cap=2, base=0.1), retries=VALKEY_RETRIES)

    return redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        retry=retry,
        retry_on_error=[RedisTimeoutError, RedisConnectionError],
        health_check_interval=30,
    )


class ValkeyContextStorage(ContextStorage):
    """
    Valkey/Redis implementation of ContextStorage.

    Any RedisError is reported as StorageUnavailableError so callers can fall
    back to in-memory values.
    """

    def __init__(
        self,
        context_id: str,
        client: redis.Redis | None = None,
        ttl_seconds: int | None = None,
    ):
        """
        Initialize context storage.

        Args:
            context_id: Identifier of the browsing context (tab)
            client: Redis client instance. If None, creates a new connection.
            ttl_seconds: Key TTL. If None, uses settings.
        """
        self._client = client or get_valkey_client()
        self._context_id = context_id
        if ttl_seconds is None:
            ttl_seconds = get_settings().valkey.context_ttl_minutes * 60
        self._ttl_seconds = ttl_seconds

    @property
    def client(self) -> redis.Redis:
        """Get the underlying Redis client."""
        return self._client

    def _key(self, key: str) -> str:
        return f"{CONTEXT_KEY_PREFIX}{self._context_id}:{key}"

    def get_item(self, key: str) -> str | None:
        try:
            return self._client.get(self._key(key))
        except RedisError as e:
            logger.warning("Context storage read failed for %s: %s", key, e)
            raise StorageUnavailableError(str(e)) from e

    def set_item(self, key: str, value: str) -> None:
        try:
            self._client.setex(self._key(key), self._ttl_seconds, value)
        except RedisError as e:
            logger.warning("Context storage write failed for %s: %s", key, e)
            raise StorageUnavailableError(str(e)) from e

    def remove_item(self, key: str) -> bool:
        try:
            return self._client.delete(self._key(key)) > 0
        except RedisError as e:
            raise StorageUnavailableError(str(e)) from e

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
