# ==============================================================================
# Valkey Change Channel Implementation
# ==============================================================================
"""
Valkey/Redis pub/sub implementation of the ChangeChannel interface.

Each table has its own channel:
    sitepulse:changes:{table}

Messages are the inserted row serialized as JSON. Each subscription runs a
redis-py pub/sub worker thread; rows and status changes are handed to the
subscriber's event loop with call_soon_threadsafe. Reconnection is left to
redis-py's retry policy and surfaces as CHANNEL_ERROR followed by SUBSCRIBED
once messages flow again.
"""

import asyncio
import json
import logging
import time

import redis
from redis.exceptions import RedisError

from sitepulse.base.channel import (
    CHANNEL_ERROR,
    CLOSED,
    SUBSCRIBED,
    ChangeChannel,
    InsertCallback,
    StatusCallback,
    Unsubscribe,
)
from sitepulse.infrastructure.storage.valkey import get_valkey_client
from sitepulse.utils.config import get_settings

logger = logging.getLogger(__name__)

# Poll interval of the pub/sub worker thread
WORKER_SLEEP_SECONDS = 0.1

# Pause after a worker error before the next read attempt
ERROR_BACKOFF_SECONDS = 1.0


class ValkeyChangeChannel(ChangeChannel):
    """
    Valkey/Redis implementation of ChangeChannel.

    Publishing happens on the writer's side (PostgreSQLDataStore calls
    publish() after each committed insert). Subscribing requires a running
    event loop.
    """

    def __init__(self, client: redis.Redis | None = None, prefix: str | None = None):
        """
        Initialize the channel.

        Args:
            client: Redis client instance. If None, creates a new connection.
            prefix: Channel name prefix. If None, uses settings.
        """
        self._client = client or get_valkey_client()
        self._prefix = prefix or get_settings().valkey.channel_prefix
        self._workers: list = []

    @property
    def client(self) -> redis.Redis:
        """Get the underlying Redis client."""
        return self._client

    def channel_name(self, table: str) -> str:
        return f"{self._prefix}{table}"

    def publish(self, table: str, row: dict) -> None:
        """
        Publish an inserted row.

        A failed publish is logged and dropped; the row itself is already
        committed and subscribers still catch up through the fallback poll.
        """
        payload = json.dumps(row, default=str)
        try:
            self._client.publish(self.channel_name(table), payload)
        except RedisError as e:
            logger.warning("Failed to publish %s change: %s", table, e)

    def subscribe(
        self,
        table: str,
        on_insert: InsertCallback,
        on_status: StatusCallback | None = None,
    ) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        errored = False

        def notify_status(status: str) -> None:
            if on_status is not None and not loop.is_closed():
                loop.call_soon_threadsafe(on_status, status)

        def handle_message(message: dict) -> None:
            nonlocal errored
            if errored:
                errored = False
                notify_status(SUBSCRIBED)
            try:
                row = json.loads(message["data"])
            except (TypeError, ValueError) as e:
                logger.warning("Ignoring malformed %s change message: %s", table, e)
                return
            if not loop.is_closed():
                loop.call_soon_threadsafe(on_insert, row)

        def handle_error(exc: BaseException, pubsub, worker) -> None:
            nonlocal errored
            logger.warning("Change channel %s error: %s", table, exc)
            if not errored:
                errored = True
                notify_status(CHANNEL_ERROR)
            time.sleep(ERROR_BACKOFF_SECONDS)

        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        try:
            pubsub.subscribe(**{self.channel_name(table): handle_message})
            worker = pubsub.run_in_thread(
                sleep_time=WORKER_SLEEP_SECONDS,
                daemon=True,
                exception_handler=handle_error,
            )
        except RedisError as e:
            logger.warning("Could not subscribe to %s changes: %s", table, e)
            notify_status(CHANNEL_ERROR)
            return lambda: None

        self._workers.append(worker)
        logger.debug("Subscribed to %s", self.channel_name(table))
        notify_status(SUBSCRIBED)

        def unsubscribe() -> None:
            if worker in self._workers:
                self._workers.remove(worker)
                worker.stop()
                notify_status(CLOSED)

        return unsubscribe

    def close(self) -> None:
        """Stop every worker thread and close the connection."""
        for worker in list(self._workers):
            worker.stop()
        self._workers.clear()
        self._client.close()
