# ==============================================================================
# Delivery Layer
# ==============================================================================
"""
Bounded, best-effort writes to the Data Store.

Every call is raced against the delivery timeout. A timeout, an error answer
from the store or an exception raised by the adapter are all logged at
WARNING and returned as a failed Result; nothing is retried or queued. When a
call times out the underlying request may still finish in its worker thread;
its outcome is discarded.
"""

import asyncio
import logging
from collections.abc import Awaitable, Coroutine
from typing import Any

from sitepulse.base.data_store import DataStore, StoreResponse
from sitepulse.core.errors import DeliveryError, DeliveryTimeout, Result, StoreRejected
from sitepulse.utils.config import get_settings

logger = logging.getLogger(__name__)


class DeliveryLayer:
    """
    Timeout-raced access to a DataStore.

    Also owns the fire-and-forget task set: spawn() keeps a strong reference
    to each task until it finishes, and drain() waits for all of them.

    Args:
        store: Target Data Store
        timeout: Seconds allowed per call. If None, uses settings.
    """

    def __init__(self, store: DataStore, timeout: float | None = None):
        self.store = store
        self.timeout = (
            timeout if timeout is not None else get_settings().tracking.delivery_timeout_seconds
        )
        self._tasks: set[asyncio.Task] = set()

    async def _race(
        self, description: str, call: Awaitable[StoreResponse], timeout: float | None = None
    ) -> tuple[Result, Any]:
        timeout = self.timeout if timeout is None else timeout
        try:
            response = await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError:
            error = DeliveryTimeout(f"{description} timed out after {timeout:.2f}s")
        except Exception as e:
            error = DeliveryError(f"{description} failed: {e}")
        else:
            if response.ok:
                return Result.success(), response.data
            error = StoreRejected(f"{description} rejected: {response.error}")

        logger.warning("Telemetry delivery failed: %s", error)
        return Result.failure(error), None

    async def insert(
        self,
        table: str,
        row: dict,
        conflict_key: str | None = None,
        timeout: float | None = None,
    ) -> tuple[Result, Any]:
        """
        Insert a row. Returns the Result and the inserted row (None on failure or conflict).

        timeout overrides the per-call timeout, for callers that already spent
        part of their budget.
        """
        return await self._race(
            f"insert into {table}",
            self.store.insert(table, row, conflict_key=conflict_key),
            timeout=timeout,
        )

    async def update(
        self, table: str, key_column: str, key_value: Any, patch: dict
    ) -> tuple[Result, Any]:
        """Update rows by key. Returns the Result and the number of rows updated."""
        return await self._race(
            f"update of {table}", self.store.update(table, key_column, key_value, patch)
        )

    async def select(self, table: str, **query) -> tuple[Result, Any]:
        """Read rows; keyword arguments are passed to DataStore.select."""
        return await self._race(f"select from {table}", self.store.select(table, **query))

    # ==========================================================================
    # Fire-and-forget
    # ==========================================================================

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """Schedule a coroutine without awaiting it."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Background telemetry task failed: %s", task.exception())

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every spawned task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
