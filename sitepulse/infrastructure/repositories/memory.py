# ==============================================================================
# In-Memory Data Store
# ==============================================================================
"""
Dict-backed DataStore used by the simulator and the test suite.

Behaves like the hosted backend in the ways the pipeline can observe:
- every call yields to the event loop (optionally after a fixed latency), so
  concurrent check-then-insert sequences interleave as they would over a
  network
- inserts are announced on a LocalChangeChannel
- the summary is computed with the same rules as the SQL function
- failures can be injected for reads and writes
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sitepulse.base.channel import ChangeChannel, InsertCallback, StatusCallback, Unsubscribe
from sitepulse.base.data_store import DataStore, StoreResponse
from sitepulse.core.aggregation import summarize
from sitepulse.core.models import EVENTS_TABLE, SESSIONS_TABLE
from sitepulse.core.session_processor import parse_datetime, to_datetime
from sitepulse.infrastructure.channels.local import LocalChangeChannel

logger = logging.getLogger(__name__)

# Column stamped with the insert time when the row does not carry it
TIMESTAMP_COLUMNS = {
    EVENTS_TABLE: "created_at",
    SESSIONS_TABLE: "started_at",
}


def _normalize(left: Any, right: Any) -> tuple[Any, Any]:
    if isinstance(left, datetime) or isinstance(right, datetime):
        return parse_datetime(left), parse_datetime(right)
    return left, right


def _matches(row: dict, eq: dict | None, gte: dict | None, lt: dict | None) -> bool:
    for column, value in (eq or {}).items():
        if row.get(column) != value:
            return False
    for column, value in (gte or {}).items():
        if row.get(column) is None:
            return False
        stored, bound = _normalize(row[column], value)
        if stored < bound:
            return False
    for column, value in (lt or {}).items():
        if row.get(column) is None:
            return False
        stored, bound = _normalize(row[column], value)
        if stored >= bound:
            return False
    return True


class InMemoryDataStore(DataStore):
    """
    In-memory implementation of DataStore.

    Args:
        channel: Change channel for insert notifications. A new
            LocalChangeChannel if None.
        latency: Seconds every call waits before touching the tables
        unique_sessions: Enforce the unique session_id constraint. With False
            the store accepts duplicate session rows, which exposes the
            check-then-insert race.
        clock: Epoch-seconds clock for default timestamps
    """

    def __init__(
        self,
        channel: ChangeChannel | None = None,
        latency: float = 0.0,
        unique_sessions: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self._tables: dict[str, list[dict]] = {EVENTS_TABLE: [], SESSIONS_TABLE: []}
        self._channel = channel if channel is not None else LocalChangeChannel()
        self.latency = latency
        self.unique_sessions = unique_sessions
        self.supports_insert_if_absent = unique_sessions
        self._clock = clock

        # Injected failures: error text returned instead of touching the tables
        self.fail_writes: str | None = None
        self.fail_reads: str | None = None

        self.calls: list[tuple[str, str]] = []

    @property
    def channel(self) -> ChangeChannel:
        return self._channel

    def rows(self, table: str) -> list[dict]:
        """Copies of the rows currently stored in a table."""
        return [dict(row) for row in self._tables[table]]

    async def _wait(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        await asyncio.sleep(self.latency)

    def _unknown_table(self, table: str) -> StoreResponse | None:
        if table not in self._tables:
            return StoreResponse(error=f'relation "{table}" does not exist')
        return None

    async def insert(self, table: str, row: dict, *, conflict_key: str | None = None) -> StoreResponse:
        await self._wait("insert", table)
        if self.fail_writes:
            return StoreResponse(error=self.fail_writes)
        if (missing := self._unknown_table(table)) is not None:
            return missing

        if table == SESSIONS_TABLE and self.unique_sessions:
            exists = any(r["session_id"] == row.get("session_id") for r in self._tables[table])
            if exists and conflict_key == "session_id":
                return StoreResponse(data=None)
            if exists:
                return StoreResponse(
                    error='duplicate key value violates unique constraint '
                    '"analytics_sessions_session_id_key"'
                )

        stored = {"id": str(uuid.uuid4()), **row}
        timestamp_column = TIMESTAMP_COLUMNS[table]
        if stored.get(timestamp_column) is None:
            stored[timestamp_column] = to_datetime(self._clock())
        self._tables[table].append(stored)
        self._channel.publish(table, dict(stored))
        return StoreResponse(data=dict(stored))

    async def update(self, table: str, key_column: str, key_value: Any, patch: dict) -> StoreResponse:
        await self._wait("update", table)
        if self.fail_writes:
            return StoreResponse(error=self.fail_writes)
        if (missing := self._unknown_table(table)) is not None:
            return missing

        updated = 0
        for row in self._tables[table]:
            if row.get(key_column) == key_value:
                row.update(patch)
                updated += 1
        return StoreResponse(data=updated)

    async def select(
        self,
        table: str,
        *,
        columns: list[str] | None = None,
        eq: dict[str, Any] | None = None,
        gte: dict[str, Any] | None = None,
        lt: dict[str, Any] | None = None,
        single: bool = False,
    ) -> StoreResponse:
        await self._wait("select", table)
        if self.fail_reads:
            return StoreResponse(error=self.fail_reads)
        if (missing := self._unknown_table(table)) is not None:
            return missing

        found = []
        for row in self._tables[table]:
            if _matches(row, eq, gte, lt):
                found.append({c: row.get(c) for c in columns} if columns else dict(row))
        if single:
            return StoreResponse(data=found[0] if found else None)
        return StoreResponse(data=found)

    def subscribe(
        self,
        table: str,
        on_insert: InsertCallback,
        on_status: StatusCallback | None = None,
    ) -> Unsubscribe:
        return self._channel.subscribe(table, on_insert, on_status)

    async def fetch_summary(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> StoreResponse:
        await self._wait("fetch_summary", SESSIONS_TABLE)
        if self.fail_reads:
            return StoreResponse(error=self.fail_reads)
        summary = summarize(self._tables[EVENTS_TABLE], self._tables[SESSIONS_TABLE], start, end)
        return StoreResponse(data=summary.model_dump())

    async def close(self) -> None:
        self._channel.close()
