# ==============================================================================
# Data Store Abstract Base Class
# ==============================================================================
"""
Abstract interface for the managed backend the telemetry pipeline writes to.

These define the "what" (insert a row, update by key, read rows, watch for
inserts, fetch the summary) not the "how". Concrete implementations in
infrastructure/ handle the specifics.

Errors the backend reports are returned in StoreResponse.error, mirroring a
hosted CRUD API. Network failures may still surface as exceptions; callers
treat both the same way.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sitepulse.base.channel import InsertCallback, StatusCallback, Unsubscribe


@dataclass(frozen=True)
class StoreResponse:
    """Outcome of a Data Store call: data on success, error text otherwise."""

    data: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DataStore(ABC):
    """Relational tables reachable through asynchronous network calls."""

    # True when insert(conflict_key=...) is an atomic insert-if-not-exists
    supports_insert_if_absent: bool = False

    @abstractmethod
    async def insert(self, table: str, row: dict, *, conflict_key: str | None = None) -> StoreResponse:
        """
        Insert one row.

        Args:
            table: Table name
            row: Column values
            conflict_key: Unique column; when set and supported, an existing
                row with the same value makes the insert a no-op

        Returns:
            StoreResponse with the inserted row as data
        """
        ...

    @abstractmethod
    async def update(self, table: str, key_column: str, key_value: Any, patch: dict) -> StoreResponse:
        """
        Update rows matching key_column = key_value (last writer wins).

        Returns:
            StoreResponse with the number of rows updated as data
        """
        ...

    @abstractmethod
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
        """
        Read rows.

        Args:
            table: Table name
            columns: Columns to return (all if None)
            eq: column = value filters
            gte: column >= value filters
            lt: column < value filters
            single: Return one row dict (or None) instead of a list

        Returns:
            StoreResponse with a list of row dicts, or a dict/None when single
        """
        ...

    @abstractmethod
    def subscribe(
        self,
        table: str,
        on_insert: InsertCallback,
        on_status: StatusCallback | None = None,
    ) -> Unsubscribe:
        """Watch a table for inserts. See ChangeChannel.subscribe."""
        ...

    @abstractmethod
    async def fetch_summary(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> StoreResponse:
        """
        Run the server-side aggregation.

        Returns:
            StoreResponse with an AggregationSummary-shaped dict as data
        """
        ...

    async def close(self) -> None:
        """Close connections and release resources."""
        return None
