# ==============================================================================
# PostgreSQL Data Store Implementation
# ==============================================================================
"""
PostgreSQL implementation of the DataStore interface.

psycopg2 is a blocking driver, so every call runs in a worker thread via
asyncio.to_thread and the event loop stays free. The connection is in
autocommit mode: each insert or update is its own statement, like a call to a
hosted CRUD API.

Table and column names are whitelisted and composed with psycopg2.sql so
caller-supplied names never reach the query text unquoted.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor

from sitepulse.base.channel import (
    CHANNEL_ERROR,
    ChangeChannel,
    InsertCallback,
    StatusCallback,
    Unsubscribe,
)
from sitepulse.base.data_store import DataStore, StoreResponse
from sitepulse.core.models import EVENTS_TABLE, SESSIONS_TABLE
from sitepulse.utils.config import Settings, get_settings
from sitepulse.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_light

logger = logging.getLogger(__name__)

# Connection timeout
CONNECT_TIMEOUT = 10

TABLE_COLUMNS = {
    EVENTS_TABLE: frozenset(
        {
            "id",
            "event_type",
            "event_name",
            "page_url",
            "referrer",
            "session_id",
            "user_agent",
            "country",
            "city",
            "device_type",
            "browser",
            "os",
            "properties",
            "created_at",
        }
    ),
    SESSIONS_TABLE: frozenset(
        {
            "id",
            "session_id",
            "started_at",
            "ended_at",
            "duration_seconds",
            "entry_page",
            "exit_page",
            "page_count",
            "referrer",
            "device_type",
            "browser",
            "os",
            "country",
            "city",
            "is_bounce",
            "created_at",
            "updated_at",
        }
    ),
}


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


def _adapt(value: Any) -> Any:
    """Wrap dict and list values for jsonb columns."""
    if isinstance(value, (dict, list)):
        return Json(value)
    return value


class InvalidQueryError(ValueError):
    """Raised when a table or column name is not in the whitelist."""

    pass


class PostgreSQLDataStore(DataStore):
    """
    PostgreSQL implementation of DataStore.

    Inserts are announced on the injected ChangeChannel after they commit.
    Without a channel, subscribe() reports CHANNEL_ERROR and subscribers rely
    on polling.
    """

    supports_insert_if_absent = True

    def __init__(self, settings: Settings | None = None, channel: ChangeChannel | None = None):
        """
        Initialize the data store.

        Args:
            settings: Application settings. If None, uses get_settings().
            channel: Change channel used to announce inserts
        """
        self._settings = settings or get_settings()
        self._conn: psycopg2.extensions.connection | None = None
        self._schema = self._settings.postgres.schema_name
        self._channel = channel
        self._lock = threading.Lock()

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    @retry_light(POSTGRES_RETRY_EXCEPTIONS, logger)
    def connect(self) -> None:
        """Establish connection to PostgreSQL."""
        conn_string = _add_connect_timeout(self._settings.postgres.connection_string)
        self._conn = psycopg2.connect(conn_string)
        self._conn.autocommit = True
        logger.info("PostgreSQLDataStore connected (schema=%s)", self._schema)

    def _connection(self) -> psycopg2.extensions.connection:
        if self._conn is None or self._conn.closed:
            self.connect()
        return self._conn

    def _close_sync(self) -> None:
        if self._conn:
            try:
                self._conn.close()
                logger.info("PostgreSQLDataStore connection closed")
            except psycopg2.Error as e:
                logger.warning("Error closing connection: %s", e)
            finally:
                self._conn = None

    # ==========================================================================
    # Query Composition
    # ==========================================================================

    def _table(self, table: str) -> sql.Composed:
        if table not in TABLE_COLUMNS:
            raise InvalidQueryError(f"unknown table {table!r}")
        return sql.SQL("{}.{}").format(sql.Identifier(self._schema), sql.Identifier(table))

    @staticmethod
    def _columns(table: str, columns) -> list[sql.Identifier]:
        unknown = [c for c in columns if c not in TABLE_COLUMNS[table]]
        if unknown:
            raise InvalidQueryError(f"unknown column(s) for {table}: {', '.join(unknown)}")
        return [sql.Identifier(c) for c in columns]

    def _build_insert(self, table: str, row: dict, conflict_key: str | None) -> sql.Composed:
        target = self._table(table)
        columns = self._columns(table, row.keys())
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            target,
            sql.SQL(", ").join(columns),
            sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        if conflict_key:
            (key,) = self._columns(table, [conflict_key])
            query += sql.SQL(" ON CONFLICT ({}) DO NOTHING").format(key)
        return query + sql.SQL(" RETURNING *")

    def _build_update(self, table: str, key_column: str, patch: dict) -> sql.Composed:
        target = self._table(table)
        assignments = [
            sql.SQL("{} = {}").format(column, sql.Placeholder())
            for column in self._columns(table, patch.keys())
        ]
        (key,) = self._columns(table, [key_column])
        return sql.SQL("UPDATE {} SET {} WHERE {} = {}").format(
            target, sql.SQL(", ").join(assignments), key, sql.Placeholder()
        )

    def _build_select(
        self,
        table: str,
        columns: list[str] | None,
        filters: list[tuple[str, str, Any]],
    ) -> tuple[sql.Composed, list]:
        target = self._table(table)
        projection = sql.SQL(", ").join(self._columns(table, columns)) if columns else sql.SQL("*")
        query = sql.SQL("SELECT {} FROM {}").format(projection, target)
        params = []
        if filters:
            conditions = []
            for column, operator, value in filters:
                (identifier,) = self._columns(table, [column])
                conditions.append(
                    sql.SQL("{} {} {}").format(identifier, sql.SQL(operator), sql.Placeholder())
                )
                params.append(value)
            query += sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions)
        return query, params

    # ==========================================================================
    # Blocking Operations (run in worker threads)
    # ==========================================================================

    def _execute(self, operation, *args) -> StoreResponse:
        with self._lock:
            try:
                conn = self._connection()
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    return StoreResponse(data=operation(cur, *args))
            except InvalidQueryError as e:
                return StoreResponse(error=str(e))
            except POSTGRES_RETRY_EXCEPTIONS as e:
                logger.warning("PostgreSQL connection lost: %s", e)
                self._close_sync()
                return StoreResponse(error=str(e).strip())
            except psycopg2.Error as e:
                return StoreResponse(error=str(e).strip())

    def _insert_sync(self, cur, table: str, row: dict, conflict_key: str | None):
        query = self._build_insert(table, row, conflict_key)
        cur.execute(query, [_adapt(v) for v in row.values()])
        inserted = cur.fetchone()
        if inserted is None:
            return None
        inserted = dict(inserted)
        if self._channel is not None:
            self._channel.publish(table, inserted)
        return inserted

    def _update_sync(self, cur, table: str, key_column: str, key_value: Any, patch: dict):
        query = self._build_update(table, key_column, patch)
        cur.execute(query, [_adapt(v) for v in patch.values()] + [key_value])
        return cur.rowcount

    def _select_sync(self, cur, table: str, columns, filters, single: bool):
        query, params = self._build_select(table, columns, filters)
        cur.execute(query, params)
        if single:
            row = cur.fetchone()
            return dict(row) if row is not None else None
        return [dict(row) for row in cur.fetchall()]

    def _summary_sync(self, cur, start: datetime | None, end: datetime | None):
        query = sql.SQL("SELECT * FROM {}.get_analytics_summary(%s, %s)").format(
            sql.Identifier(self._schema)
        )
        cur.execute(query, (start, end))
        row = cur.fetchone()
        if row is None:
            raise psycopg2.DataError("get_analytics_summary returned no row")
        return dict(row)

    # ==========================================================================
    # DataStore Interface
    # ==========================================================================

    async def insert(self, table: str, row: dict, *, conflict_key: str | None = None) -> StoreResponse:
        return await asyncio.to_thread(self._execute, self._insert_sync, table, row, conflict_key)

    async def update(self, table: str, key_column: str, key_value: Any, patch: dict) -> StoreResponse:
        return await asyncio.to_thread(
            self._execute, self._update_sync, table, key_column, key_value, patch
        )

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
        filters = (
            [(c, "=", v) for c, v in (eq or {}).items()]
            + [(c, ">=", v) for c, v in (gte or {}).items()]
            + [(c, "<", v) for c, v in (lt or {}).items()]
        )
        return await asyncio.to_thread(
            self._execute, self._select_sync, table, columns, filters, single
        )

    def subscribe(
        self,
        table: str,
        on_insert: InsertCallback,
        on_status: StatusCallback | None = None,
    ) -> Unsubscribe:
        if self._channel is None:
            logger.warning("No change channel configured; %s changes are not pushed", table)
            if on_status is not None:
                on_status(CHANNEL_ERROR)
            return lambda: None
        return self._channel.subscribe(table, on_insert, on_status)

    async def fetch_summary(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> StoreResponse:
        return await asyncio.to_thread(self._execute, self._summary_sync, start, end)

    async def close(self) -> None:
        """Close connection and release resources."""
        await asyncio.to_thread(self._close_sync)
        if self._channel is not None:
            self._channel.close()
