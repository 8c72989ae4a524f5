# ==============================================================================
# Status Command
# ==============================================================================
"""
Status command for the sitepulse CLI.

Displays service health in either formatted box output or JSON format for
programmatic consumption.

Includes light retry logic (3 attempts, ~7 seconds) for network resilience
when checking service status.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Annotated, Any

import psycopg2
import typer
from psycopg2 import sql
from redis.exceptions import RedisError

from sitepulse.cli.shared import (
    BOX_WIDTH,
    C,
    I,
    _box_bottom,
    _box_header,
    _box_line,
    _empty_line,
)
from sitepulse.core.models import EVENTS_TABLE, SESSIONS_TABLE
from sitepulse.utils.config import get_settings
from sitepulse.utils.retry import POSTGRES_RETRY_EXCEPTIONS, REDIS_RETRY_EXCEPTIONS, retry_light
from sitepulse.utils.versions import get_sitepulse_version

logger = logging.getLogger(__name__)


# ==============================================================================
# Data Collection
# ==============================================================================


@retry_light(POSTGRES_RETRY_EXCEPTIONS, logger)
def _postgresql_counts() -> tuple[str, int | None, int | None]:
    """Return (status, events, sessions) for the analytics tables."""
    settings = get_settings()
    schema_name = settings.postgres.schema_name
    with psycopg2.connect(settings.postgres.connection_string, connect_timeout=5) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT COUNT(*) FROM information_schema.tables
                WHERE table_schema = %s AND table_name IN (%s, %s)
                """,
                (schema_name, EVENTS_TABLE, SESSIONS_TABLE),
            )
            result = cur.fetchone()
            if not result or result[0] != 2:
                return "no_schema", None, None

            counts = []
            for table in (EVENTS_TABLE, SESSIONS_TABLE):
                cur.execute(
                    sql.SQL("SELECT COUNT(*) FROM {}.{}").format(
                        sql.Identifier(schema_name), sql.Identifier(table)
                    )
                )
                counts.append(cur.fetchone()[0])
            return "connected", counts[0], counts[1]


def _collect_postgresql_data() -> dict[str, Any]:
    try:
        status, events, sessions = _postgresql_counts()
    except psycopg2.Error as e:
        logger.debug("PostgreSQL status check failed: %s", e)
        status, events, sessions = "unreachable", None, None
    return {"status": status, "events": events, "sessions": sessions}


@retry_light(REDIS_RETRY_EXCEPTIONS, logger)
def _valkey_info() -> tuple[int, str | None]:
    """Return (context_keys, used_memory) from Valkey."""
    from sitepulse.infrastructure.storage.valkey import CONTEXT_KEY_PREFIX, get_valkey_client

    client = get_valkey_client()
    try:
        client.ping()
        context_keys = sum(1 for _ in client.scan_iter(match=f"{CONTEXT_KEY_PREFIX}*", count=1000))
        memory = client.info("memory").get("used_memory_human")
        return context_keys, memory
    finally:
        client.close()


def _collect_valkey_data() -> dict[str, Any]:
    try:
        context_keys, memory = _valkey_info()
    except RedisError as e:
        logger.debug("Valkey status check failed: %s", e)
        return {"status": "unreachable", "context_keys": None, "memory": None}
    return {"status": "connected", "context_keys": context_keys, "memory": memory}


def collect_status_data() -> dict[str, Any]:
    """Check PostgreSQL and Valkey in parallel."""
    with ThreadPoolExecutor(max_workers=2) as executor:
        pg_future = executor.submit(_collect_postgresql_data)
        valkey_future = executor.submit(_collect_valkey_data)
        return {
            "version": get_sitepulse_version(),
            "postgresql": pg_future.result(),
            "valkey": valkey_future.result(),
        }


# ==============================================================================
# Display
# ==============================================================================


def _badge(status: str) -> str:
    if status == "connected":
        return f"{C.BRIGHT_GREEN}{I.CHECK} {status}{C.RESET}"
    if status == "no_schema":
        return f"{C.BRIGHT_YELLOW}{I.WARN} {status} (run 'sitepulse db init'){C.RESET}"
    return f"{C.BRIGHT_RED}{I.CROSS} {status}{C.RESET}"


def _count(value: int | None) -> str:
    return f"{value:,}" if value is not None else "-"


def _display_status(data: dict[str, Any], width: int = BOX_WIDTH) -> None:
    settings = get_settings()
    pg = data["postgresql"]
    valkey = data["valkey"]

    print()
    print(_box_header(f"SITEPULSE STATUS v{data['version']}", width))
    print(_empty_line(width))
    print(_box_line(f"  {C.BOLD}{I.DATABASE} PostgreSQL{C.RESET}", width))
    print(_box_line(f"    {'Server':<12}{settings.postgres.host}:{settings.postgres.port}", width))
    print(_box_line(f"    {'Status':<12}{_badge(pg['status'])}", width))
    print(_box_line(f"    {'Events':<12}{_count(pg['events'])}", width))
    print(_box_line(f"    {'Sessions':<12}{_count(pg['sessions'])}", width))
    print(_empty_line(width))
    print(_box_line(f"  {C.BOLD}{I.DATABASE} Valkey{C.RESET}", width))
    print(_box_line(f"    {'Server':<12}{settings.valkey.host}:{settings.valkey.port}", width))
    print(_box_line(f"    {'Status':<12}{_badge(valkey['status'])}", width))
    print(_box_line(f"    {'Contexts':<12}{_count(valkey['context_keys'])}", width))
    print(_box_line(f"    {'Memory':<12}{valkey['memory'] or '-'}", width))
    print(_empty_line(width))
    print(_box_bottom(width))
    print()


# ==============================================================================
# Commands
# ==============================================================================


def show_status(
    json_output: Annotated[bool, typer.Option("--json", help="Output status as JSON")] = False,
) -> None:
    """Show service health and row counts."""
    data = collect_status_data()

    if json_output:
        print(json.dumps(data, indent=2))
    else:
        _display_status(data)
