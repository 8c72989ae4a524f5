# ==============================================================================
# Database Utilities
# ==============================================================================
"""
Database utility functions for the analytics schema.

Provides schema initialization and reset from the Jinja2 template in
schema/init.sql. Includes retry logic with exponential backoff for network
resilience.
"""

import logging
from pathlib import Path

import psycopg2
from jinja2 import Template

from sitepulse.utils.config import get_settings
from sitepulse.utils.paths import get_init_sql_path
from sitepulse.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_standard

logger = logging.getLogger(__name__)


def get_schema_file() -> Path | None:
    """Get the schema init.sql path, or None if not found."""
    path = get_init_sql_path()
    if path.exists():
        return path
    # Fallback to current directory
    cwd_path = Path.cwd() / "schema" / "init.sql"
    if cwd_path.exists():
        return cwd_path
    return None


def render_schema_sql(schema_name: str) -> str:
    """Render the schema SQL template with the given schema name."""
    schema_file = get_schema_file()
    if not schema_file:
        raise RuntimeError(
            "Schema file (schema/init.sql) not found. "
            "Make sure you're running from the project root."
        )

    template = Template(schema_file.read_text())
    return template.render(schema_name=schema_name)


@retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
def check_schema_exists() -> bool:
    """
    Check if the analytics tables exist.

    Retries on connection errors with exponential backoff (10 attempts, ~60 seconds).
    """
    settings = get_settings()
    schema_name = settings.postgres.schema_name
    with psycopg2.connect(settings.postgres.connection_string, connect_timeout=5) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT COUNT(*) FROM information_schema.tables
                WHERE table_schema = %s
                AND table_name IN ('analytics_events', 'analytics_sessions')
                """,
                (schema_name,),
            )
            result = cur.fetchone()
            return bool(result) and result[0] == 2


@retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
def ensure_schema() -> bool:
    """
    Ensure the analytics schema exists, initializing it if needed.

    This function is idempotent and safe to call multiple times.

    Returns:
        True if the schema was created by this call

    Raises:
        RuntimeError: If the schema file is missing or initialization fails
    """
    if check_schema_exists():
        return False

    settings = get_settings()
    schema_name = settings.postgres.schema_name

    logger.info("Initializing database schema '%s'...", schema_name)

    schema_sql = render_schema_sql(schema_name)
    try:
        with psycopg2.connect(settings.postgres.connection_string) as conn:
            with conn.cursor() as cur:
                cur.execute(schema_sql)
            conn.commit()
    except POSTGRES_RETRY_EXCEPTIONS:
        raise
    except psycopg2.Error as e:
        raise RuntimeError(f"Failed to initialize schema: {e}") from e

    logger.info("Database schema '%s' initialized.", schema_name)
    return True


def reset_schema() -> None:
    """
    Drop the analytics tables and recreate them.

    WARNING: This deletes all analytics data in the schema!
    """
    settings = get_settings()
    schema_name = settings.postgres.schema_name

    schema_sql = render_schema_sql(schema_name)
    try:
        with psycopg2.connect(settings.postgres.connection_string) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"DROP TABLE IF EXISTS {schema_name}.analytics_events, "
                    f"{schema_name}.analytics_sessions CASCADE"
                )
                cur.execute(
                    f"DROP FUNCTION IF EXISTS {schema_name}.get_analytics_summary"
                    "(timestamptz, timestamptz)"
                )
                cur.execute(schema_sql)
            conn.commit()
    except psycopg2.Error as e:
        raise RuntimeError(f"Failed to reset schema: {e}") from e
    logger.info("Database schema '%s' reset.", schema_name)
