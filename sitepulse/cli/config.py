# ==============================================================================
# Config Commands
# ==============================================================================
"""
Configuration commands for the sitepulse CLI.
"""

import json
from typing import Annotated

import typer

from sitepulse.cli.shared import C
from sitepulse.utils.config import get_settings


def _row(label: str, value) -> None:
    print(f"  {label + ':':<16}{C.WHITE}{value}{C.RESET}")


def config_show(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output configuration as JSON")
    ] = False,
) -> None:
    """Display current configuration (includes secrets in JSON mode)."""
    settings = get_settings()

    if json_output:
        config = {
            "postgresql": {
                "host": settings.postgres.host,
                "port": settings.postgres.port,
                "database": settings.postgres.database,
                "schema": settings.postgres.schema_name,
                "user": settings.postgres.user,
                "password": settings.postgres.password,
                "sslmode": settings.postgres.sslmode,
            },
            "valkey": {
                "host": settings.valkey.host,
                "port": settings.valkey.port,
                "db": settings.valkey.db,
                "ssl_enabled": settings.valkey.ssl,
                "password": settings.valkey.password,
                "context_ttl_minutes": settings.valkey.context_ttl_minutes,
                "channel_prefix": settings.valkey.channel_prefix,
            },
            "geolocation": {
                "enabled": settings.geolocation.enabled,
                "url": settings.geolocation.url,
                "timeout_seconds": settings.geolocation.timeout_seconds,
            },
            "tracking": {
                "delivery_timeout_seconds": settings.tracking.delivery_timeout_seconds,
                "settle_delay_seconds": settings.tracking.settle_delay_seconds,
                "scroll_throttle_seconds": settings.tracking.scroll_throttle_seconds,
            },
            "dashboard": {
                "debounce_seconds": settings.dashboard.debounce_seconds,
                "poll_interval_seconds": settings.dashboard.poll_interval_seconds,
                "realtime_window_minutes": settings.dashboard.realtime_window_minutes,
                "summary_window_days": settings.dashboard.summary_window_days,
                "activity_feed_size": settings.dashboard.activity_feed_size,
            },
            "log_level": settings.log_level,
        }
        print(json.dumps(config, indent=2))
        return

    # Human-readable output
    print()
    print(f"{C.BOLD}Configuration{C.RESET}")
    print()

    print(f"{C.CYAN}PostgreSQL{C.RESET}")
    _row("Host", settings.postgres.host)
    _row("Port", settings.postgres.port)
    _row("Database", settings.postgres.database)
    _row("Schema", settings.postgres.schema_name)
    _row("User", settings.postgres.user)
    _row("SSL", settings.postgres.sslmode)
    print()

    print(f"{C.CYAN}Valkey{C.RESET}")
    _row("Host", settings.valkey.host)
    _row("Port", settings.valkey.port)
    _row("SSL", "enabled" if settings.valkey.ssl else "disabled")
    _row("Context TTL", f"{settings.valkey.context_ttl_minutes} min")
    _row("Channels", f"{settings.valkey.channel_prefix}<table>")
    print()

    print(f"{C.CYAN}Geolocation{C.RESET}")
    _row("Status", "enabled" if settings.geolocation.enabled else "disabled")
    _row("URL", settings.geolocation.url)
    _row("Timeout", f"{settings.geolocation.timeout_seconds:g}s")
    print()

    print(f"{C.CYAN}Tracking{C.RESET}")
    _row("Write timeout", f"{settings.tracking.delivery_timeout_seconds:g}s")
    _row("Settle delay", f"{settings.tracking.settle_delay_seconds:g}s")
    _row("Scroll throttle", f"{settings.tracking.scroll_throttle_seconds:g}s")
    print()

    print(f"{C.CYAN}Dashboard{C.RESET}")
    _row("Debounce", f"{settings.dashboard.debounce_seconds:g}s")
    _row("Poll interval", f"{settings.dashboard.poll_interval_seconds:g}s")
    _row("Realtime", f"last {settings.dashboard.realtime_window_minutes} min")
    _row("Summary", f"last {settings.dashboard.summary_window_days} days")
    print()
