# ==============================================================================
# CLI Commands Module
# ==============================================================================
"""
CLI commands for sitepulse.

Commands are organized into separate modules for maintainability:
- shared.py: Common utilities, constants, and helpers
- analytics.py: One boxed dashboard snapshot
- watch.py: Live dashboard driven by the realtime refresh controller
- simulate.py: Simulated visitor driven through the tracker
- status.py, db.py, config.py: Operations
"""

from sitepulse.cli.shared import (
    # Constants
    BOX_WIDTH,
    LOG_FORMAT,
    # Classes
    Box,
    Colors,
    Icons,
    # Aliases
    B,
    C,
    I,
    # Box drawing helpers (private)
    _box_bottom,
    _box_header,
    _box_line,
    _empty_line,
    _section_header,
    _visible_len,
    # Logging
    configure_logging,
    # Connection helpers
    build_postgres_store,
    check_db_connection,
    check_valkey_connection,
)

__all__ = [
    # Constants
    "BOX_WIDTH",
    "LOG_FORMAT",
    # Classes
    "Box",
    "Colors",
    "Icons",
    # Aliases
    "B",
    "C",
    "I",
    # Box drawing helpers (private - kept for internal use)
    "_box_bottom",
    "_box_header",
    "_box_line",
    "_empty_line",
    "_section_header",
    "_visible_len",
    # Logging
    "configure_logging",
    # Connection helpers
    "build_postgres_store",
    "check_db_connection",
    "check_valkey_connection",
]
