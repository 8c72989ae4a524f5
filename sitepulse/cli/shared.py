# ==============================================================================
# Shared Utilities for CLI Commands
# ==============================================================================
"""
Shared utilities, constants, and helper functions used across CLI command modules.

This module provides:
- ANSI color codes and box-drawing characters
- Box drawing helpers for formatted output
- Logging setup
- Connection checks and Data Store construction
"""

import logging
import re

from sitepulse.utils.config import get_settings

# ==============================================================================
# Constants
# ==============================================================================

# Box drawing width (unified for all commands)
BOX_WIDTH = 68

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ==============================================================================
# ANSI Colors and Box Drawing
# ==============================================================================


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    # Colors
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    # Bright colors
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


class Box:
    """Unicode box-drawing characters."""

    H = "─"  # horizontal
    V = "│"  # vertical
    TL = "┌"  # top-left
    TR = "┐"  # top-right
    BL = "└"  # bottom-left
    BR = "┘"  # bottom-right
    LT = "├"  # left-tee
    RT = "┤"  # right-tee


class Icons:
    """Status icons using Unicode symbols."""

    CHECK = "✓"
    CROSS = "✗"
    WARN = "!"
    CIRCLE = "●"
    BULLET = "•"
    ARROW = "→"
    DATABASE = "◆"
    PULSE = "⚡"


# Module-level aliases for convenience
C, B, I = Colors, Box, Icons

_ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")


def _visible_len(s: str) -> int:
    """Calculate visible length of string, ignoring ANSI escape codes."""
    return len(_ANSI_ESCAPE_PATTERN.sub("", s))


def _box_header(title: str, width: int = BOX_WIDTH) -> str:
    """Create a single-line box header."""
    inner_width = width - 2
    title_padded = f" {title} "
    left_bar = (inner_width - len(title_padded)) // 2
    right_bar = inner_width - left_bar - len(title_padded)
    return (
        f"{C.CYAN}{B.TL}{B.H * left_bar}{C.BOLD}{C.WHITE}{title_padded}"
        f"{C.RESET}{C.CYAN}{B.H * right_bar}{B.TR}{C.RESET}"
    )


def _section_header(title: str, icon: str, width: int = BOX_WIDTH) -> str:
    """Create a section header with icon."""
    inner_width = width - 2
    title_with_icon = f" {icon} {title} "
    bar_len = inner_width - len(title_with_icon) - 1  # -1 for the first H after LT
    return f"{C.CYAN}{B.LT}{B.H}{C.BOLD}{title_with_icon}{C.RESET}{C.CYAN}{B.H * bar_len}{B.RT}{C.RESET}"


def _box_line(content: str, width: int = BOX_WIDTH) -> str:
    """Create a line inside the box with proper padding to right border."""
    inner_width = width - 2
    padding = max(inner_width - _visible_len(content), 0)
    return f"{C.CYAN}{B.V}{C.RESET}{content}{' ' * padding}{C.CYAN}{B.V}{C.RESET}"


def _empty_line(width: int = BOX_WIDTH) -> str:
    """Create an empty line inside the box."""
    return f"{C.CYAN}{B.V}{' ' * (width - 2)}{B.V}{C.RESET}"


def _box_bottom(width: int = BOX_WIDTH) -> str:
    """Create a box bottom border with the project name centered."""
    text = " sitepulse "
    remaining = width - 2 - len(text)  # -2 for corners
    left_pad = remaining // 2
    right_pad = remaining - left_pad
    return f"{C.CYAN}{B.BL}{B.H * left_pad}{text}{B.H * right_pad}{B.BR}{C.RESET}"


# ==============================================================================
# Logging
# ==============================================================================


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging from settings (DEBUG when verbose)."""
    level = logging.DEBUG if verbose else get_settings().log_level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)


# ==============================================================================
# Connection Helpers
# ==============================================================================


def check_db_connection() -> bool:
    """Check if PostgreSQL is reachable."""
    import psycopg2

    settings = get_settings()
    try:
        with psycopg2.connect(settings.postgres.connection_string, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
        return True
    except psycopg2.Error:
        return False


def check_valkey_connection() -> bool:
    """Check if Valkey is reachable."""
    from redis.exceptions import RedisError

    from sitepulse.infrastructure.storage.valkey import get_valkey_client

    try:
        client = get_valkey_client()
        try:
            return bool(client.ping())
        finally:
            client.close()
    except RedisError:
        return False


def build_postgres_store(with_channel: bool = True):
    """
    PostgreSQLDataStore from settings, with a Valkey change channel when
    with_channel is True and Valkey is reachable.
    """
    from sitepulse.infrastructure.channels.valkey import ValkeyChangeChannel
    from sitepulse.infrastructure.repositories.postgresql import PostgreSQLDataStore

    channel = ValkeyChangeChannel() if with_channel and check_valkey_connection() else None
    return PostgreSQLDataStore(channel=channel)
