# ==============================================================================
# Database Commands
# ==============================================================================
"""
Schema management commands for the sitepulse CLI.
"""

from typing import Annotated

import typer

from sitepulse.cli.shared import C, I, check_db_connection
from sitepulse.utils.config import get_settings


def _require_db() -> None:
    settings = get_settings()
    if not check_db_connection():
        print(
            f"{C.BRIGHT_RED}{I.CROSS} PostgreSQL is not reachable at "
            f"{settings.postgres.host}:{settings.postgres.port}{C.RESET}"
        )
        raise typer.Exit(1)


# ==============================================================================
# Commands
# ==============================================================================


def db_init() -> None:
    """Create the analytics tables and the summary function if missing.

    Examples:
        sitepulse db init
    """
    from sitepulse.utils.db import ensure_schema

    schema_name = get_settings().postgres.schema_name
    print()
    _require_db()

    try:
        created = ensure_schema()
    except RuntimeError as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} {e}{C.RESET}")
        raise typer.Exit(1)

    if created:
        print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{schema_name}' initialized{C.RESET}")
    else:
        print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{schema_name}' already exists{C.RESET}")
    print()


def db_reset(
    confirm: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Drop and recreate the analytics tables.

    WARNING: This deletes every recorded event and session.

    Examples:
        sitepulse db reset       # With confirmation prompt
        sitepulse db reset -y    # Skip confirmation
    """
    from sitepulse.utils.db import reset_schema

    schema_name = get_settings().postgres.schema_name
    print()
    _require_db()

    if not confirm:
        typer.confirm(
            f"This will DELETE all analytics data in schema '{schema_name}'. Are you sure?",
            abort=True,
        )
        print()

    print(f"  Resetting schema '{C.WHITE}{schema_name}{C.RESET}'...")
    try:
        reset_schema()
    except RuntimeError as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} {e}{C.RESET}")
        raise typer.Exit(1)
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{schema_name}' reset{C.RESET}")
    print()
