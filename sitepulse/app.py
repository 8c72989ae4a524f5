# ==============================================================================
# sitepulse CLI
# ==============================================================================
"""
Command-line interface for the sitepulse telemetry pipeline.

Usage:
    sitepulse --help
    sitepulse status
    sitepulse analytics
    sitepulse watch
    sitepulse simulate --page /home --page /services
    sitepulse config show
    sitepulse db init
    sitepulse db reset -y
"""

# ==============================================================================
# App Configuration
# ==============================================================================
# Set consistent terminal width for help output formatting
import os
from typing import Annotated

import typer

if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="sitepulse",
    help="sitepulse site telemetry pipeline CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """sitepulse site telemetry pipeline CLI"""
    from sitepulse.cli.shared import configure_logging

    configure_logging(verbose)


db_app = typer.Typer(
    help="Database schema operations",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

# Register db commands from cli.db module
from sitepulse.cli.db import db_init, db_reset

db_app.command("init")(db_init)
db_app.command("reset")(db_reset)

config_app = typer.Typer(
    help="Configuration management",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

# Register config commands from cli.config module
from sitepulse.cli.config import config_show

config_app.command("show")(config_show)


# Status command is imported from sitepulse.cli.status
from sitepulse.cli.status import show_status

app.command("status")(show_status)

# Analytics command is imported from sitepulse.cli.analytics
from sitepulse.cli.analytics import show_analytics

app.command("analytics")(show_analytics)

from sitepulse.cli.watch import watch

app.command("watch")(watch)

from sitepulse.cli.simulate import simulate

app.command("simulate")(simulate)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
