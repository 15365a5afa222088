"""
dashstore CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging
import sys

import typer
from rich.console import Console

from dashstore import __version__
from dashstore.cli import dashboards, render, status, sync, transfer, variables
from dashstore.core.config.env import dashstore_keys, load_layered_env

# Help panel names for command grouping
PANEL_EDIT = "Edit Dashboards"
PANEL_STORE = "Save and Sync"

app = typer.Typer(
    name="dashstore",
    help="Dashboard configuration store with variable templates and remote sync",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for all commands.

    Args:
        debug: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
) -> None:
    """
    dashstore - dashboard configuration store.

    Edits are committed to the local cache when each command finishes.
    Run `dashstore sync` to push them to the remote configuration service.

    Common Workflows:
        dashstore dashboards add "Sales {{year}}"
        dashstore vars set year 2024
        dashstore render "SELECT * FROM sales WHERE year = {{year}}"
        dashstore status
        dashstore sync
    """
    setup_logging(debug)
    # Precedence: OS env > project .env > user .env
    for key, path in dashstore_keys(load_layered_env()).items():
        logger.debug("%s set from %s", key, path)
    ctx.obj = {"debug": debug}


# =============================================================================
# Edit Dashboards
# =============================================================================

app.add_typer(dashboards.app, name="dashboards", rich_help_panel=PANEL_EDIT)
app.add_typer(variables.app, name="vars", rich_help_panel=PANEL_EDIT)
app.command(name="render", rich_help_panel=PANEL_EDIT)(render.render)


# =============================================================================
# Save and Sync
# =============================================================================

app.command(name="status", rich_help_panel=PANEL_STORE)(status.status)
app.command(name="sync", rich_help_panel=PANEL_STORE)(sync.sync)
app.command(name="export", rich_help_panel=PANEL_STORE)(transfer.export)
app.command(name="import", rich_help_panel=PANEL_STORE)(transfer.import_cmd)


@app.command()
def version() -> None:
    """Show dashstore version and exit."""
    console.print(f"dashstore version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]
