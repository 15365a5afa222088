"""
dashstore CLI - dashboards commands.

List, create, rename, duplicate and delete dashboards in the local
workspace.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from dashstore.cli.errors import ExitCode, print_error
from dashstore.cli.workspace import open_workspace, require_dashboard
from dashstore.core.errors import ValidationError

console = Console()
app = typer.Typer(
    name="dashboards",
    help="Manage dashboards",
    no_args_is_help=True,
)


@app.command("list")
def list_dashboards() -> None:
    """
    List dashboards with their resolved names.

    Examples:
        dashstore dashboards list
    """
    with open_workspace() as workspace:
        table = Table(title="Dashboards")
        table.add_column("", width=1)
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Cards", justify="right")
        table.add_column("Variables", justify="right")
        table.add_column("Status")

        for dashboard in workspace.dashboards:
            active = "*" if dashboard.id == workspace.active_dashboard_id else ""
            table.add_row(
                active,
                dashboard.id,
                workspace.display_name(dashboard.id),
                str(len(workspace.cards_for(dashboard.id))),
                str(len(workspace.variables_for(dashboard.id))),
                workspace.dashboard_status(dashboard.id).value,
            )
        console.print(table)


@app.command("add")
def add(
    name: str = typer.Argument(..., help="Dashboard name (may contain {{placeholders}})"),
) -> None:
    """
    Create a dashboard and make it active.

    Examples:
        dashstore dashboards add "Sales {{year}}"
    """
    with open_workspace() as workspace:
        dashboard = workspace.add_dashboard(name)
        console.print(f"[green]✓[/green] Created dashboard {dashboard.id}")


@app.command("rename")
def rename(
    dashboard_ref: str = typer.Argument(..., help="Dashboard id or name"),
    name: str = typer.Argument(..., help="New name"),
) -> None:
    """Rename a dashboard."""
    with open_workspace() as workspace:
        dashboard = require_dashboard(workspace, dashboard_ref)
        workspace.rename_dashboard(dashboard.id, name)
        console.print(f"[green]✓[/green] Renamed to {workspace.display_name(dashboard.id)}")


@app.command("duplicate")
def duplicate(
    dashboard_ref: str = typer.Argument(..., help="Dashboard id or name"),
    name: str | None = typer.Option(None, "--name", "-n", help="Name of the copy"),
) -> None:
    """
    Copy a dashboard with its cards and variables.

    Examples:
        dashstore dashboards duplicate Sales
        dashstore dashboards duplicate Sales --name "Sales EU"
    """
    with open_workspace() as workspace:
        dashboard = require_dashboard(workspace, dashboard_ref)
        copy = workspace.duplicate_dashboard(dashboard.id, name)
        console.print(f"[green]✓[/green] Created {copy.name} ({copy.id})")


@app.command("library")
def library(
    path: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="File of 'name = expression' helper definitions",
    ),
    dashboard_ref: str | None = typer.Option(
        None,
        "--dashboard",
        "-d",
        help="Dashboard id or name (defaults to the active dashboard)",
    ),
) -> None:
    """
    Replace a dashboard's script library.

    Helpers become available to the dashboard's expressions and placeholders.

    Examples:
        dashstore dashboards library helpers.txt
        dashstore render "FY {{fiscal_year}}"
    """
    with open_workspace() as workspace:
        dashboard = require_dashboard(workspace, dashboard_ref)
        try:
            workspace.update_script_library(dashboard.id, path.read_text(encoding="utf-8"))
        except ValidationError as e:
            print_error(f"Invalid script library: {e.message}")
            raise typer.Exit(ExitCode.USER_ERROR)
        console.print(f"[green]✓[/green] Updated script library of {dashboard.name}")


@app.command("use")
def use(dashboard_ref: str = typer.Argument(..., help="Dashboard id or name")) -> None:
    """Make a dashboard the active one."""
    with open_workspace() as workspace:
        dashboard = require_dashboard(workspace, dashboard_ref)
        workspace.set_active_dashboard(dashboard.id)
        console.print(f"[green]✓[/green] Active dashboard: {workspace.display_name(dashboard.id)}")


@app.command("rm")
def remove(
    dashboard_ref: str = typer.Argument(..., help="Dashboard id or name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """
    Delete a dashboard together with its cards and variables.

    The deletion reaches the remote store on the next sync.
    """
    with open_workspace() as workspace:
        dashboard = require_dashboard(workspace, dashboard_ref)
        if not yes and not typer.confirm(f"Delete dashboard '{dashboard.name}'?"):
            raise typer.Exit(ExitCode.SUCCESS)
        try:
            workspace.remove_dashboard(dashboard.id)
        except ValidationError as e:
            print_error(e.message)
            raise typer.Exit(ExitCode.USER_ERROR)
        console.print(f"[green]✓[/green] Deleted dashboard {dashboard.id}")
