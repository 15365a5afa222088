"""
dashstore CLI - vars commands.

Inspect and edit the variables of a dashboard. Listing shows every
variable with its resolved value, host-injected fixed variables included.
"""

import typer
from rich.console import Console
from rich.table import Table

from dashstore.cli.errors import ExitCode, print_error
from dashstore.cli.workspace import open_workspace, require_dashboard
from dashstore.core.errors import ValidationError
from dashstore.core.variables import is_failure_marker

console = Console()
app = typer.Typer(
    name="vars",
    help="Manage dashboard variables",
    no_args_is_help=True,
)

DASHBOARD_OPTION = typer.Option(
    None,
    "--dashboard",
    "-d",
    help="Dashboard id or name (defaults to the active dashboard)",
)


@app.command("list")
def list_variables(dashboard_ref: str | None = DASHBOARD_OPTION) -> None:
    """
    List a dashboard's variables with their resolved values.

    Examples:
        dashstore vars list
        dashstore vars list -d Sales
    """
    with open_workspace() as workspace:
        dashboard = require_dashboard(workspace, dashboard_ref)
        resolved = workspace.resolved_variables(dashboard.id)

        table = Table(title=f"Variables: {workspace.display_name(dashboard.id)}")
        table.add_column("Name", style="cyan")
        table.add_column("Value")
        table.add_column("Resolved")
        table.add_column("Kind", style="dim")

        for variable in workspace.fixed_variables_for(dashboard.id):
            table.add_row(variable.name, variable.raw_value, variable.raw_value, "fixed")
        for variable in workspace.variables_for(dashboard.id):
            value = resolved.get(variable.name, "")
            if is_failure_marker(value):
                value = f"[red]{value}[/red]"
            kind = "expression" if variable.is_expression else "plain"
            table.add_row(variable.name, variable.raw_value, value, kind)
        console.print(table)


@app.command("set")
def set_variable(
    name: str = typer.Argument(..., help="Variable name"),
    value: str = typer.Argument(..., help="Raw value or expression text"),
    expression: bool = typer.Option(
        False,
        "--expr",
        "-e",
        help="Evaluate the value as an expression",
    ),
    dashboard_ref: str | None = DASHBOARD_OPTION,
) -> None:
    """
    Create or update a variable.

    Examples:
        dashstore vars set year 2024
        dashstore vars set next_year "year + 1" --expr
    """
    with open_workspace() as workspace:
        dashboard = require_dashboard(workspace, dashboard_ref)
        existing = workspace.variables.find(dashboard.id, name)
        try:
            if existing is None:
                workspace.add_variable(dashboard.id, name, value, is_expression=expression)
            else:
                workspace.update_variable(
                    existing.model_copy(update={"raw_value": value, "is_expression": expression})
                )
        except ValidationError as e:
            print_error(e.message, solution="dashstore vars list")
            raise typer.Exit(ExitCode.USER_ERROR)

        resolved = workspace.resolved_variables(dashboard.id).get(name, "")
        console.print(f"[green]✓[/green] {name} = {resolved}")


@app.command("rm")
def remove_variable(
    name: str = typer.Argument(..., help="Variable name"),
    dashboard_ref: str | None = DASHBOARD_OPTION,
) -> None:
    """Delete a variable."""
    with open_workspace() as workspace:
        dashboard = require_dashboard(workspace, dashboard_ref)
        existing = workspace.variables.find(dashboard.id, name)
        if existing is None:
            print_error(
                f"Variable not found: {name}",
                solution="dashstore vars list",
            )
            raise typer.Exit(ExitCode.USER_ERROR)
        workspace.remove_variable(dashboard.id, existing.id)
        console.print(f"[green]✓[/green] Removed {name}")
