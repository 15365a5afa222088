"""
dashstore CLI - render command.

Substitutes ``{{...}}`` placeholders in a text using a dashboard's
variables, the way dashboard names, queries and labels are displayed.
"""

import typer
from rich.console import Console

from dashstore.cli.workspace import open_workspace, require_dashboard

console = Console()


def render(
    text: str = typer.Argument(..., help="Text containing {{placeholders}}"),
    dashboard_ref: str | None = typer.Option(
        None,
        "--dashboard",
        "-d",
        help="Dashboard id or name (defaults to the active dashboard)",
    ),
) -> None:
    """
    Render a text template against a dashboard's variables.

    Placeholders may name a variable or hold an inline expression.

    Examples:
        dashstore render "SELECT * FROM sales WHERE year = {{year}}"
        dashstore render "Next year: {{year + 1}}" -d Sales
    """
    with open_workspace() as workspace:
        dashboard = require_dashboard(workspace, dashboard_ref)
        console.print(workspace.render(dashboard.id, text), markup=False, highlight=False)
