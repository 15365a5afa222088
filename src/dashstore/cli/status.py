"""
dashstore CLI - status command.

Shows the save status of every aggregate in the local workspace.
"""

import typer
from rich.console import Console
from rich.table import Table

from dashstore.cli.workspace import open_workspace
from dashstore.core.savestate import AggregateKind, SaveStatus

console = Console()

STATUS_STYLES = {
    SaveStatus.IDLE: ("○", "dim"),
    SaveStatus.UNSAVED: ("●", "yellow"),
    SaveStatus.SAVING_LOCAL: ("…", "yellow"),
    SaveStatus.SAVED_LOCAL: ("↑", "blue"),
    SaveStatus.SYNCING: ("⟳", "blue"),
    SaveStatus.SAVED_REMOTE: ("✓", "green"),
}


def status() -> None:
    """
    Show the save status of dashboards, settings and data sources.

    Examples:
        dashstore status
    """
    with open_workspace() as workspace:
        table = Table(title="Save Status")
        table.add_column("Aggregate", style="cyan")
        table.add_column("Name")
        table.add_column("Status")

        for key, current in workspace.tracker.statuses().items():
            name = ""
            if key.kind == AggregateKind.DASHBOARD and key.id is not None:
                dashboard = workspace.get_dashboard(key.id)
                name = workspace.display_name(key.id) if dashboard else "[dim](deleted)[/dim]"
            icon, color = STATUS_STYLES[current]
            table.add_row(str(key), name, f"[{color}]{icon} {current.value}[/{color}]")

        console.print(table)
        if workspace.has_unsynced_changes:
            console.print("\n[yellow]Unsynced changes pending[/yellow]")
            if workspace.remote is not None:
                console.print("[dim]→ Run [bold]dashstore sync[/bold] to push them[/dim]")
        else:
            console.print("\n[green]✓[/green] Everything is synced")
