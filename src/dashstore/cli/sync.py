"""
dashstore CLI - sync command.

Pushes locally committed changes to the remote configuration service and
pulls in newer remote state (last write wins).
"""

import asyncio

import typer
from rich.console import Console

from dashstore.cli.errors import (
    ExitCode,
    exit_code_for,
    print_error,
    print_remote_not_configured_error,
)
from dashstore.cli.workspace import build_workspace
from dashstore.core.errors import SyncError
from dashstore.core.sync import SyncCoordinator, SyncReport
from dashstore.core.workspace import Workspace

console = Console()


async def _sync(workspace: Workspace) -> SyncReport:
    try:
        workspace.load_local()
        return await SyncCoordinator(workspace).sync_all()
    finally:
        await workspace.aclose()


def sync(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="List the keys written and deleted",
    ),
) -> None:
    """
    Sync local changes with the remote configuration service.

    Examples:
        dashstore sync
        dashstore sync -v
    """
    workspace = build_workspace()
    if workspace.remote is None:
        workspace.close()
        print_remote_not_configured_error()
        raise typer.Exit(ExitCode.USER_ERROR)

    console.print("[blue]Syncing with remote...[/blue]")
    try:
        report = asyncio.run(_sync(workspace))
    except SyncError as e:
        print_error(
            "Sync failed",
            reason=e.message,
            solution="dashstore sync  # changes stay saved locally; retry later",
        )
        raise typer.Exit(exit_code_for(e))

    console.print(f"[green]✓[/green] {report.summary()}")
    if report.stale:
        console.print(f"[yellow]⚠[/yellow]  Changed during sync: {', '.join(report.stale)}")
    if report.skipped:
        console.print(f"[yellow]⚠[/yellow]  Not saved locally: {', '.join(report.skipped)}")
    if verbose:
        for key in report.written_keys:
            console.print(f"  [dim]wrote[/dim]   {key}")
        for key in report.deleted_keys:
            console.print(f"  [dim]deleted[/dim] {key}")
        if report.duration_seconds is not None:
            console.print(f"[dim]Took {report.duration_seconds:.2f}s[/dim]")
