"""
dashstore CLI - export and import commands.

Moves dashboards (with their cards, variables and referenced data
sources) or data sources between environments as portable JSON files.
"""

from pathlib import Path

import typer
from rich.console import Console

from dashstore.cli.errors import ExitCode, exit_code_for, print_error
from dashstore.cli.workspace import open_workspace
from dashstore.core.errors import ValidationError
from dashstore.core.transfer import (
    ExportKind,
    export_dashboards,
    export_data_sources,
    importable_items,
    merge_import,
    parse_export_document,
)

console = Console()

KIND_OPTION = typer.Option(
    ExportKind.DASHBOARDS,
    "--kind",
    "-k",
    help="What to transfer: dashboards or dataSources",
    case_sensitive=False,
)


def export(
    ids: list[str] | None = typer.Option(
        None,
        "--id",
        help="Id to export (repeatable; default: all)",
    ),
    kind: ExportKind = KIND_OPTION,
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="File to write (default: stdout)",
    ),
) -> None:
    """
    Export dashboards or data sources to a JSON document.

    Examples:
        dashstore export -o dashboards.json
        dashstore export --id 6f1c... --id 9a2b... -o two.json
        dashstore export --kind dataSources -o sources.json
    """
    with open_workspace() as workspace:
        if kind == ExportKind.DASHBOARDS:
            selected = ids or [d.id for d in workspace.dashboards]
            document = export_dashboards(workspace, selected)
            count = len(document.dashboards or [])
        else:
            selected = ids or [s.id for s in workspace.data_sources]
            document = export_data_sources(workspace, selected)
            count = len(document.data_sources or [])

    text = document.to_json()
    if output is None:
        typer.echo(text)
        return
    output.write_text(text + "\n", encoding="utf-8")
    console.print(f"[green]✓[/green] Exported {count} {kind.value} to {output}")


def import_cmd(
    path: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Export document to import",
    ),
    ids: list[str] | None = typer.Option(
        None,
        "--id",
        help="Id (as found in the file) to import (repeatable; default: all)",
    ),
    kind: ExportKind = KIND_OPTION,
    list_only: bool = typer.Option(
        False,
        "--list",
        "-l",
        help="Only list the importable items",
    ),
) -> None:
    """
    Import dashboards or data sources from an export document.

    Imported entities always get new ids; clashing names get a " (n)" suffix.

    Examples:
        dashstore import dashboards.json --list
        dashstore import dashboards.json --id 6f1c...
        dashstore import sources.json --kind dataSources
    """
    try:
        document = parse_export_document(path.read_bytes())
        items = importable_items(document, kind)
    except ValidationError as e:
        print_error(
            "Cannot import file",
            reason=e.message,
            solution=f"dashstore export --kind {kind.value}  # to produce a valid file",
        )
        raise typer.Exit(ExitCode.USER_ERROR)

    if list_only:
        for item in items:
            console.print(f"{item.id}  [cyan]{item.name}[/cyan]")
        return

    with open_workspace() as workspace:
        try:
            result = merge_import(workspace, document, ids or None, kind)
        except ValidationError as e:
            print_error("Import rejected", reason=e.message)
            raise typer.Exit(exit_code_for(e))

    console.print(
        f"[green]✓[/green] Imported {len(result.dashboards)} dashboards, "
        f"{len(result.cards)} cards, {len(result.variables)} variables, "
        f"{len(result.data_sources)} data sources"
    )
