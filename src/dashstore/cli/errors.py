"""
Standardized error handling and exit codes for the dashstore CLI.

This module provides consistent error messaging with actionable guidance
and standardized exit codes across all CLI commands.
"""

from enum import IntEnum

from rich.console import Console

from dashstore.core.errors import DashstoreError, ValidationError

console = Console()


class ExitCode(IntEnum):
    """Standard exit codes for dashstore CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Generic error (remote failure, storage failure)."""

    USER_ERROR = 2
    """User configuration or input error (actionable by user)."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it

    Example:
        >>> print_error(
        ...     "Remote sync is disabled",
        ...     reason="No remote URL is configured",
        ...     solution="export DASHSTORE_REMOTE_URL=https://config.example.com/api/config",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}")

    if reason:
        console.print(f"[dim]{reason}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def print_remote_not_configured_error() -> None:
    """Print error when a command needs the remote store but none is set."""
    print_error(
        "Remote sync is disabled",
        reason="No remote configuration URL is set",
        solution="export DASHSTORE_REMOTE_URL=<url>  # or set remote.url in .dashstore.json",
    )


def print_dashboard_not_found_error(ref: str) -> None:
    print_error(
        f"Dashboard not found: {ref}",
        reason="The id or name may be wrong, or the dashboard was deleted",
        solution="dashstore dashboards list",
    )


def exit_code_for(error: DashstoreError) -> ExitCode:
    """Map a core error to the exit code the CLI reports it with."""
    if isinstance(error, ValidationError):
        return ExitCode.USER_ERROR
    return ExitCode.GENERAL_ERROR
