"""
Workspace plumbing shared by CLI commands.

Every command opens the workspace configured in DashstoreConfig, loads it
from the local cache, and flushes pending local commits on the way out.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import typer

from dashstore.cli.errors import ExitCode, print_dashboard_not_found_error
from dashstore.core.config import load_config
from dashstore.core.entities.models import Dashboard
from dashstore.core.workspace import Workspace

logger = logging.getLogger(__name__)


def build_workspace() -> Workspace:
    """Create (but do not load) the workspace described by the config."""
    config = load_config()
    logger.debug("Using local cache at %s", config.local.cache_path)
    return Workspace.from_config(config)


@contextmanager
def open_workspace() -> Iterator[Workspace]:
    """Load the workspace from the local cache and close it on exit."""
    workspace = build_workspace()
    try:
        workspace.load_local()
        yield workspace
    finally:
        workspace.close()


def require_dashboard(workspace: Workspace, ref: str | None) -> Dashboard:
    """
    Resolve a dashboard reference (id or name), defaulting to the active one.

    Exits with USER_ERROR when nothing matches.
    """
    if ref is None:
        ref = workspace.active_dashboard_id or ""
    dashboard = workspace.find_dashboard(ref)
    if dashboard is None:
        print_dashboard_not_found_error(ref or "<none>")
        raise typer.Exit(ExitCode.USER_ERROR)
    return dashboard
