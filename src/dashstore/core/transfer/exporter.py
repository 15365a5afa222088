"""Export selected entities of a workspace to an ExportDocument."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from dashstore.core.transfer.models import ExportDocument
from dashstore.core.variables.fixed import is_fixed

if TYPE_CHECKING:
    from dashstore.core.workspace import Workspace

logger = logging.getLogger(__name__)


def export_dashboards(workspace: Workspace, dashboard_ids: Iterable[str]) -> ExportDocument:
    """
    Export dashboards together with everything they own.

    The document carries the selected dashboards, their cards and persisted
    variables, and the data sources those cards reference. Unknown ids are
    ignored.
    """
    selected = set(dashboard_ids)
    dashboards = [d for d in workspace.dashboards if d.id in selected]
    kept = {d.id for d in dashboards}
    cards = [c for c in workspace.cards if c.dashboard_id in kept]
    variables = [
        v for d in dashboards for v in workspace.variables_for(d.id) if not is_fixed(v)
    ]
    referenced = {c.data_source_id for c in cards if c.data_source_id}
    data_sources = [s for s in workspace.data_sources if s.id in referenced]
    logger.debug(
        "Exporting %d dashboards with %d cards, %d variables, %d data sources",
        len(dashboards),
        len(cards),
        len(variables),
        len(data_sources),
    )
    return ExportDocument.create(
        dashboards=dashboards,
        cards=cards,
        variables=variables,
        data_sources=data_sources,
    )


def export_data_sources(workspace: Workspace, data_source_ids: Iterable[str]) -> ExportDocument:
    selected = set(data_source_ids)
    return ExportDocument.create(
        data_sources=[s for s in workspace.data_sources if s.id in selected]
    )


__all__ = ["export_dashboards", "export_data_sources"]
