"""
Import of export documents into a workspace.

Parsing and validation happen before anything is merged: a document that
fails validation, or a selection naming entities the document does not
contain, leaves the workspace untouched.

Merge policy:
    - every imported dashboard, card, variable and data source gets a new id
    - a dashboard import maps data sources onto existing ones with the same
      name and adds the rest
    - imported dashboards and data sources whose name is already taken are
      renamed ``<name> (n)``
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from dashstore.core.entities.models import (
    Card,
    Dashboard,
    DataSource,
    Variable,
    new_id,
    utc_now,
)
from dashstore.core.errors import ValidationError
from dashstore.core.transfer.models import ExportDocument, ExportKind
from dashstore.core.variables.fixed import is_fixed

if TYPE_CHECKING:
    from dashstore.core.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Old-to-new id maps produced by an import."""

    dashboards: dict[str, str] = field(default_factory=dict)
    cards: dict[str, str] = field(default_factory=dict)
    variables: dict[str, str] = field(default_factory=dict)
    data_sources: dict[str, str] = field(default_factory=dict)

    @property
    def imported_count(self) -> int:
        return len(self.dashboards) + len(self.data_sources)


@dataclass
class ImportableItem:
    """A name-bearing entity offered for selection."""

    id: str
    name: str


def parse_export_document(text: str | bytes) -> ExportDocument:
    """
    Parse and validate an export document.

    Raises:
        ValidationError: If the text is not JSON, lacks ``metadata.version``,
            or carries no recognized entity array
    """
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Import file is not valid JSON: {e}") from e
    except RecursionError as e:
        raise ValidationError("Import file is nested too deeply") from e
    if not isinstance(payload, dict):
        raise ValidationError("Import file must contain a JSON object")

    metadata = payload.get("metadata")
    if not isinstance(metadata, dict) or metadata.get("version") in (None, ""):
        raise ValidationError("Import file is missing 'metadata.version'")

    try:
        document = ExportDocument.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ValidationError(
            f"Import file is malformed at '{location}': {first['msg']}",
            error_count=e.error_count(),
        ) from e

    if not document.has_entities():
        raise ValidationError("Import file contains no dashboards or data sources")
    return document


def validate_for(document: ExportDocument, kind: ExportKind) -> None:
    """
    Check that a document has the arrays an import of ``kind`` needs.

    Raises:
        ValidationError: If a required array is missing
    """
    if kind == ExportKind.DASHBOARDS:
        required = {
            "dashboards": document.dashboards,
            "cards": document.cards,
            "variables": document.variables,
        }
    else:
        required = {"dataSources": document.data_sources}
    missing = [name for name, items in required.items() if items is None]
    if missing:
        raise ValidationError(
            f"Import file is not a {kind.value} export (missing: {', '.join(missing)})",
            kind=kind.value,
        )


def importable_items(document: ExportDocument, kind: ExportKind) -> list[ImportableItem]:
    """Entities of a document a user can pick from, for the given kind."""
    validate_for(document, kind)
    items: Iterable[Dashboard | DataSource]
    if kind == ExportKind.DASHBOARDS:
        items = document.dashboards or []
    else:
        items = document.data_sources or []
    return [ImportableItem(id=item.id, name=item.name) for item in items]


def _unique_name(name: str, taken: set[str]) -> str:
    if name not in taken:
        return name
    index = 1
    while f"{name} ({index})" in taken:
        index += 1
    return f"{name} ({index})"


def _select(items: list, selected_ids: Iterable[str] | None, label: str) -> list:
    if selected_ids is None:
        return list(items)
    wanted = list(dict.fromkeys(selected_ids))
    by_id = {item.id: item for item in items}
    unknown = [item_id for item_id in wanted if item_id not in by_id]
    if unknown:
        raise ValidationError(
            f"Selected {label} not found in import file: {', '.join(unknown)}",
            ids=unknown,
        )
    return [by_id[item_id] for item_id in wanted]


def _check_variable_names(variables: list[Variable]) -> None:
    seen: set[tuple[str, str]] = set()
    for variable in variables:
        name = variable.name.strip()
        if not name:
            raise ValidationError(
                "Import file contains a variable without a name",
                dashboard_id=variable.scope_id,
            )
        if (variable.scope_id, name) in seen:
            raise ValidationError(
                f"Import file defines variable '{name}' twice in one dashboard",
                dashboard_id=variable.scope_id,
            )
        seen.add((variable.scope_id, name))


def _import_dashboards(
    workspace: Workspace,
    document: ExportDocument,
    selected_ids: Iterable[str] | None,
) -> ImportResult:
    selected: list[Dashboard] = _select(document.dashboards or [], selected_ids, "dashboards")
    chosen = {d.id for d in selected}
    cards = [c for c in document.cards or [] if c.dashboard_id in chosen]
    variables = [
        v for v in document.variables or [] if v.scope_id in chosen and not is_fixed(v)
    ]
    _check_variable_names(variables)

    now = utc_now()
    result = ImportResult()

    referenced = {c.data_source_id for c in cards if c.data_source_id}
    existing_sources = {s.name: s.id for s in workspace.data_sources}
    new_sources: list[DataSource] = []
    for source in document.data_sources or []:
        if source.id not in referenced:
            continue
        if source.name in existing_sources:
            result.data_sources[source.id] = existing_sources[source.name]
            continue
        fresh = source.model_copy(update={"id": new_id(), "last_modified": now})
        existing_sources[source.name] = fresh.id
        result.data_sources[source.id] = fresh.id
        new_sources.append(fresh)

    taken = {d.name for d in workspace.dashboards}
    for dashboard in selected:
        result.dashboards[dashboard.id] = new_id()
    for card in cards:
        result.cards[card.id] = new_id()

    new_dashboards = []
    for dashboard in selected:
        name = _unique_name(dashboard.name, taken)
        taken.add(name)
        new_dashboards.append(
            dashboard.model_copy(
                update={
                    "id": result.dashboards[dashboard.id],
                    "name": name,
                    "card_order": [
                        result.cards[c] for c in dashboard.card_order if c in result.cards
                    ],
                    "last_modified": now,
                }
            )
        )
    new_cards = [
        card.model_copy(
            update={
                "id": result.cards[card.id],
                "dashboard_id": result.dashboards[card.dashboard_id],
                "data_source_id": result.data_sources.get(card.data_source_id, card.data_source_id),
                "last_modified": now,
            }
        )
        for card in cards
    ]
    new_variables = []
    for variable in variables:
        result.variables[variable.id] = new_id()
        new_variables.append(
            variable.model_copy(
                update={
                    "id": result.variables[variable.id],
                    "scope_id": result.dashboards[variable.scope_id],
                    "last_modified": now,
                }
            )
        )

    workspace.add_imported(
        dashboards=new_dashboards,
        cards=new_cards,
        variables=new_variables,
        data_sources=new_sources,
    )
    return result


def _import_data_sources(
    workspace: Workspace,
    document: ExportDocument,
    selected_ids: Iterable[str] | None,
) -> ImportResult:
    selected: list[DataSource] = _select(
        document.data_sources or [], selected_ids, "data sources"
    )
    now = utc_now()
    taken = {s.name for s in workspace.data_sources}
    result = ImportResult()
    new_sources = []
    for source in selected:
        name = _unique_name(source.name, taken)
        taken.add(name)
        fresh = source.model_copy(update={"id": new_id(), "name": name, "last_modified": now})
        result.data_sources[source.id] = fresh.id
        new_sources.append(fresh)
    workspace.add_imported(data_sources=new_sources)
    return result


def merge_import(
    workspace: Workspace,
    document: ExportDocument,
    selected_ids: Iterable[str] | None = None,
    kind: ExportKind = ExportKind.DASHBOARDS,
) -> ImportResult:
    """
    Merge the selected entities of a document into the workspace.

    Args:
        workspace: Workspace receiving the entities
        document: Parsed export document
        selected_ids: Ids (as found in the document) of the dashboards or
            data sources to import; None imports every one of them
        kind: Which entity kind is being imported

    Returns:
        ImportResult with the old-to-new id maps

    Raises:
        ValidationError: If the document does not fit ``kind`` or the
            selection names ids the document does not contain
    """
    validate_for(document, kind)
    if kind == ExportKind.DASHBOARDS:
        result = _import_dashboards(workspace, document, selected_ids)
    else:
        result = _import_data_sources(workspace, document, selected_ids)
    logger.info(
        "Imported %d dashboards, %d cards, %d variables, %d data sources",
        len(result.dashboards),
        len(result.cards),
        len(result.variables),
        len(result.data_sources),
    )
    return result


def import_text(
    workspace: Workspace,
    text: str | bytes,
    selected_ids: Iterable[str] | None = None,
    kind: ExportKind = ExportKind.DASHBOARDS,
) -> ImportResult:
    """Parse a document and merge it in one step."""
    return merge_import(workspace, parse_export_document(text), selected_ids, kind)


__all__ = [
    "ImportResult",
    "ImportableItem",
    "import_text",
    "importable_items",
    "merge_import",
    "parse_export_document",
    "validate_for",
]
