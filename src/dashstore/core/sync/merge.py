"""
Last-write-wins reconciliation of local and remote state.

Entities are matched by id. The copy with the later ``last_modified`` wins
and ties go to the remote copy. Local-only entities are kept, and entities
named by a deletion tombstone are dropped from the result wherever they
came from.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Protocol, TypeVar

from dashstore.core.entities.models import DeletionTombstone, EntityType
from dashstore.core.sync.models import ConfigSnapshot

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class _Versioned(Protocol):
    id: str
    last_modified: datetime | None


class _Stamped(Protocol):
    last_modified: datetime | None


E = TypeVar("E", bound=_Versioned)
S = TypeVar("S", bound=_Stamped)


def _stamp(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_newer(local: datetime | None, remote: datetime | None) -> bool:
    """True if ``local`` is strictly later than ``remote``."""
    return _stamp(local) > _stamp(remote)


def deleted_ids(
    tombstones: Iterable[DeletionTombstone],
    entity_type: EntityType,
    parent_id: str | None = None,
) -> set[str]:
    """Ids tombstoned for one entity type (and parent, when given)."""
    return {
        t.id
        for t in tombstones
        if t.type == entity_type and (parent_id is None or t.parent_id == parent_id)
    }


def merge_entities(
    local: Sequence[E],
    remote: Sequence[E],
    tombstones: Iterable[DeletionTombstone] = (),
    entity_type: EntityType | None = None,
    parent_id: str | None = None,
) -> list[E]:
    """
    Merge two entity lists by id.

    Args:
        local: Local entities, in display order
        remote: Remote entities
        tombstones: Pending local deletions
        entity_type: Entity type the tombstones are filtered by
        parent_id: Owning dashboard, for cards and variables

    Returns:
        Local entities first (in local order, each replaced by the remote
        copy where that one is at least as new), then remote-only entities
    """
    remote_by_id = {item.id: item for item in remote}
    merged: dict[str, E] = {}
    for item in local:
        other = remote_by_id.get(item.id)
        if other is None or is_newer(item.last_modified, other.last_modified):
            merged[item.id] = item
        else:
            merged[item.id] = other
    for item in remote:
        merged.setdefault(item.id, item)

    if entity_type is not None:
        for dead in deleted_ids(tombstones, entity_type, parent_id):
            merged.pop(dead, None)
    return list(merged.values())


def merge_object(local: S | None, remote: S | None) -> S | None:
    """Pick the newer of two singleton settings objects."""
    if local is not None and (remote is None or is_newer(local.last_modified, remote.last_modified)):
        return local
    return remote if remote is not None else local


def merge_snapshots(
    local: ConfigSnapshot,
    remote: ConfigSnapshot,
    tombstones: Iterable[DeletionTombstone] = (),
) -> ConfigSnapshot:
    """
    Reconcile a full local snapshot with the remote one.

    Cards and variables are merged per surviving dashboard, so children of
    a deleted dashboard disappear with it.
    """
    tombstones = list(tombstones)
    dashboards = merge_entities(local.dashboards, remote.dashboards, tombstones, EntityType.DASHBOARD)
    cards = []
    variables = []
    for dashboard in dashboards:
        cards.extend(
            merge_entities(
                local.cards_for(dashboard.id),
                remote.cards_for(dashboard.id),
                tombstones,
                EntityType.CARD,
                dashboard.id,
            )
        )
        variables.extend(
            merge_entities(
                local.variables_for(dashboard.id),
                remote.variables_for(dashboard.id),
                tombstones,
                EntityType.VARIABLE,
                dashboard.id,
            )
        )
    return ConfigSnapshot(
        dashboards=dashboards,
        cards=cards,
        variables=variables,
        data_sources=merge_entities(
            local.data_sources, remote.data_sources, tombstones, EntityType.DATA_SOURCE
        ),
        white_label=merge_object(local.white_label, remote.white_label),
        app_settings=merge_object(local.app_settings, remote.app_settings),
    )


__all__ = ["deleted_ids", "is_newer", "merge_entities", "merge_object", "merge_snapshots"]
