"""
Sync service: pushes locally committed state to the remote store.

A sync reads the full remote state for the tenant scope, reconciles it
with the local state by last-write-wins, writes back only the keys whose
values changed and then adopts the reconciled state locally.

Per-aggregate status handling:
    - only ``saved-local`` aggregates take part; ``unsaved`` ones are
      skipped: they keep their status and local data, and their remote
      state is left as it is
    - participants move to ``syncing``, then ``saved-remote`` on success
      or back to ``saved-local`` on failure
    - an aggregate mutated while the sync is in flight keeps ``unsaved``
      and its local data; the completion event is dropped for it
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from dashstore.core.entities.models import (
    AppSettings,
    Card,
    Dashboard,
    DataSource,
    DeletionTombstone,
    EntityType,
    Variable,
    WhiteLabelSettings,
    utc_now,
)
from dashstore.core.errors import SyncError
from dashstore.core.savestate import AggregateKey, AggregateKind, SaveEvent, SaveStatus
from dashstore.core.storage.keys import (
    APP_SETTINGS_KEY,
    DASHBOARD_CARDS_PREFIX,
    DASHBOARD_PREFIX,
    DASHBOARD_VARIABLES_PREFIX,
    DATA_SOURCES_KEY,
    WHITE_LABEL_KEY,
    dashboard_keys,
)
from dashstore.core.storage.remote import RemoteConfigStore, ScopeHeaders
from dashstore.core.sync.merge import merge_snapshots
from dashstore.core.sync.models import (
    ConfigSnapshot,
    SyncReport,
    parse_entities,
    parse_optional,
    same_value,
)

if TYPE_CHECKING:
    from dashstore.core.workspace import Workspace

logger = logging.getLogger(__name__)


def _flatten(values: list[Any]) -> list[Any]:
    items: list[Any] = []
    for value in values:
        if isinstance(value, list):
            items.extend(value)
        elif value is not None:
            items.append(value)
    return items


async def fetch_remote_snapshot(remote: RemoteConfigStore, headers: ScopeHeaders) -> ConfigSnapshot:
    """
    Read every syncable key of one tenant scope from the remote store.

    Raises:
        SyncError: If the remote store cannot be read
    """
    try:
        dashboards, cards, variables, sources, white_label, app_settings = await asyncio.gather(
            remote.list(DASHBOARD_PREFIX, headers),
            remote.list(DASHBOARD_CARDS_PREFIX, headers),
            remote.list(DASHBOARD_VARIABLES_PREFIX, headers),
            remote.read(DATA_SOURCES_KEY, headers),
            remote.read(WHITE_LABEL_KEY, headers),
            remote.read(APP_SETTINGS_KEY, headers),
        )
    except SyncError:
        raise
    except Exception as e:
        raise SyncError(f"Failed to read remote configuration: {e}") from e

    return ConfigSnapshot(
        dashboards=parse_entities(Dashboard, _flatten(dashboards), "remote store"),
        cards=parse_entities(Card, _flatten(cards), "remote store"),
        variables=parse_entities(Variable, _flatten(variables), "remote store"),
        data_sources=parse_entities(DataSource, _flatten([sources]), "remote store"),
        white_label=parse_optional(WhiteLabelSettings, white_label, "remote store"),
        app_settings=parse_optional(AppSettings, app_settings, "remote store"),
    )


def tombstone_owner(tombstone: DeletionTombstone) -> AggregateKey:
    """Aggregate whose local commit carries a tombstone."""
    if tombstone.type == EntityType.DATA_SOURCE:
        return AggregateKey.data_sources()
    if tombstone.type == EntityType.DASHBOARD:
        return AggregateKey.dashboard(tombstone.id)
    return AggregateKey.dashboard(tombstone.parent_id or "")


def hold_back(
    merged: ConfigSnapshot,
    remote: ConfigSnapshot,
    held: list[AggregateKey],
) -> ConfigSnapshot:
    """
    Keep the remote state of aggregates that are not taking part in a sync.

    Their local edits have not been committed yet, so they must neither be
    pushed nor replaced by the reconciled copy.
    """
    if not held:
        return merged
    snapshot = merged.model_copy(deep=True)
    held_ids = {key.id for key in held if key.kind == AggregateKind.DASHBOARD}
    if held_ids:
        remote_dashboards = {d.id: d for d in remote.dashboards}
        snapshot.dashboards = [
            remote_dashboards[d.id] if d.id in held_ids else d
            for d in snapshot.dashboards
            if d.id not in held_ids or d.id in remote_dashboards
        ]
        present = {d.id for d in snapshot.dashboards}
        snapshot.dashboards.extend(
            d for d in remote.dashboards if d.id in held_ids and d.id not in present
        )
        snapshot.cards = [c for c in snapshot.cards if c.dashboard_id not in held_ids] + [
            c for c in remote.cards if c.dashboard_id in held_ids
        ]
        snapshot.variables = [
            v for v in snapshot.variables if v.scope_id not in held_ids
        ] + [v for v in remote.variables if v.scope_id in held_ids]
    if AggregateKey.settings() in held:
        snapshot.white_label = remote.white_label
        snapshot.app_settings = remote.app_settings
    if AggregateKey.data_sources() in held:
        snapshot.data_sources = list(remote.data_sources)
    return snapshot


class SyncCoordinator:
    """
    Runs an explicit sync of a Workspace against its remote store.

    Example:
        >>> coordinator = SyncCoordinator(workspace)
        >>> report = await coordinator.sync_all()
        >>> print(report.summary())
        sync succeeded, 3 keys written
    """

    def __init__(self, workspace: Workspace) -> None:
        self.workspace = workspace

    async def sync_all(self) -> SyncReport:
        """
        Sync every locally committed aggregate.

        Returns:
            SyncReport describing what was written

        Raises:
            SyncError: If no remote store is configured, or if reading or
                writing the remote store fails. Participating aggregates are
                back at ``saved-local`` in that case, and also when the
                sync is cancelled.
        """
        workspace = self.workspace
        remote = workspace.remote
        if remote is None:
            raise SyncError("No remote configuration store is configured")

        started_at = utc_now()
        workspace.flush()
        tracker = workspace.tracker

        skipped = tracker.in_state(SaveStatus.UNSAVED)
        for key in skipped:
            logger.warning("Skipping %s: local commit has not succeeded yet", key)
        candidates = tracker.in_state(SaveStatus.SAVED_LOCAL)

        revisions = {key: tracker.revision(key) for key in tracker.keys()}
        local = workspace.snapshot()
        tombstones = workspace.tombstones
        for key in candidates:
            tracker.fire(key, SaveEvent.SYNC_REQUESTED)

        headers = workspace.headers
        try:
            remote_snapshot = await fetch_remote_snapshot(remote, headers)
            merged = merge_snapshots(local, remote_snapshot, tombstones)
            merged = hold_back(merged, remote_snapshot, skipped)
            written, deleted = await self._push(remote, headers, remote_snapshot, merged)
        except BaseException as e:
            # Cancellation included: nothing may stay in syncing.
            for key in candidates:
                tracker.fire_if_current(key, SaveEvent.REMOTE_COMMIT_FAILED, revisions[key])
            if isinstance(e, SyncError):
                logger.error("Sync failed: %s", e.message)
            else:
                logger.warning("Sync interrupted: %r", e)
            raise

        synced: list[AggregateKey] = []
        stale: list[AggregateKey] = []
        for key in candidates:
            if tracker.fire_if_current(key, SaveEvent.REMOTE_COMMIT_OK, revisions[key]):
                synced.append(key)
            else:
                stale.append(key)

        def is_untouched(key: AggregateKey) -> bool:
            return key not in skipped and tracker.revision(key) == revisions.get(key, 0)

        workspace.adopt(merged, is_untouched)
        workspace.clear_tombstones(t for t in tombstones if tombstone_owner(t) not in skipped)
        workspace.mark_synced(synced)

        report = SyncReport(
            success=True,
            synced=[str(k) for k in synced],
            skipped=[str(k) for k in skipped],
            stale=[str(k) for k in stale],
            written_keys=written,
            deleted_keys=deleted,
            started_at=started_at,
            completed_at=utc_now(),
        )
        report.message = report.summary()
        logger.info("%s", report.message)
        return report

    async def _push(
        self,
        remote: RemoteConfigStore,
        headers: ScopeHeaders,
        before: ConfigSnapshot,
        merged: ConfigSnapshot,
    ) -> tuple[list[str], list[str]]:
        """Write changed keys and delete keys of removed dashboards."""
        current = before.storage_values()
        target = merged.storage_values()
        changed = [
            key
            for key, value in target.items()
            if key not in current or not same_value(current[key], value)
        ]
        removed_ids = sorted(before.dashboard_ids() - merged.dashboard_ids())
        removed = [key for dashboard_id in removed_ids for key in dashboard_keys(dashboard_id)]

        try:
            results = await asyncio.gather(
                *(remote.write(key, target[key], headers) for key in changed)
            )
            for key, result in zip(changed, results):
                if not result.success:
                    raise SyncError(result.message or f"Remote store rejected '{key}'", key=key)
            await asyncio.gather(*(remote.delete(key, headers) for key in removed))
        except SyncError:
            raise
        except Exception as e:
            raise SyncError(f"Failed to write remote configuration: {e}") from e

        logger.debug("Wrote %d keys, deleted %d keys", len(changed), len(removed))
        return changed, removed


__all__ = ["SyncCoordinator", "fetch_remote_snapshot", "hold_back", "tombstone_owner"]
