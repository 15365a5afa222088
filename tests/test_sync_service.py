"""Tests for the sync coordinator."""

import asyncio
from datetime import timedelta

import pytest

from dashstore.core.entities.models import Dashboard, utc_now
from dashstore.core.errors import LocalCommitError, SyncError
from dashstore.core.savestate import AggregateKey, SaveStatus
from dashstore.core.storage.keys import (
    APP_SETTINGS_KEY,
    WHITE_LABEL_KEY,
    cards_key,
    dashboard_key,
    variables_key,
)
from dashstore.core.storage.local import MemoryLocalCache
from dashstore.core.storage.remote import MemoryRemoteStore, WriteResult
from dashstore.core.sync import SyncCoordinator, fetch_remote_snapshot
from dashstore.core.workspace import Workspace


class RejectingRemoteStore(MemoryRemoteStore):
    """Remote store that refuses every write."""

    async def write(self, key, value, headers) -> WriteResult:
        return WriteResult(success=False, message="Storage quota exceeded")


class UnreachableRemoteStore(MemoryRemoteStore):
    """Remote store whose reads fail like a dropped connection."""

    async def list(self, prefix, headers):
        raise ConnectionError("connection reset")


class SettingsRejectingCache(MemoryLocalCache):
    """Local cache that cannot store the settings group."""

    def set(self, key, value) -> None:
        if key == WHITE_LABEL_KEY:
            raise LocalCommitError("quota exceeded", key=key)
        super().set(key, value)


class HookedRemoteStore(MemoryRemoteStore):
    """Remote store that runs a callback during the first listing."""

    def __init__(self) -> None:
        super().__init__()
        self.on_list = None

    async def list(self, prefix, headers):
        if self.on_list is not None:
            hook, self.on_list = self.on_list, None
            hook()
        return await super().list(prefix, headers)



class HookedRejectingRemoteStore(HookedRemoteStore):
    """Hooked remote store that also refuses every write."""

    async def write(self, key, value, headers) -> WriteResult:
        return WriteResult(success=False, message="Storage quota exceeded")


class SlowRemoteStore(MemoryRemoteStore):
    """Remote store whose listing hangs until the caller gives up."""

    async def list(self, prefix, headers):
        await asyncio.sleep(10)
        return await super().list(prefix, headers)

@pytest.fixture
def synced_workspace(local_cache, host):
    """Workspace whose default dashboard is committed locally."""
    ws = Workspace(local_cache, remote=MemoryRemoteStore(), host=host)
    ws.load_local()
    ws.flush()
    return ws


class TestSyncAll:
    """Tests for SyncCoordinator.sync_all()."""

    @pytest.mark.asyncio
    async def test_happy_path(self, synced_workspace) -> None:
        """Test a committed dashboard is written and reaches saved-remote."""
        ws = synced_workspace
        dashboard_id = ws.dashboards[0].id
        assert ws.dashboard_status(dashboard_id) == SaveStatus.SAVED_LOCAL

        report = await SyncCoordinator(ws).sync_all()

        assert report.success
        assert report.synced == [f"dashboard:{dashboard_id}"]
        assert set(report.written_keys) == {
            dashboard_key(dashboard_id),
            cards_key(dashboard_id),
            variables_key(dashboard_id),
            WHITE_LABEL_KEY,
            APP_SETTINGS_KEY,
        }
        assert ws.dashboard_status(dashboard_id) == SaveStatus.SAVED_REMOTE
        assert not ws.has_unsynced_changes
        stored = await ws.remote.read(dashboard_key(dashboard_id), ws.headers)
        assert stored["name"] == "Dashboard 1"
        assert report.duration_seconds is not None

    @pytest.mark.asyncio
    async def test_unchanged_state_not_rewritten(self, synced_workspace) -> None:
        """Test a second sync without edits writes nothing."""
        coordinator = SyncCoordinator(synced_workspace)
        await coordinator.sync_all()

        report = await coordinator.sync_all()

        assert report.written_keys == []
        assert "remote already up to date" in report.message

    @pytest.mark.asyncio
    async def test_only_changed_dashboard_written(self, synced_workspace) -> None:
        """Test editing one dashboard rewrites only that dashboard's keys."""
        ws = synced_workspace
        other = ws.add_dashboard("Other")
        await SyncCoordinator(ws).sync_all()

        ws.add_card(other.id, "Revenue", "SELECT 1")
        report = await SyncCoordinator(ws).sync_all()

        assert report.written_keys == [cards_key(other.id)]
        assert report.synced == [f"dashboard:{other.id}"]

    @pytest.mark.asyncio
    async def test_no_remote(self, local_cache) -> None:
        """Test syncing without a remote raises and leaves statuses alone."""
        ws = Workspace(local_cache, remote=None)
        ws.load_local()
        before = ws.tracker.statuses()

        with pytest.raises(SyncError, match="No remote"):
            await SyncCoordinator(ws).sync_all()

        assert ws.tracker.statuses() == before

    @pytest.mark.asyncio
    async def test_rejected_write_reverts_to_saved_local(self, local_cache, host) -> None:
        """Test a refused write leaves participants saved-local with the remote message."""
        ws = Workspace(local_cache, remote=RejectingRemoteStore(), host=host)
        ws.load_local()
        ws.flush()
        dashboard_id = ws.dashboards[0].id

        with pytest.raises(SyncError, match="Storage quota exceeded"):
            await SyncCoordinator(ws).sync_all()

        assert ws.dashboard_status(dashboard_id) == SaveStatus.SAVED_LOCAL
        assert ws.has_unsynced_changes

    @pytest.mark.asyncio
    async def test_unreachable_remote(self, local_cache, host) -> None:
        """Test transport failures are raised as SyncError."""
        ws = Workspace(local_cache, remote=UnreachableRemoteStore(), host=host)
        ws.load_local()
        ws.flush()

        with pytest.raises(SyncError, match="connection reset"):
            await SyncCoordinator(ws).sync_all()

        assert ws.dashboard_status(ws.dashboards[0].id) == SaveStatus.SAVED_LOCAL

    @pytest.mark.asyncio
    async def test_unsaved_aggregate_skipped(self, host) -> None:
        """Test an aggregate whose local commit keeps failing is neither pushed nor adopted."""
        cache = SettingsRejectingCache()
        ws = Workspace(cache, remote=MemoryRemoteStore(), host=host)
        ws.load_local()
        ws.update_white_label("#000000")

        report = await SyncCoordinator(ws).sync_all()

        assert report.skipped == ["settings"]
        assert WHITE_LABEL_KEY not in report.written_keys
        assert ws.status(AggregateKey.settings()) == SaveStatus.UNSAVED
        assert ws.white_label.brand_color == "#000000"
        assert report.synced == [f"dashboard:{ws.dashboards[0].id}"]

    @pytest.mark.asyncio
    async def test_mutation_during_sync_stays_unsaved(self, local_cache, host) -> None:
        """Test an edit made while syncing keeps unsaved and its local data."""
        remote = HookedRemoteStore()
        ws = Workspace(local_cache, remote=remote, host=host)
        ws.load_local()
        ws.flush()
        dashboard_id = ws.dashboards[0].id
        remote.on_list = lambda: ws.rename_dashboard(dashboard_id, "Renamed mid-sync")

        report = await SyncCoordinator(ws).sync_all()

        assert report.stale == [f"dashboard:{dashboard_id}"]
        assert ws.dashboard_status(dashboard_id) == SaveStatus.UNSAVED
        assert ws.get_dashboard(dashboard_id).name == "Renamed mid-sync"
        ws.debouncer.cancel(AggregateKey.dashboard(dashboard_id))

    @pytest.mark.asyncio
    async def test_mutation_during_failed_sync_stays_unsaved(self, local_cache, host) -> None:
        """Test an edit made while a failing sync runs keeps unsaved."""
        remote = HookedRejectingRemoteStore()
        ws = Workspace(local_cache, remote=remote, host=host)
        ws.load_local()
        ws.flush()
        dashboard_id = ws.dashboards[0].id
        remote.on_list = lambda: ws.rename_dashboard(dashboard_id, "Renamed mid-sync")

        with pytest.raises(SyncError):
            await SyncCoordinator(ws).sync_all()

        assert ws.dashboard_status(dashboard_id) == SaveStatus.UNSAVED
        assert ws.get_dashboard(dashboard_id).name == "Renamed mid-sync"
        ws.debouncer.cancel(AggregateKey.dashboard(dashboard_id))

    @pytest.mark.asyncio
    async def test_cancelled_sync_reverts_to_saved_local(self, local_cache, host) -> None:
        """Test a sync cancelled mid-flight leaves nothing in syncing."""
        ws = Workspace(local_cache, remote=SlowRemoteStore(), host=host)
        ws.load_local()
        ws.flush()
        dashboard_id = ws.dashboards[0].id

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(SyncCoordinator(ws).sync_all(), 0.05)

        assert ws.dashboard_status(dashboard_id) == SaveStatus.SAVED_LOCAL
        assert ws.tracker.in_state(SaveStatus.SYNCING) == []

        ws.remote = MemoryRemoteStore()
        report = await SyncCoordinator(ws).sync_all()

        assert f"dashboard:{dashboard_id}" in report.synced
        assert ws.dashboard_status(dashboard_id) == SaveStatus.SAVED_REMOTE

    @pytest.mark.asyncio
    async def test_deleted_dashboard_removed_remotely(self, synced_workspace) -> None:
        """Test deleting a synced dashboard deletes its remote keys and tombstone."""
        ws = synced_workspace
        doomed = ws.add_dashboard("Doomed")
        await SyncCoordinator(ws).sync_all()

        ws.remove_dashboard(doomed.id)
        ws.flush()
        report = await SyncCoordinator(ws).sync_all()

        assert set(report.deleted_keys) == {
            dashboard_key(doomed.id),
            cards_key(doomed.id),
            variables_key(doomed.id),
        }
        assert await ws.remote.read(dashboard_key(doomed.id), ws.headers) is None
        assert ws.tombstones == []
        assert AggregateKey.dashboard(doomed.id) not in ws.tracker.keys()
        assert not ws.has_unsynced_changes

    @pytest.mark.asyncio
    async def test_newer_remote_copy_adopted(self, synced_workspace) -> None:
        """Test a newer remote edit replaces the local copy after sync."""
        ws = synced_workspace
        local = ws.dashboards[0]
        newer = local.model_copy(
            update={"name": "Edited elsewhere", "last_modified": utc_now() + timedelta(days=1)}
        )
        await ws.remote.write(dashboard_key(local.id), newer.to_wire(), ws.headers)

        await SyncCoordinator(ws).sync_all()

        assert ws.get_dashboard(local.id).name == "Edited elsewhere"

    @pytest.mark.asyncio
    async def test_remote_only_dashboard_adopted(self, synced_workspace) -> None:
        """Test a dashboard created by another client appears locally."""
        ws = synced_workspace
        foreign = Dashboard(id="remote-d", name="From elsewhere", last_modified=utc_now())
        await ws.remote.write(dashboard_key(foreign.id), foreign.to_wire(), ws.headers)

        await SyncCoordinator(ws).sync_all()

        assert ws.get_dashboard("remote-d") is not None
        assert ws.dashboard_status("remote-d") == SaveStatus.IDLE

    @pytest.mark.asyncio
    async def test_tenants_are_isolated(self, local_cache, host) -> None:
        """Test state synced for one tenant is invisible to another."""
        remote = MemoryRemoteStore()
        ws = Workspace(local_cache, remote=remote, host=host)
        ws.load_local()
        await SyncCoordinator(ws).sync_all()

        own = await fetch_remote_snapshot(remote, ws.headers)
        other = await fetch_remote_snapshot(remote, {"X-Tenant-Id": "other"})

        assert [d.name for d in own.dashboards] == ["Dashboard 1"]
        assert other.dashboards == []
