"""Tests for the Workspace store object."""

import asyncio

import pytest

from dashstore.core.entities.models import DatabaseType, EntityType
from dashstore.core.errors import LocalCommitError, SyncError, ValidationError
from dashstore.core.savestate import AggregateKey, SaveStatus
from dashstore.core.storage.keys import (
    ACTIVE_DASHBOARD_KEY,
    DATA_SOURCES_KEY,
    PENDING_SYNC_KEY,
    dashboard_key,
)
from dashstore.core.storage.local import MemoryLocalCache
from dashstore.core.storage.remote import MemoryRemoteStore
from dashstore.core.sync import SyncCoordinator
from dashstore.core.workspace import Workspace


class FlakyCache(MemoryLocalCache):
    """Local cache whose writes fail while ``failing`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.failing = False

    def set(self, key, value) -> None:
        if self.failing:
            raise LocalCommitError("quota exceeded", key=key)
        super().set(key, value)


class BrokenRemoteStore(MemoryRemoteStore):
    async def read(self, key, headers):
        raise SyncError("service unavailable")


class TestLoading:
    """Tests for loading state."""

    def test_empty_cache_creates_default_dashboard(self, workspace) -> None:
        """Test a first run starts with one active, unsaved dashboard."""
        [dashboard] = workspace.dashboards
        assert dashboard.name == "Dashboard 1"
        assert workspace.active_dashboard_id == dashboard.id
        assert workspace.dashboard_status(dashboard.id) == SaveStatus.UNSAVED

    def test_reload_from_local_cache(self, local_cache, host) -> None:
        """Test committed state is read back by a new workspace."""
        first = Workspace(local_cache, host=host)
        first.load_local()
        sales = first.add_dashboard("Sales")
        source = first.add_data_source("Demo")
        first.add_card(sales.id, "Revenue", "SELECT 1", source.id, chartType="bar")
        first.add_variable(sales.id, "year", "2024")
        first.close()

        second = Workspace(local_cache, host=host)
        second.load_local()

        assert [d.name for d in second.dashboards] == ["Dashboard 1", "Sales"]
        assert second.active_dashboard_id == sales.id
        [card] = second.cards_for(sales.id)
        assert card.model_extra == {"chartType": "bar"}
        assert second.display_name(sales.id) == "Sales"
        assert second.render(sales.id, "{{year}}") == "2024"

    def test_pending_sync_loads_as_saved_local(self, local_cache) -> None:
        """Test aggregates committed but not synced reload as saved-local."""
        first = Workspace(local_cache)
        first.load_local()
        first.flush()
        dashboard_id = first.dashboards[0].id
        assert local_cache.get(PENDING_SYNC_KEY) == [f"dashboard:{dashboard_id}"]

        second = Workspace(local_cache)
        second.load_local()

        assert second.dashboard_status(dashboard_id) == SaveStatus.SAVED_LOCAL
        assert second.status(AggregateKey.settings()) == SaveStatus.IDLE
        assert second.has_unsynced_changes

    @pytest.mark.asyncio
    async def test_load_prefers_remote(self, local_cache, host) -> None:
        """Test load reads the remote store when it is reachable."""
        remote = MemoryRemoteStore()
        seeded = Workspace(MemoryLocalCache(), remote=remote, host=host)
        seeded.load_local()
        seeded.rename_dashboard(seeded.dashboards[0].id, "Shared")
        await SyncCoordinator(seeded).sync_all()

        ws = Workspace(local_cache, remote=remote, host=host)
        assert await ws.load() == "remote"
        assert [d.name for d in ws.dashboards] == ["Shared"]
        assert not ws.has_unsynced_changes

    @pytest.mark.asyncio
    async def test_load_falls_back_to_local(self, local_cache) -> None:
        """Test an unreachable remote store falls back to the local cache."""
        ws = Workspace(local_cache, remote=BrokenRemoteStore())
        assert await ws.load() == "local"
        assert len(ws.dashboards) == 1


class TestCommits:
    """Tests for debounced local commits."""

    def test_flush_commits_to_saved_local(self, workspace, dashboard_id, local_cache) -> None:
        """Test flushing writes the dashboard and moves it to saved-local."""
        workspace.flush()
        assert workspace.dashboard_status(dashboard_id) == SaveStatus.SAVED_LOCAL
        assert local_cache.get(dashboard_key(dashboard_id))["name"] == "Dashboard 1"

    def test_failed_commit_stays_unsaved_and_retries(self) -> None:
        """Test a failed local write leaves the aggregate unsaved until a retry works."""
        cache = FlakyCache()
        ws = Workspace(cache)
        ws.load_local()
        dashboard_id = ws.dashboards[0].id

        cache.failing = True
        ws.flush()
        assert ws.dashboard_status(dashboard_id) == SaveStatus.UNSAVED

        cache.failing = False
        ws.flush()
        assert ws.dashboard_status(dashboard_id) == SaveStatus.SAVED_LOCAL

    @pytest.mark.asyncio
    async def test_debounce_commits_on_loop(self, local_cache) -> None:
        """Test a burst of edits is committed once after the debounce delay."""
        ws = Workspace(local_cache, debounce_seconds=0.01)
        ws.load_local()
        dashboard_id = ws.dashboards[0].id
        ws.flush()
        for name in ("a", "b", "c"):
            ws.rename_dashboard(dashboard_id, name)
        assert ws.dashboard_status(dashboard_id) == SaveStatus.UNSAVED

        await asyncio.sleep(0.05)

        assert ws.dashboard_status(dashboard_id) == SaveStatus.SAVED_LOCAL
        assert local_cache.get(dashboard_key(dashboard_id))["name"] == "c"

    def test_server_connection_strings_not_cached(self, workspace, local_cache) -> None:
        """Test server database credentials never reach the local cache."""
        workspace.add_data_source("Prod", DatabaseType.POSTGRESQL, "postgres://u:p@h/db")
        workspace.flush()
        [stored] = local_cache.get(DATA_SOURCES_KEY)
        assert stored["connectionString"] == ""
        assert workspace.data_sources[0].connection_string == "postgres://u:p@h/db"

    def test_supabase_strings_restored_with_secret(self, local_cache) -> None:
        """Test obfuscated connection strings are revealed on load."""
        first = Workspace(local_cache, data_secret="k3y")
        first.load_local()
        first.add_data_source("Supa", DatabaseType.SUPABASE, "https://x.supabase.co|anon")
        first.close()

        second = Workspace(local_cache, data_secret="k3y")
        second.load_local()
        assert second.data_sources[0].connection_string == "https://x.supabase.co|anon"


class TestDashboards:
    """Tests for dashboard mutations."""

    def test_add_sets_active(self, workspace, local_cache) -> None:
        """Test a new dashboard becomes active and is remembered."""
        sales = workspace.add_dashboard("Sales")
        assert workspace.active_dashboard_id == sales.id
        assert local_cache.get(ACTIVE_DASHBOARD_KEY) == sales.id

    def test_remove_cascades(self, workspace, dashboard_id) -> None:
        """Test removing a dashboard drops its cards and variables and tombstones it."""
        other = workspace.add_dashboard("Other")
        workspace.add_card(other.id, "KPI")
        workspace.add_variable(other.id, "x", "1")

        workspace.remove_dashboard(other.id)

        assert workspace.get_dashboard(other.id) is None
        assert workspace.cards_for(other.id) == []
        assert workspace.variables_for(other.id) == []
        assert workspace.active_dashboard_id == dashboard_id
        assert [(t.id, t.type) for t in workspace.tombstones] == [
            (other.id, EntityType.DASHBOARD)
        ]
        assert workspace.dashboard_status(other.id) == SaveStatus.UNSAVED

    def test_remove_last_dashboard(self, workspace, dashboard_id) -> None:
        """Test removing the only dashboard leaves no active dashboard."""
        workspace.remove_dashboard(dashboard_id)
        assert workspace.dashboards == []
        assert workspace.active_dashboard_id is None

    def test_duplicate(self, workspace, dashboard_id) -> None:
        """Test duplication copies cards and variables under new ids."""
        first = workspace.add_card(dashboard_id, "A")
        second = workspace.add_card(dashboard_id, "B")
        workspace.reorder_cards(dashboard_id, [second.id, first.id])
        workspace.add_variable(dashboard_id, "year", "2024")

        copy = workspace.duplicate_dashboard(dashboard_id)

        assert copy.name == "Dashboard 1 - Copy"
        assert workspace.active_dashboard_id == copy.id
        copied_cards = workspace.cards_for(copy.id)
        assert [c.title for c in copied_cards] == ["B", "A"]
        assert {c.id for c in copied_cards}.isdisjoint({first.id, second.id})
        assert copy.card_order == [c.id for c in copied_cards]
        [variable] = workspace.variables_for(copy.id)
        assert variable.name == "year"
        assert variable.id != workspace.variables_for(dashboard_id)[0].id

    def test_duplicate_with_name(self, workspace, dashboard_id) -> None:
        """Test an explicit name is used for the copy."""
        assert workspace.duplicate_dashboard(dashboard_id, "Q2").name == "Q2"

    def test_rename_and_display_name(self, workspace, dashboard_id) -> None:
        """Test templated names are displayed through substitution."""
        workspace.rename_dashboard(dashboard_id, "Sales {{year}} {{department}}")
        workspace.add_variable(dashboard_id, "year", "2024")
        assert workspace.display_name(dashboard_id) == "Sales 2024 sales"

    def test_script_library_helpers_in_render(self, workspace, dashboard_id) -> None:
        """Test library helpers are visible to placeholders and variables win on clashes."""
        workspace.add_variable(dashboard_id, "year", "2024")
        workspace.update_script_library(dashboard_id, "fiscal_year = year + 1\nyear = 1999")
        assert workspace.render(dashboard_id, "FY {{fiscal_year}} / {{year}}") == "FY 2025 / 2024"
        assert workspace.dashboard_status(dashboard_id) == SaveStatus.UNSAVED

    def test_invalid_script_library_rejected(self, workspace, dashboard_id) -> None:
        """Test a library that does not parse is not stored."""
        with pytest.raises(ValidationError, match="Line 2"):
            workspace.update_script_library(dashboard_id, "a = 1\nnot a definition")
        assert workspace.get_dashboard(dashboard_id).script_library == ""

    def test_find_dashboard(self, workspace, dashboard_id) -> None:
        """Test lookup by id or raw name."""
        assert workspace.find_dashboard(dashboard_id).id == dashboard_id
        assert workspace.find_dashboard("Dashboard 1").id == dashboard_id
        assert workspace.find_dashboard("nope") is None

    def test_unknown_dashboard(self, workspace) -> None:
        """Test mutations on unknown dashboards raise ValidationError."""
        with pytest.raises(ValidationError):
            workspace.rename_dashboard("missing", "x")
        with pytest.raises(ValidationError):
            workspace.add_card("missing", "x")
        with pytest.raises(ValidationError):
            workspace.set_active_dashboard("missing")


class TestCardsAndVariables:
    """Tests for card and variable mutations."""

    def test_clone_card_inserted_after_original(self, workspace, dashboard_id) -> None:
        """Test a clone sits right after its original."""
        first = workspace.add_card(dashboard_id, "A")
        workspace.add_card(dashboard_id, "B")
        clone = workspace.clone_card(first.id)
        assert [c.title for c in workspace.cards_for(dashboard_id)] == ["A", "A - Copy", "B"]
        assert clone.id != first.id

    def test_reorder_requires_permutation(self, workspace, dashboard_id) -> None:
        """Test reordering with missing or unknown ids is rejected."""
        card = workspace.add_card(dashboard_id, "A")
        workspace.add_card(dashboard_id, "B")
        with pytest.raises(ValidationError):
            workspace.reorder_cards(dashboard_id, [card.id])
        with pytest.raises(ValidationError):
            workspace.reorder_cards(dashboard_id, [card.id, "other"])

    def test_remove_card_tombstones(self, workspace, dashboard_id) -> None:
        """Test removing a card records its parent dashboard."""
        card = workspace.add_card(dashboard_id, "A")
        workspace.remove_card(card.id)
        [tombstone] = workspace.tombstones
        assert (tombstone.id, tombstone.parent_id) == (card.id, dashboard_id)

    def test_update_card_marks_dashboard(self, workspace, dashboard_id) -> None:
        """Test editing a card marks its dashboard unsaved."""
        card = workspace.add_card(dashboard_id, "A")
        workspace.flush()
        workspace.update_card(card.model_copy(update={"query": "SELECT 2"}))
        assert workspace.dashboard_status(dashboard_id) == SaveStatus.UNSAVED
        assert workspace.get_card(card.id).query == "SELECT 2"

    def test_variable_edit_marks_dashboard(self, workspace, dashboard_id) -> None:
        """Test variable edits mark the owning dashboard unsaved."""
        workspace.flush()
        workspace.add_variable(dashboard_id, "year", "2024")
        assert workspace.dashboard_status(dashboard_id) == SaveStatus.UNSAVED
        assert workspace.status(AggregateKey.settings()) == SaveStatus.IDLE

    def test_remove_unknown_variable(self, workspace, dashboard_id) -> None:
        """Test removing an unknown variable is rejected."""
        with pytest.raises(ValidationError, match="Unknown variable"):
            workspace.remove_variable(dashboard_id, "missing")

    def test_update_all_variables_tombstones_removed(self, workspace, dashboard_id) -> None:
        """Test variables dropped from a full replacement are tombstoned."""
        keep = workspace.add_variable(dashboard_id, "keep", "1")
        drop = workspace.add_variable(dashboard_id, "drop", "2")
        workspace.update_all_variables(dashboard_id, [keep])
        assert [v.name for v in workspace.variables_for(dashboard_id)] == ["keep"]
        assert [t.id for t in workspace.tombstones] == [drop.id]

    def test_fixed_variables_listed_not_stored(self, workspace, dashboard_id) -> None:
        """Test host values appear as fixed variables but are never stored."""
        names = [v.name for v in workspace.fixed_variables_for(dashboard_id)]
        assert names == ["department", "owner", "tenant_id"]
        assert workspace.variables_for(dashboard_id) == []
        assert workspace.resolved_variables(dashboard_id).get("owner") == "ana"


class TestSettings:
    """Tests for the settings group and data-source group."""

    def test_settings_aggregate(self, workspace) -> None:
        """Test settings edits mark only the settings aggregate."""
        workspace.flush()
        workspace.update_white_label("#112233")
        workspace.toggle_auto_save()
        assert workspace.white_label.brand_color == "#112233"
        assert workspace.app_settings.auto_save is True
        assert workspace.status(AggregateKey.settings()) == SaveStatus.UNSAVED
        assert workspace.status(AggregateKey.data_sources()) == SaveStatus.IDLE

    def test_data_source_lifecycle(self, workspace) -> None:
        """Test adding, updating and removing data sources."""
        source = workspace.add_data_source("Demo")
        workspace.update_data_source(source.model_copy(update={"name": "Renamed"}))
        assert workspace.get_data_source(source.id).name == "Renamed"
        workspace.remove_data_source(source.id)
        assert workspace.data_sources == []
        assert workspace.tombstones[0].type == EntityType.DATA_SOURCE
        with pytest.raises(ValidationError):
            workspace.remove_data_source(source.id)
