"""
Workspace: the explicit store object holding one tenant scope's state.

All entity mutations go through typed Workspace methods. Each one stamps
``last_modified``, marks the owning aggregate ``unsaved`` and schedules a
debounced commit of that aggregate to the local cache. Explicit sync to
the remote store is driven by :class:`~dashstore.core.sync.service.SyncCoordinator`.

Aggregates:
    - ``dashboard:<id>``: the dashboard with its cards and variables
    - ``settings``: white-label settings and app settings
    - ``dataSources``: every data source

Usage:
    workspace = Workspace(SqliteLocalCache(".dashstore/cache.db"))
    workspace.load_local()
    dash = workspace.add_dashboard("Sales {{year}}")
    workspace.add_variable(dash.id, "year", "2024")
    workspace.display_name(dash.id)   # "Sales 2024"
    workspace.flush()                 # commit pending changes now
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from dashstore.core.entities.models import (
    AppSettings,
    Card,
    Dashboard,
    DatabaseType,
    DataSource,
    DeletionTombstone,
    EntityType,
    FormattingSettings,
    HostContext,
    Variable,
    VariableOption,
    WhiteLabelSettings,
    new_id,
    utc_now,
)
from dashstore.core.errors import LocalCommitError, SyncError, ValidationError
from dashstore.core.savestate import (
    AggregateKey,
    AggregateKind,
    Debouncer,
    SaveEvent,
    SaveStateTracker,
    SaveStatus,
)
from dashstore.core.storage.keys import (
    ACTIVE_DASHBOARD_KEY,
    APP_SETTINGS_KEY,
    DASHBOARD_CARDS_PREFIX,
    DASHBOARD_ORDER_KEY,
    DASHBOARD_PREFIX,
    DASHBOARD_VARIABLES_PREFIX,
    DATA_SOURCES_KEY,
    PENDING_SYNC_KEY,
    TOMBSTONES_KEY,
    WHITE_LABEL_KEY,
    cards_key,
    dashboard_key,
    dashboard_keys,
    variables_key,
)
from dashstore.core.storage.local import LocalCache, MemoryLocalCache
from dashstore.core.storage.remote import RemoteConfigStore, ScopeHeaders, scope_headers
from dashstore.core.storage.secrets import restore_from_local, sanitize_for_local
from dashstore.core.sync.models import ConfigSnapshot, parse_entities, parse_optional
from dashstore.core.variables.fixed import fixed_variables
from dashstore.core.variables.library import library_definitions, library_variables
from dashstore.core.variables.resolver import ResolvedVariables, resolve_variables
from dashstore.core.variables.sandbox import Clock
from dashstore.core.variables.store import VariableStore
from dashstore.core.variables.template import substitute_resolved

if TYPE_CHECKING:
    from collections.abc import Callable

    from dashstore.core.config.models import DashstoreConfig

logger = logging.getLogger(__name__)

DEFAULT_DASHBOARD_NAME = "Dashboard {index}"
DEBOUNCE_SECONDS = 0.5

SETTINGS = AggregateKey.settings()
DATA_SOURCES = AggregateKey.data_sources()


class Workspace:
    """
    In-memory model of one tenant scope plus its save-state tracking.

    Args:
        local: Local cache (fallback of record); in-memory when omitted
        remote: Remote configuration store, or None when sync is disabled
        host: Host-injected tenant, department and owner
        api_key: Credential attached to every remote call
        api_secret: Credential attached to every remote call
        data_secret: Key used to obfuscate connection strings locally
        debounce_seconds: Delay between the last mutation and the local commit
        clock: Clock for the expression date helpers
    """

    def __init__(
        self,
        local: LocalCache | None = None,
        *,
        remote: RemoteConfigStore | None = None,
        host: HostContext | None = None,
        api_key: str | None = None,
        api_secret: str | None = None,
        data_secret: str | None = None,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        clock: Clock | None = None,
    ) -> None:
        self.local = local if local is not None else MemoryLocalCache()
        self.remote = remote
        self.host = host or HostContext()
        self._api_key = api_key
        self._api_secret = api_secret
        self._data_secret = data_secret
        self._clock = clock

        self.tracker = SaveStateTracker()
        self.debouncer = Debouncer(debounce_seconds)
        self.variables = VariableStore(on_mutation=self._variables_mutated)

        self._dashboards: list[Dashboard] = []
        self._cards: list[Card] = []
        self._data_sources: list[DataSource] = []
        self._white_label = WhiteLabelSettings()
        self._app_settings = AppSettings()
        self._tombstones: list[DeletionTombstone] = []
        self._pending_sync: set[str] = set()
        self.active_dashboard_id: str | None = None

    @classmethod
    def from_config(
        cls,
        config: DashstoreConfig,
        *,
        remote: RemoteConfigStore | None = None,
    ) -> Workspace:
        """Build a workspace wired to the SQLite cache and HTTP remote from config."""
        from dashstore.core.storage.http import HttpRemoteConfigStore, RetryConfig
        from dashstore.core.storage.local import SqliteLocalCache

        if remote is None and config.remote.url:
            remote = HttpRemoteConfigStore(
                config.remote.url,
                timeout=config.remote.timeout_seconds,
                retry=RetryConfig(max_retries=config.remote.max_retries),
            )
        host = HostContext(
            tenant_id=config.remote.tenant_id,
            department=config.host.department,
            owner=config.host.owner,
        )
        return cls(
            SqliteLocalCache(config.local.cache_path),
            remote=remote,
            host=host,
            api_key=config.remote.api_key,
            api_secret=config.remote.api_secret,
            data_secret=config.local.data_secret,
            debounce_seconds=config.autosave.debounce_ms / 1000,
        )

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def headers(self) -> ScopeHeaders:
        return scope_headers(self.host, self._api_key, self._api_secret)

    @property
    def dashboards(self) -> list[Dashboard]:
        return list(self._dashboards)

    @property
    def cards(self) -> list[Card]:
        return list(self._cards)

    @property
    def data_sources(self) -> list[DataSource]:
        return list(self._data_sources)

    @property
    def white_label(self) -> WhiteLabelSettings:
        return self._white_label

    @property
    def app_settings(self) -> AppSettings:
        return self._app_settings

    @property
    def tombstones(self) -> list[DeletionTombstone]:
        return list(self._tombstones)

    @property
    def has_unsynced_changes(self) -> bool:
        return self.tracker.has_unsynced_changes

    def status(self, key: AggregateKey) -> SaveStatus:
        return self.tracker.status(key)

    def dashboard_status(self, dashboard_id: str) -> SaveStatus:
        return self.tracker.status(AggregateKey.dashboard(dashboard_id))

    def get_dashboard(self, dashboard_id: str) -> Dashboard | None:
        for dashboard in self._dashboards:
            if dashboard.id == dashboard_id:
                return dashboard
        return None

    def find_dashboard(self, ref: str) -> Dashboard | None:
        """Look a dashboard up by id, falling back to its raw name."""
        return self.get_dashboard(ref) or next(
            (d for d in self._dashboards if d.name == ref), None
        )

    def get_card(self, card_id: str) -> Card | None:
        for card in self._cards:
            if card.id == card_id:
                return card
        return None

    def get_data_source(self, data_source_id: str) -> DataSource | None:
        for source in self._data_sources:
            if source.id == data_source_id:
                return source
        return None

    def cards_for(self, dashboard_id: str) -> list[Card]:
        """Cards of a dashboard, in display order."""
        return [c for c in self._cards if c.dashboard_id == dashboard_id]

    def variables_for(self, dashboard_id: str) -> list[Variable]:
        return self.variables.list(dashboard_id)

    def fixed_variables_for(self, dashboard_id: str) -> list[Variable]:
        return fixed_variables(dashboard_id, self.host)

    def resolved_variables(self, dashboard_id: str) -> ResolvedVariables:
        """Resolve a dashboard's variables, fixed ones and script library helpers included."""
        variables = self.variables_for(dashboard_id)
        fixed = self.fixed_variables_for(dashboard_id)
        dashboard = self.get_dashboard(dashboard_id)
        helpers = library_variables(
            dashboard_id,
            dashboard.script_library if dashboard is not None else "",
            taken=[v.name for v in [*variables, *fixed]],
        )
        return resolve_variables([*helpers, *variables], fixed, self._clock)

    def render(self, dashboard_id: str, text: str) -> str:
        """Substitute ``{{...}}`` placeholders using a dashboard's variables."""
        return substitute_resolved(text, self.resolved_variables(dashboard_id), clock=self._clock)

    def display_name(self, dashboard_id: str) -> str:
        dashboard = self._require_dashboard(dashboard_id)
        return self.render(dashboard_id, dashboard.name)

    def snapshot(self) -> ConfigSnapshot:
        """Point-in-time copy of every syncable entity."""
        return ConfigSnapshot(
            dashboards=list(self._dashboards),
            cards=list(self._cards),
            variables=self.variables.all(),
            data_sources=list(self._data_sources),
            white_label=self._white_label,
            app_settings=self._app_settings,
        )

    # ------------------------------------------------------------------
    # Data sources (data-source group aggregate)
    # ------------------------------------------------------------------

    def add_data_source(
        self,
        name: str,
        type: DatabaseType = DatabaseType.LOCAL_STORAGE,
        connection_string: str = "",
    ) -> DataSource:
        source = DataSource(
            id=new_id(),
            name=name,
            type=type,
            connection_string=connection_string,
            last_modified=utc_now(),
        )
        self._data_sources.append(source)
        self._touch(DATA_SOURCES)
        return source

    def update_data_source(self, source: DataSource) -> DataSource:
        index = self._index(self._data_sources, source.id, "data source")
        updated = source.model_copy(update={"last_modified": utc_now()})
        self._data_sources[index] = updated
        self._touch(DATA_SOURCES)
        return updated

    def remove_data_source(self, data_source_id: str) -> None:
        index = self._index(self._data_sources, data_source_id, "data source")
        del self._data_sources[index]
        self._tombstone(data_source_id, EntityType.DATA_SOURCE)
        self._touch(DATA_SOURCES)

    # ------------------------------------------------------------------
    # Settings group aggregate
    # ------------------------------------------------------------------

    def update_white_label(self, brand_color: str) -> WhiteLabelSettings:
        self._white_label = WhiteLabelSettings(brand_color=brand_color, last_modified=utc_now())
        self._touch(SETTINGS)
        return self._white_label

    def set_auto_save(self, enabled: bool) -> AppSettings:
        self._app_settings = AppSettings(auto_save=enabled, last_modified=utc_now())
        self._touch(SETTINGS)
        return self._app_settings

    def toggle_auto_save(self) -> AppSettings:
        return self.set_auto_save(not self._app_settings.auto_save)

    # ------------------------------------------------------------------
    # Dashboards
    # ------------------------------------------------------------------

    def add_dashboard(self, name: str) -> Dashboard:
        """Create a dashboard and make it active."""
        dashboard = Dashboard(id=new_id(), name=name, last_modified=utc_now())
        self._dashboards.append(dashboard)
        self._touch(AggregateKey.dashboard(dashboard.id))
        self.set_active_dashboard(dashboard.id)
        return dashboard

    def duplicate_dashboard(self, dashboard_id: str, new_name: str | None = None) -> Dashboard:
        """
        Deep-copy a dashboard with its cards and variables under new ids.

        The copy becomes the active dashboard.
        """
        original = self._require_dashboard(dashboard_id)
        now = utc_now()
        copy_id = new_id()
        card_ids: dict[str, str] = {}
        new_cards = []
        for card in self.cards_for(dashboard_id):
            card_ids[card.id] = new_id()
            new_cards.append(
                card.model_copy(
                    update={"id": card_ids[card.id], "dashboard_id": copy_id, "last_modified": now}
                )
            )
        duplicate = original.model_copy(
            update={
                "id": copy_id,
                "name": new_name or f"{original.name} - Copy",
                "card_order": [card_ids[c] for c in original.card_order if c in card_ids],
                "last_modified": now,
            },
            deep=True,
        )
        self._dashboards.append(duplicate)
        self._cards.extend(new_cards)
        self.variables.upsert_all(
            copy_id,
            [v.model_copy(update={"id": new_id()}) for v in self.variables_for(dashboard_id)],
        )
        self._touch(AggregateKey.dashboard(copy_id))
        self.set_active_dashboard(copy_id)
        return duplicate

    def remove_dashboard(self, dashboard_id: str) -> None:
        """
        Delete a dashboard together with its cards and variables.

        The aggregate stays tracked until the deletion reaches the remote
        store; the local commit removes its keys from the local cache.
        """
        index = self._index(self._dashboards, dashboard_id, "dashboard")
        del self._dashboards[index]
        self._cards = [c for c in self._cards if c.dashboard_id != dashboard_id]
        self.variables.remove_scope(dashboard_id)
        self._tombstone(dashboard_id, EntityType.DASHBOARD)
        self._touch(AggregateKey.dashboard(dashboard_id))
        if self.active_dashboard_id == dashboard_id:
            self.active_dashboard_id = None
            if self._dashboards:
                self.set_active_dashboard(self._dashboards[0].id)
            else:
                self._best_effort_local(lambda: self.local.delete(ACTIVE_DASHBOARD_KEY))

    def rename_dashboard(self, dashboard_id: str, name: str) -> Dashboard:
        return self._update_dashboard(dashboard_id, name=name)

    def update_formatting(self, dashboard_id: str, settings: FormattingSettings) -> Dashboard:
        return self._update_dashboard(dashboard_id, formatting_settings=settings)

    def update_script_library(self, dashboard_id: str, script: str) -> Dashboard:
        """
        Replace a dashboard's script library of ``name = expression`` helpers.

        Helpers are evaluated in the expression sandbox alongside the
        dashboard's variables; a variable with the same name wins.

        Raises:
            ValidationError: If the dashboard is unknown or the script does
                not parse
        """
        library_definitions(script)
        return self._update_dashboard(dashboard_id, script_library=script)

    def set_active_dashboard(self, dashboard_id: str) -> None:
        """Switch the active dashboard and remember it in the local cache."""
        self._require_dashboard(dashboard_id)
        self.active_dashboard_id = dashboard_id
        self._best_effort_local(lambda: self.local.set(ACTIVE_DASHBOARD_KEY, dashboard_id))

    def _update_dashboard(self, dashboard_id: str, **changes: Any) -> Dashboard:
        index = self._index(self._dashboards, dashboard_id, "dashboard")
        updated = self._dashboards[index].model_copy(update={**changes, "last_modified": utc_now()})
        self._dashboards[index] = updated
        self._touch(AggregateKey.dashboard(dashboard_id))
        return updated

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def add_card(
        self,
        dashboard_id: str,
        title: str = "",
        query: str = "",
        data_source_id: str = "",
        **extra: Any,
    ) -> Card:
        self._require_dashboard(dashboard_id)
        card = Card(
            id=new_id(),
            dashboard_id=dashboard_id,
            title=title,
            query=query,
            data_source_id=data_source_id,
            last_modified=utc_now(),
            **extra,
        )
        self._cards.append(card)
        self._touch(AggregateKey.dashboard(dashboard_id))
        return card

    def clone_card(self, card_id: str) -> Card:
        """Copy a card, inserting the copy right after the original."""
        index = self._index(self._cards, card_id, "card")
        original = self._cards[index]
        clone = original.model_copy(
            update={"id": new_id(), "title": f"{original.title} - Copy", "last_modified": utc_now()},
            deep=True,
        )
        self._cards.insert(index + 1, clone)
        self._touch(AggregateKey.dashboard(original.dashboard_id))
        return clone

    def update_card(self, card: Card) -> Card:
        index = self._index(self._cards, card.id, "card")
        previous = self._cards[index]
        updated = card.model_copy(update={"last_modified": utc_now()})
        self._cards[index] = updated
        self._touch(AggregateKey.dashboard(updated.dashboard_id))
        if previous.dashboard_id != updated.dashboard_id:
            self._touch(AggregateKey.dashboard(previous.dashboard_id))
        return updated

    def remove_card(self, card_id: str) -> None:
        index = self._index(self._cards, card_id, "card")
        card = self._cards.pop(index)
        self._tombstone(card.id, EntityType.CARD, card.dashboard_id)
        self._touch(AggregateKey.dashboard(card.dashboard_id))

    def reorder_cards(self, dashboard_id: str, ordered_ids: list[str]) -> None:
        """
        Reorder a dashboard's cards.

        Raises:
            ValidationError: If ``ordered_ids`` is not a permutation of the
                dashboard's card ids
        """
        current = self.cards_for(dashboard_id)
        by_id = {c.id: c for c in current}
        if len(ordered_ids) != len(current) or set(ordered_ids) != set(by_id):
            raise ValidationError(
                "Card order must list every card of the dashboard exactly once",
                dashboard_id=dashboard_id,
            )
        others = [c for c in self._cards if c.dashboard_id != dashboard_id]
        self._cards = others + [by_id[card_id] for card_id in ordered_ids]
        self._update_dashboard(dashboard_id, card_order=list(ordered_ids))

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    def add_variable(
        self,
        dashboard_id: str,
        name: str,
        value: str = "",
        *,
        is_expression: bool = False,
        options: list[VariableOption] | None = None,
        visible_in_host: bool = False,
    ) -> Variable:
        self._require_dashboard(dashboard_id)
        return self.variables.add(
            dashboard_id,
            name,
            value,
            is_expression=is_expression,
            options=options,
            visible_in_host=visible_in_host,
        )

    def update_variable(self, variable: Variable) -> Variable:
        return self.variables.update(variable)

    def remove_variable(self, dashboard_id: str, variable_id: str) -> None:
        removed = self.variables.remove(dashboard_id, variable_id)
        if removed is None:
            raise ValidationError(
                f"Unknown variable '{variable_id}' in dashboard '{dashboard_id}'",
                id=variable_id,
            )
        self._tombstone(removed.id, EntityType.VARIABLE, dashboard_id)

    def update_all_variables(self, dashboard_id: str, variables: Iterable[Variable]) -> None:
        """
        Replace a dashboard's full variable set.

        Variables absent from the new set are tombstoned so a later sync
        deletes them remotely.

        Raises:
            ValidationError: If any name is empty or duplicated
        """
        self._require_dashboard(dashboard_id)
        for removed in self.variables.upsert_all(dashboard_id, variables):
            self._tombstone(removed.id, EntityType.VARIABLE, dashboard_id)

    def _variables_mutated(self, scope_id: str) -> None:
        self._touch(AggregateKey.dashboard(scope_id))

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------

    def add_imported(
        self,
        *,
        dashboards: Iterable[Dashboard] = (),
        cards: Iterable[Card] = (),
        variables: Iterable[Variable] = (),
        data_sources: Iterable[DataSource] = (),
    ) -> None:
        """
        Append already re-keyed entities from an import.

        Callers are expected to have validated the batch; every touched
        aggregate is marked ``unsaved``.
        """
        dashboards = list(dashboards)
        data_sources = list(data_sources)
        cards = list(cards)
        self._dashboards.extend(dashboards)
        self._cards.extend(cards)
        by_scope: dict[str, list[Variable]] = {}
        for variable in variables:
            by_scope.setdefault(variable.scope_id, []).append(variable)
        for scope_id, scoped in by_scope.items():
            self.variables.upsert_all(scope_id, [*self.variables_for(scope_id), *scoped])
        for dashboard in dashboards:
            self._touch(AggregateKey.dashboard(dashboard.id))
        if data_sources:
            self._data_sources.extend(data_sources)
            self._touch(DATA_SOURCES)

    # ------------------------------------------------------------------
    # Save-state plumbing
    # ------------------------------------------------------------------

    def _touch(self, key: AggregateKey) -> None:
        self.tracker.mark_mutated(key)
        self.debouncer.schedule(key, functools.partial(self._commit, key))

    def _tombstone(
        self,
        entity_id: str,
        entity_type: EntityType,
        parent_id: str | None = None,
    ) -> None:
        self._tombstones.append(
            DeletionTombstone(id=entity_id, type=entity_type, parent_id=parent_id)
        )

    def _commit(self, key: AggregateKey) -> None:
        """Run the local commit of one aggregate (debounce callback)."""
        if self.tracker.status(key) != SaveStatus.UNSAVED:
            return
        revision = self.tracker.revision(key)
        self.tracker.fire(key, SaveEvent.DEBOUNCE_ELAPSED)
        try:
            self._write_aggregate(key)
            self.local.set(TOMBSTONES_KEY, [t.to_wire() for t in self._tombstones])
            self._pending_sync.add(str(key))
            self.local.set(PENDING_SYNC_KEY, sorted(self._pending_sync))
        except LocalCommitError as e:
            logger.error("Local commit of %s failed: %s", key, e.message)
            self.tracker.fire_if_current(key, SaveEvent.LOCAL_COMMIT_FAILED, revision)
            return
        self.tracker.fire_if_current(key, SaveEvent.LOCAL_COMMIT_OK, revision)

    def _write_aggregate(self, key: AggregateKey) -> None:
        if key.kind == AggregateKind.DASHBOARD:
            if key.id is None:
                raise ValidationError("Dashboard aggregate key has no id", key=str(key))
            dashboard = self.get_dashboard(key.id)
            if dashboard is None:
                for storage_key in dashboard_keys(key.id):
                    self.local.delete(storage_key)
            else:
                self.local.set(dashboard_key(key.id), dashboard.to_wire())
                self.local.set(cards_key(key.id), [c.to_wire() for c in self.cards_for(key.id)])
                self.local.set(
                    variables_key(key.id), [v.to_wire() for v in self.variables_for(key.id)]
                )
            self.local.set(DASHBOARD_ORDER_KEY, [d.id for d in self._dashboards])
        elif key.kind == AggregateKind.SETTINGS:
            self.local.set(WHITE_LABEL_KEY, self._white_label.to_wire())
            self.local.set(APP_SETTINGS_KEY, self._app_settings.to_wire())
        else:
            sources = sanitize_for_local(self._data_sources, self._data_secret)
            self.local.set(DATA_SOURCES_KEY, [s.to_wire() for s in sources])

    def _best_effort_local(self, write: Callable[[], None]) -> None:
        try:
            write()
        except LocalCommitError as e:
            logger.warning("Local cache update failed: %s", e.message)

    def flush(self) -> None:
        """
        Commit every pending change to the local cache now.

        Aggregates left ``unsaved`` by an earlier failed commit are retried.
        """
        self.debouncer.flush_all()
        for key in self.tracker.in_state(SaveStatus.UNSAVED):
            self._commit(key)

    def mark_synced(self, keys: Iterable[AggregateKey]) -> None:
        """Drop aggregates from the persisted pending-sync set."""
        for key in keys:
            self._pending_sync.discard(str(key))
        self._best_effort_local(
            lambda: self.local.set(PENDING_SYNC_KEY, sorted(self._pending_sync))
        )

    def clear_tombstones(self, synced: Iterable[DeletionTombstone]) -> None:
        """Remove tombstones whose deletion reached the remote store."""
        done = {(t.id, t.type) for t in synced}
        self._tombstones = [t for t in self._tombstones if (t.id, t.type) not in done]
        self._best_effort_local(
            lambda: self.local.set(TOMBSTONES_KEY, [t.to_wire() for t in self._tombstones])
        )

    def adopt(
        self,
        merged: ConfigSnapshot,
        is_untouched: Callable[[AggregateKey], bool],
    ) -> list[AggregateKey]:
        """
        Replace local state with reconciled state, aggregate by aggregate.

        Aggregates for which ``is_untouched`` is False (mutated after the
        reconciliation started) keep their local data. Adopted aggregates
        are written through to the local cache.

        Returns:
            The adopted aggregates
        """
        adopted: list[AggregateKey] = []
        if is_untouched(DATA_SOURCES):
            self._data_sources = list(merged.data_sources)
            adopted.append(DATA_SOURCES)
        if is_untouched(SETTINGS):
            self._white_label = merged.white_label or self._white_label
            self._app_settings = merged.app_settings or self._app_settings
            adopted.append(SETTINGS)

        merged_by_id = {d.id: d for d in merged.dashboards}
        local_ids = {d.id for d in self._dashboards}
        dashboards: list[Dashboard] = []
        for dashboard in self._dashboards:
            key = AggregateKey.dashboard(dashboard.id)
            if not is_untouched(key):
                dashboards.append(dashboard)
                continue
            adopted.append(key)
            if dashboard.id in merged_by_id:
                dashboards.append(merged_by_id[dashboard.id])
        for dashboard in merged.dashboards:
            key = AggregateKey.dashboard(dashboard.id)
            if dashboard.id not in local_ids and is_untouched(key):
                dashboards.append(dashboard)
                adopted.append(key)
        # Deleted dashboards no longer in either list
        for key in self.tracker.keys():
            if (
                key.kind == AggregateKind.DASHBOARD
                and key.id not in local_ids
                and key.id not in merged_by_id
                and is_untouched(key)
            ):
                adopted.append(key)

        adopted_ids = {k.id for k in adopted if k.kind == AggregateKind.DASHBOARD}
        cards: list[Card] = []
        variables: list[Variable] = []
        for dashboard in dashboards:
            source = merged if dashboard.id in adopted_ids else self
            cards.extend(source.cards_for(dashboard.id))
            variables.extend(source.variables_for(dashboard.id))
        self._dashboards = dashboards
        self._cards = cards
        self.variables.load(variables)

        surviving = {d.id for d in dashboards}
        for key in adopted:
            if key.kind == AggregateKind.DASHBOARD and key.id not in surviving:
                self.tracker.forget(key)
            elif key not in self.tracker.statuses():
                self.tracker.track(key)
            self._best_effort_local(functools.partial(self._write_aggregate, key))
        if self.active_dashboard_id not in surviving:
            self.active_dashboard_id = dashboards[0].id if dashboards else None
        return adopted

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_local(self) -> None:
        """Load state from the local cache; aggregates start ``idle``."""
        self.flush()
        self._apply_loaded(self._read_local_snapshot())

    async def load(self, prefer_remote: bool = True) -> str:
        """
        Load state, from the remote store when configured and reachable.

        Falls back to the local cache, which is the fallback of record.

        Returns:
            ``"remote"`` or ``"local"``, naming the source actually used
        """
        self.flush()
        if prefer_remote and self.remote is not None:
            from dashstore.core.sync.service import fetch_remote_snapshot

            try:
                snapshot = await fetch_remote_snapshot(self.remote, self.headers)
            except SyncError as e:
                logger.warning("Remote load failed, falling back to local cache: %s", e.message)
            else:
                self._apply_loaded(snapshot)
                return "remote"
        self.load_local()
        return "local"

    def _read_local_snapshot(self) -> ConfigSnapshot:
        def collect(prefix: str) -> list[Any]:
            items: list[Any] = []
            for key in self.local.keys(prefix):
                value = self.local.get(key)
                if isinstance(value, list):
                    items.extend(value)
                elif value is not None:
                    items.append(value)
            return items

        sources = parse_entities(DataSource, self.local.get(DATA_SOURCES_KEY) or [], "local cache")
        return ConfigSnapshot(
            dashboards=parse_entities(Dashboard, collect(DASHBOARD_PREFIX), "local cache"),
            cards=parse_entities(Card, collect(DASHBOARD_CARDS_PREFIX), "local cache"),
            variables=parse_entities(Variable, collect(DASHBOARD_VARIABLES_PREFIX), "local cache"),
            data_sources=restore_from_local(sources, self._data_secret),
            white_label=parse_optional(
                WhiteLabelSettings, self.local.get(WHITE_LABEL_KEY), "local cache"
            ),
            app_settings=parse_optional(AppSettings, self.local.get(APP_SETTINGS_KEY), "local cache"),
        )

    def _apply_loaded(self, snapshot: ConfigSnapshot) -> None:
        order = self.local.get(DASHBOARD_ORDER_KEY) or []
        position = {dashboard_id: i for i, dashboard_id in enumerate(order)}
        self._dashboards = sorted(
            snapshot.dashboards, key=lambda d: position.get(d.id, len(position))
        )
        self._cards = list(snapshot.cards)
        self.variables.load(snapshot.variables)
        self._data_sources = list(snapshot.data_sources)
        self._white_label = snapshot.white_label or WhiteLabelSettings()
        self._app_settings = snapshot.app_settings or AppSettings()
        self._tombstones = parse_entities(
            DeletionTombstone, self.local.get(TOMBSTONES_KEY) or [], "local cache"
        )

        keys = [SETTINGS, DATA_SOURCES] + [AggregateKey.dashboard(d.id) for d in self._dashboards]
        self.tracker.reset(keys)
        self._pending_sync = set(self.local.get(PENDING_SYNC_KEY) or [])
        for text in sorted(self._pending_sync):
            try:
                self.tracker.track(AggregateKey.parse(text), SaveStatus.SAVED_LOCAL)
            except ValueError:
                logger.warning("Ignoring unknown pending aggregate %r", text)

        last_active = self.local.get(ACTIVE_DASHBOARD_KEY)
        if isinstance(last_active, str) and self.get_dashboard(last_active):
            self.active_dashboard_id = last_active
        else:
            self.active_dashboard_id = self._dashboards[0].id if self._dashboards else None

        if not self._dashboards:
            self.add_dashboard(DEFAULT_DASHBOARD_NAME.format(index=1))
        logger.debug(
            "Loaded %d dashboards, %d cards, %d variables, %d data sources",
            len(self._dashboards),
            len(self._cards),
            len(self.variables.all()),
            len(self._data_sources),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Flush pending commits and release the local cache."""
        self.flush()
        close = getattr(self.local, "close", None)
        if callable(close):
            close()

    async def aclose(self) -> None:
        self.close()
        if self.remote is not None:
            await self.remote.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_dashboard(self, dashboard_id: str) -> Dashboard:
        dashboard = self.get_dashboard(dashboard_id)
        if dashboard is None:
            raise ValidationError(f"Unknown dashboard '{dashboard_id}'", dashboard_id=dashboard_id)
        return dashboard

    @staticmethod
    def _index(items: list[Any], item_id: str, label: str) -> int:
        for index, item in enumerate(items):
            if item.id == item_id:
                return index
        raise ValidationError(f"Unknown {label} '{item_id}'", id=item_id)


__all__ = ["DEFAULT_DASHBOARD_NAME", "Workspace"]
