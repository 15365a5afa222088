"""
Data models for the sync service.

Defines the full-state snapshot exchanged with the remote store and the
report returned by a sync.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from dashstore.core.entities.models import (
    AppSettings,
    Card,
    Dashboard,
    DataSource,
    Variable,
    WhiteLabelSettings,
)
from dashstore.core.storage.keys import (
    APP_SETTINGS_KEY,
    DATA_SOURCES_KEY,
    WHITE_LABEL_KEY,
    cards_key,
    dashboard_key,
    variables_key,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def parse_entities(model: type[M], raw_items: Iterable[Any], source: str = "storage") -> list[M]:
    """
    Validate stored entity dicts, skipping entries that do not parse.

    Stored state is written by other clients too, so one malformed entry
    must not make the whole scope unreadable.
    """
    result: list[M] = []
    for raw in raw_items:
        try:
            result.append(model.model_validate(raw))
        except PydanticValidationError as e:
            logger.warning(
                "Skipping malformed %s from %s (%d validation errors)",
                model.__name__,
                source,
                e.error_count(),
            )
    return result


def parse_optional(model: type[M], raw: Any, source: str = "storage") -> M | None:
    if raw is None:
        return None
    parsed = parse_entities(model, [raw], source)
    return parsed[0] if parsed else None


def _sorted_wire(items: list[Any]) -> list[dict[str, Any]]:
    return [item.to_wire() for item in sorted(items, key=lambda item: item.id)]


class ConfigSnapshot(BaseModel):
    """
    Every syncable entity of one tenant scope.

    Example:
        >>> snapshot = ConfigSnapshot(dashboards=[Dashboard(id="d1", name="Sales")])
        >>> sorted(snapshot.storage_values())
        ['dashboard:d1', 'dashboardCards:d1', 'dashboardVariables:d1', 'dataSources']
    """

    dashboards: list[Dashboard] = Field(default_factory=list)
    cards: list[Card] = Field(default_factory=list)
    variables: list[Variable] = Field(default_factory=list)
    data_sources: list[DataSource] = Field(default_factory=list)
    white_label: WhiteLabelSettings | None = None
    app_settings: AppSettings | None = None

    def dashboard_ids(self) -> set[str]:
        return {d.id for d in self.dashboards}

    def cards_for(self, dashboard_id: str) -> list[Card]:
        return [c for c in self.cards if c.dashboard_id == dashboard_id]

    def variables_for(self, dashboard_id: str) -> list[Variable]:
        return [v for v in self.variables if v.scope_id == dashboard_id]

    def storage_values(self) -> dict[str, Any]:
        """
        Map every storage key to its wire value.

        Entity lists are sorted by id so two snapshots holding the same
        entities produce equal values regardless of order.
        """
        values: dict[str, Any] = {DATA_SOURCES_KEY: _sorted_wire(self.data_sources)}
        if self.white_label is not None:
            values[WHITE_LABEL_KEY] = self.white_label.to_wire()
        if self.app_settings is not None:
            values[APP_SETTINGS_KEY] = self.app_settings.to_wire()
        for dashboard in self.dashboards:
            values[dashboard_key(dashboard.id)] = dashboard.to_wire()
            values[cards_key(dashboard.id)] = _sorted_wire(self.cards_for(dashboard.id))
            values[variables_key(dashboard.id)] = _sorted_wire(self.variables_for(dashboard.id))
        return values


def same_value(left: Any, right: Any) -> bool:
    """Compare two wire values structurally."""
    return json.dumps(left, sort_keys=True) == json.dumps(right, sort_keys=True)


class SyncReport(BaseModel):
    """
    Result of a sync.

    Provides detailed feedback about what happened during the sync.
    """

    success: bool = Field(description="Whether the sync succeeded")
    message: str = Field(default="", description="Human-readable result message")
    synced: list[str] = Field(
        default_factory=list,
        description="Aggregates moved to saved-remote",
    )
    skipped: list[str] = Field(
        default_factory=list,
        description="Aggregates left out because they were not committed locally",
    )
    stale: list[str] = Field(
        default_factory=list,
        description="Aggregates mutated while the sync was in flight",
    )
    written_keys: list[str] = Field(default_factory=list)
    deleted_keys: list[str] = Field(default_factory=list)
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)

    @property
    def duration_seconds(self) -> float | None:
        """Calculate sync duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def summary(self) -> str:
        """Generate a human-readable summary of the result."""
        if not self.success:
            return f"sync failed: {self.message}"

        parts = ["sync succeeded"]
        if self.written_keys:
            parts.append(f"{len(self.written_keys)} keys written")
        if self.deleted_keys:
            parts.append(f"{len(self.deleted_keys)} keys deleted")
        if not self.written_keys and not self.deleted_keys:
            parts.append("remote already up to date")
        if self.stale:
            parts.append(f"{len(self.stale)} changed during sync")
        if self.skipped:
            parts.append(f"{len(self.skipped)} skipped")
        return ", ".join(parts)


__all__ = ["ConfigSnapshot", "SyncReport", "parse_entities", "parse_optional", "same_value"]
