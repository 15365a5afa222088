"""
Save-state models.

Every syncable aggregate (each dashboard, the global settings group and the
data-source group) carries exactly one SaveStatus at any time.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SaveStatus(str, Enum):
    """Persistence status of one aggregate."""

    IDLE = "idle"
    UNSAVED = "unsaved"
    SAVING_LOCAL = "saving-local"
    SAVED_LOCAL = "saved-local"
    SYNCING = "syncing"
    SAVED_REMOTE = "saved-remote"

    @property
    def is_pending(self) -> bool:
        """Whether the aggregate may hold changes the remote store lacks."""
        return self not in (SaveStatus.IDLE, SaveStatus.SAVED_REMOTE)


class SaveEvent(str, Enum):
    """Events that drive save-state transitions."""

    MUTATION = "mutation"
    DEBOUNCE_ELAPSED = "debounce_elapsed"
    LOCAL_COMMIT_OK = "local_commit_ok"
    LOCAL_COMMIT_FAILED = "local_commit_failed"
    SYNC_REQUESTED = "sync_requested"
    REMOTE_COMMIT_OK = "remote_commit_ok"
    REMOTE_COMMIT_FAILED = "remote_commit_failed"


class AggregateKind(str, Enum):
    DASHBOARD = "dashboard"
    SETTINGS = "settings"
    DATA_SOURCES = "dataSources"


@dataclass(frozen=True)
class AggregateKey:
    """
    Identity of a syncable aggregate.

    Example:
        >>> str(AggregateKey.dashboard("d1"))
        'dashboard:d1'
        >>> AggregateKey.parse("settings") == AggregateKey.settings()
        True
    """

    kind: AggregateKind
    id: str | None = None

    @classmethod
    def dashboard(cls, dashboard_id: str) -> AggregateKey:
        return cls(AggregateKind.DASHBOARD, dashboard_id)

    @classmethod
    def settings(cls) -> AggregateKey:
        return cls(AggregateKind.SETTINGS)

    @classmethod
    def data_sources(cls) -> AggregateKey:
        return cls(AggregateKind.DATA_SOURCES)

    @classmethod
    def parse(cls, text: str) -> AggregateKey:
        """
        Parse the string form produced by ``str()``.

        Raises:
            ValueError: If the text names no known aggregate kind
        """
        kind, _, ident = text.partition(":")
        parsed = AggregateKind(kind)
        if parsed == AggregateKind.DASHBOARD:
            if not ident:
                raise ValueError(f"Dashboard aggregate key needs an id: {text!r}")
            return cls(parsed, ident)
        return cls(parsed)

    def __str__(self) -> str:
        if self.id is None:
            return self.kind.value
        return f"{self.kind.value}:{self.id}"


__all__ = ["AggregateKey", "AggregateKind", "SaveEvent", "SaveStatus"]
