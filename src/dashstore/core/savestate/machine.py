"""
Per-aggregate save-state machine.

The tracker owns one SaveStatus per aggregate and applies events through a
fixed transition table. Each mutation also bumps the aggregate's revision
counter; asynchronous work (a local commit, a sync) records the revision
it started from and only applies its completion event if the aggregate
has not been mutated since, so a stale completion never overwrites the
``unsaved`` status left by a fresh edit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from dashstore.core.errors import InvalidTransitionError
from dashstore.core.savestate.models import AggregateKey, SaveEvent, SaveStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[AggregateKey, SaveStatus, SaveStatus], None]


class SaveStateTracker:
    """
    Tracks the save status of every aggregate.

    Aggregates never seen before are reported as ``idle``; the first
    mutation starts tracking them.

    Example:
        >>> tracker = SaveStateTracker()
        >>> key = AggregateKey.dashboard("d1")
        >>> tracker.mark_mutated(key)
        <SaveStatus.UNSAVED: 'unsaved'>
        >>> tracker.has_unsynced_changes
        True
    """

    # (current state, event) -> next state
    TRANSITIONS: dict[tuple[SaveStatus, SaveEvent], SaveStatus] = {
        (SaveStatus.IDLE, SaveEvent.MUTATION): SaveStatus.UNSAVED,
        (SaveStatus.UNSAVED, SaveEvent.MUTATION): SaveStatus.UNSAVED,
        (SaveStatus.UNSAVED, SaveEvent.DEBOUNCE_ELAPSED): SaveStatus.SAVING_LOCAL,
        (SaveStatus.SAVING_LOCAL, SaveEvent.LOCAL_COMMIT_OK): SaveStatus.SAVED_LOCAL,
        (SaveStatus.SAVING_LOCAL, SaveEvent.LOCAL_COMMIT_FAILED): SaveStatus.UNSAVED,
        (SaveStatus.SAVING_LOCAL, SaveEvent.MUTATION): SaveStatus.UNSAVED,
        (SaveStatus.SAVED_LOCAL, SaveEvent.SYNC_REQUESTED): SaveStatus.SYNCING,
        (SaveStatus.SAVED_LOCAL, SaveEvent.MUTATION): SaveStatus.UNSAVED,
        (SaveStatus.SYNCING, SaveEvent.REMOTE_COMMIT_OK): SaveStatus.SAVED_REMOTE,
        (SaveStatus.SYNCING, SaveEvent.REMOTE_COMMIT_FAILED): SaveStatus.SAVED_LOCAL,
        (SaveStatus.SYNCING, SaveEvent.MUTATION): SaveStatus.UNSAVED,
        (SaveStatus.SAVED_REMOTE, SaveEvent.MUTATION): SaveStatus.UNSAVED,
    }

    def __init__(self) -> None:
        self._statuses: dict[AggregateKey, SaveStatus] = {}
        self._revisions: dict[AggregateKey, int] = {}
        self._listeners: list[StatusListener] = []

    def track(self, key: AggregateKey, status: SaveStatus = SaveStatus.IDLE) -> None:
        """Start tracking an aggregate in the given state (used on load)."""
        self._statuses[key] = status
        self._revisions.setdefault(key, 0)

    def reset(self, keys: Iterable[AggregateKey]) -> None:
        """Forget everything and track ``keys`` as freshly loaded (``idle``)."""
        self._statuses = {key: SaveStatus.IDLE for key in keys}
        self._revisions = {key: 0 for key in self._statuses}

    def forget(self, key: AggregateKey) -> None:
        self._statuses.pop(key, None)
        self._revisions.pop(key, None)

    def status(self, key: AggregateKey) -> SaveStatus:
        return self._statuses.get(key, SaveStatus.IDLE)

    def revision(self, key: AggregateKey) -> int:
        return self._revisions.get(key, 0)

    def keys(self) -> list[AggregateKey]:
        return list(self._statuses)

    def statuses(self) -> dict[AggregateKey, SaveStatus]:
        return dict(self._statuses)

    def in_state(self, *states: SaveStatus) -> list[AggregateKey]:
        """Aggregates currently in any of ``states``, in tracking order."""
        return [key for key, status in self._statuses.items() if status in states]

    @property
    def has_unsynced_changes(self) -> bool:
        """
        True unless every aggregate is ``idle`` or ``saved-remote``.

        Transient states (``saving-local``, ``syncing``) count as pending.
        """
        return any(status.is_pending for status in self._statuses.values())

    def fire(self, key: AggregateKey, event: SaveEvent) -> SaveStatus:
        """
        Apply an event to one aggregate.

        Returns:
            The new status

        Raises:
            InvalidTransitionError: If the event is not valid in the
                aggregate's current state
        """
        current = self.status(key)
        target = self.TRANSITIONS.get((current, event))
        if target is None:
            raise InvalidTransitionError(str(key), current.value, event.value)
        self._statuses[key] = target
        self._revisions.setdefault(key, 0)
        if target != current:
            logger.debug("%s: %s -(%s)-> %s", key, current.value, event.value, target.value)
            for listener in list(self._listeners):
                listener(key, current, target)
        return target

    def mark_mutated(self, key: AggregateKey) -> SaveStatus:
        """Record a mutation: bump the revision and move to ``unsaved``."""
        self._revisions[key] = self.revision(key) + 1
        return self.fire(key, SaveEvent.MUTATION)

    def fire_if_current(self, key: AggregateKey, event: SaveEvent, revision: int) -> bool:
        """
        Apply a completion event only if the aggregate is unchanged.

        Args:
            key: Aggregate the asynchronous work was started for
            event: Completion event to apply
            revision: Revision recorded when the work started

        Returns:
            True if the event was applied, False if the aggregate was
            mutated (or forgotten) in the meantime
        """
        if key not in self._statuses or self.revision(key) != revision:
            logger.debug("%s: dropping stale %s (revision moved on)", key, event.value)
            return False
        self.fire(key, event)
        return True

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """
        Register a callback for status changes.

        Returns:
            A function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


__all__ = ["SaveStateTracker", "StatusListener"]
