"""
Debounced commit scheduling.

A mutation schedules a commit for its aggregate; another mutation before
the delay elapses reschedules it. Pending commits are never dropped: they
run when the timer fires, on an explicit flush, or on close.

Outside a running event loop there is no timer. The commit stays pending
until it is flushed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class _PendingCommit:
    callback: Callable[[], None]
    handle: asyncio.TimerHandle | None = None


class Debouncer:
    """
    Per-key debounce timers on the asyncio event loop.

    Args:
        delay: Seconds to wait after the last schedule before committing

    Example:
        >>> commits = []
        >>> debouncer = Debouncer(0.5)
        >>> debouncer.schedule("dashboard:d1", lambda: commits.append("d1"))
        >>> debouncer.flush_all()
        1
        >>> commits
        ['d1']
    """

    def __init__(self, delay: float) -> None:
        if delay < 0:
            raise ValueError("Debounce delay must not be negative")
        self.delay = delay
        self._pending: dict[Hashable, _PendingCommit] = {}

    def schedule(self, key: Hashable, callback: Callable[[], None]) -> None:
        """(Re)start the timer for ``key``; the latest callback wins."""
        self.cancel(key)
        pending = _PendingCommit(callback)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            pending.handle = loop.call_later(self.delay, self._fire, key)
        self._pending[key] = pending

    def cancel(self, key: Hashable) -> bool:
        """Drop a pending commit without running it."""
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        if pending.handle is not None:
            pending.handle.cancel()
        return True

    def is_pending(self, key: Hashable) -> bool:
        return key in self._pending

    def pending_keys(self) -> list[Hashable]:
        return list(self._pending)

    def flush(self, key: Hashable) -> bool:
        """
        Run the pending commit for ``key`` now.

        Returns:
            True if a commit was pending and ran
        """
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        if pending.handle is not None:
            pending.handle.cancel()
        self._run(key, pending)
        return True

    def flush_all(self) -> int:
        """Run every pending commit now. Returns the number run."""
        count = 0
        for key in list(self._pending):
            if self.flush(key):
                count += 1
        return count

    def close(self) -> None:
        """Flush everything; pending work is committed, not discarded."""
        flushed = self.flush_all()
        if flushed:
            logger.debug("Flushed %d pending commit(s) on close", flushed)

    def _fire(self, key: Hashable) -> None:
        pending = self._pending.pop(key, None)
        if pending is not None:
            self._run(key, pending)

    @staticmethod
    def _run(key: Hashable, pending: _PendingCommit) -> None:
        logger.debug("Running debounced commit for %s", key)
        pending.callback()


__all__ = ["Debouncer"]
