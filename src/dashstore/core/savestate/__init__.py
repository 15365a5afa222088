"""
Save-state tracking and debounced local commits.
"""

from dashstore.core.savestate.debounce import Debouncer
from dashstore.core.savestate.machine import SaveStateTracker, StatusListener
from dashstore.core.savestate.models import AggregateKey, AggregateKind, SaveEvent, SaveStatus

__all__ = [
    "AggregateKey",
    "AggregateKind",
    "Debouncer",
    "SaveEvent",
    "SaveStateTracker",
    "SaveStatus",
    "StatusListener",
]
