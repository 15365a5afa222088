"""
Sync between the local state and the remote configuration store.
"""

from dashstore.core.sync.merge import merge_entities, merge_object, merge_snapshots
from dashstore.core.sync.models import ConfigSnapshot, SyncReport
from dashstore.core.sync.service import SyncCoordinator, fetch_remote_snapshot

__all__ = [
    "ConfigSnapshot",
    "SyncCoordinator",
    "SyncReport",
    "fetch_remote_snapshot",
    "merge_entities",
    "merge_object",
    "merge_snapshots",
]
