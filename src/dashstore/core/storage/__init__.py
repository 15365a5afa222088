"""
Storage collaborators: local cache, remote configuration store and the
key layout they share.
"""

from dashstore.core.storage.http import HttpRemoteConfigStore, RetryConfig
from dashstore.core.storage.local import LocalCache, MemoryLocalCache, SqliteLocalCache
from dashstore.core.storage.remote import (
    MemoryRemoteStore,
    RemoteConfigStore,
    ScopeHeaders,
    WriteResult,
    scope_headers,
)

__all__ = [
    "HttpRemoteConfigStore",
    "LocalCache",
    "MemoryLocalCache",
    "MemoryRemoteStore",
    "RemoteConfigStore",
    "RetryConfig",
    "ScopeHeaders",
    "SqliteLocalCache",
    "WriteResult",
    "scope_headers",
]
