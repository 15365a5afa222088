"""
Remote configuration store protocol.

The remote store is a tenant-scoped key/value service. Every call carries
scope headers (tenant id, department, owner and API credentials); the core
attaches them unconditionally and never interprets them.
"""

from __future__ import annotations

import copy
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from dashstore.core.entities.models import HostContext

ScopeHeaders = dict[str, str]


class WriteResult(BaseModel):
    """Outcome of a remote write."""

    success: bool = Field(description="Whether the remote accepted the value")
    message: str = Field(default="", description="Remote service message, if any")


def scope_headers(
    host: HostContext,
    api_key: str | None = None,
    api_secret: str | None = None,
) -> ScopeHeaders:
    """
    Build the routing headers for remote calls.

    Empty values are omitted.

    Example:
        >>> scope_headers(HostContext(tenant_id="t1", owner="ana"))
        {'X-Tenant-Id': 't1', 'X-Owner': 'ana'}
    """
    candidates = (
        ("X-Tenant-Id", host.tenant_id),
        ("X-Department", host.department),
        ("X-Owner", host.owner),
        ("api_key", api_key),
        ("api_secret", api_secret),
    )
    return {name: value for name, value in candidates if value}


@runtime_checkable
class RemoteConfigStore(Protocol):
    """
    Protocol for remote configuration stores.

    Timeouts and retries are the implementation's concern. Transport
    failures surface as exceptions from the implementation; a reachable
    service that refuses a write reports it through WriteResult.
    """

    async def read(self, key: str, headers: ScopeHeaders) -> Any | None:
        """Return the value stored under ``key``, or None if absent."""
        ...

    async def write(self, key: str, value: Any, headers: ScopeHeaders) -> WriteResult:
        ...

    async def delete(self, key: str, headers: ScopeHeaders) -> None:
        ...

    async def list(self, prefix: str, headers: ScopeHeaders) -> list[Any]:
        """Return the values of every key starting with ``prefix``."""
        ...

    async def aclose(self) -> None:
        ...


def _partition(headers: ScopeHeaders) -> tuple[str, str, str]:
    return (
        headers.get("X-Tenant-Id", ""),
        headers.get("X-Department", ""),
        headers.get("X-Owner", ""),
    )


class MemoryRemoteStore:
    """
    In-process remote store, partitioned by tenant, department and owner.

    Useful as a stand-in service for embedding hosts and tests. ``write_log``
    and ``delete_log`` record the keys touched, in call order.
    """

    def __init__(self) -> None:
        self._data: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.write_log: list[str] = []
        self.delete_log: list[str] = []

    def _bucket(self, headers: ScopeHeaders) -> dict[str, Any]:
        return self._data.setdefault(_partition(headers), {})

    async def read(self, key: str, headers: ScopeHeaders) -> Any | None:
        return copy.deepcopy(self._bucket(headers).get(key))

    async def write(self, key: str, value: Any, headers: ScopeHeaders) -> WriteResult:
        self._bucket(headers)[key] = copy.deepcopy(value)
        self.write_log.append(key)
        return WriteResult(success=True)

    async def delete(self, key: str, headers: ScopeHeaders) -> None:
        self._bucket(headers).pop(key, None)
        self.delete_log.append(key)

    async def list(self, prefix: str, headers: ScopeHeaders) -> list[Any]:
        bucket = self._bucket(headers)
        return [copy.deepcopy(bucket[key]) for key in sorted(bucket) if key.startswith(prefix)]

    async def aclose(self) -> None:
        return None


__all__ = [
    "MemoryRemoteStore",
    "RemoteConfigStore",
    "ScopeHeaders",
    "WriteResult",
    "scope_headers",
]
