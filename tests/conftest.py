"""
Pytest configuration and shared fixtures.

Provides fixtures for a fixed clock, in-memory local and remote stores,
a loaded workspace, and an isolated configuration environment.
"""

from datetime import datetime, timezone

import pytest

from dashstore.core.config import clear_cache
from dashstore.core.entities.models import HostContext
from dashstore.core.storage.local import MemoryLocalCache
from dashstore.core.storage.remote import MemoryRemoteStore
from dashstore.core.workspace import Workspace

FIXED_NOW = datetime(2024, 3, 15, 10, 30, 0, tzinfo=timezone.utc)


# ==============================================================================
# Clock and Host Fixtures
# ==============================================================================


@pytest.fixture
def fixed_clock():
    """Clock frozen at 2024-03-15 10:30 UTC."""
    return lambda: FIXED_NOW


@pytest.fixture
def host():
    """Host context as injected by an embedding application."""
    return HostContext(tenant_id="acme", department="sales", owner="ana")


# ==============================================================================
# Storage Fixtures
# ==============================================================================


@pytest.fixture
def local_cache():
    """Empty in-memory local cache."""
    return MemoryLocalCache()


@pytest.fixture
def remote_store():
    """Empty in-memory remote store."""
    return MemoryRemoteStore()


@pytest.fixture
def workspace(local_cache, remote_store, host, fixed_clock):
    """
    Workspace loaded from an empty local cache.

    Loading an empty cache creates the default dashboard ("Dashboard 1").
    """
    ws = Workspace(local_cache, remote=remote_store, host=host, clock=fixed_clock)
    ws.load_local()
    return ws


@pytest.fixture
def dashboard_id(workspace):
    """Id of the default dashboard of ``workspace``."""
    return workspace.dashboards[0].id


# ==============================================================================
# Configuration Fixtures
# ==============================================================================


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """
    Run with no user/project config and no DASHSTORE_* variables.

    The working directory and XDG_CONFIG_HOME both point into tmp_path.
    """
    import os

    for name in list(os.environ):
        if name.startswith("DASHSTORE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.chdir(tmp_path)
    clear_cache()
    yield tmp_path
    clear_cache()
