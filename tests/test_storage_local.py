"""Tests for the local cache implementations and connection-string handling."""

import pytest

from dashstore.core.entities.models import DatabaseType, DataSource
from dashstore.core.errors import LocalCommitError
from dashstore.core.storage import LocalCache, MemoryLocalCache, SqliteLocalCache
from dashstore.core.storage.secrets import (
    ENCRYPT_PREFIX,
    obfuscate,
    restore_from_local,
    reveal,
    sanitize_for_local,
)


@pytest.fixture(params=["memory", "sqlite"])
def cache(request, tmp_path):
    if request.param == "memory":
        yield MemoryLocalCache()
        return
    sqlite_cache = SqliteLocalCache(tmp_path / "nested" / "cache.db")
    yield sqlite_cache
    sqlite_cache.close()


class TestLocalCache:
    """Behaviour shared by every LocalCache implementation."""

    def test_satisfies_protocol(self, cache) -> None:
        """Test the implementation satisfies the LocalCache protocol."""
        assert isinstance(cache, LocalCache)

    def test_set_get_roundtrip(self, cache) -> None:
        """Test a stored JSON value reads back equal."""
        cache.set("appSettings", {"autoSave": True})
        assert cache.get("appSettings") == {"autoSave": True}

    def test_missing_key(self, cache) -> None:
        """Test a missing key reads as None."""
        assert cache.get("nope") is None

    def test_overwrite_and_delete(self, cache) -> None:
        """Test overwriting replaces the value and delete removes it."""
        cache.set("k", [1])
        cache.set("k", [2])
        assert cache.get("k") == [2]
        cache.delete("k")
        cache.delete("k")
        assert cache.get("k") is None

    def test_keys_by_prefix(self, cache) -> None:
        """Test keys are listed sorted and filtered by prefix."""
        for key in ("dashboard:b", "dashboard:a", "dashboardCards:a", "dataSources"):
            cache.set(key, {})
        assert cache.keys("dashboard:") == ["dashboard:a", "dashboard:b"]
        assert len(cache.keys()) == 4

    def test_unserializable_value(self, cache) -> None:
        """Test a value that is not JSON raises LocalCommitError."""
        with pytest.raises(LocalCommitError):
            cache.set("bad", {"when": object()})

    def test_reads_return_copies(self, cache) -> None:
        """Test mutating a read value does not change the stored one."""
        cache.set("k", {"a": [1]})
        cache.get("k")["a"].append(2)
        assert cache.get("k") == {"a": [1]}


class TestSqliteLocalCache:
    """SQLite specific tests."""

    def test_persists_across_instances(self, tmp_path) -> None:
        """Test values survive reopening the database file."""
        path = tmp_path / "cache.db"
        first = SqliteLocalCache(path)
        first.set("dataSources", [{"id": "s1"}])
        first.close()

        second = SqliteLocalCache(path)
        assert second.get("dataSources") == [{"id": "s1"}]
        second.close()


def source(type_: DatabaseType, conn: str) -> DataSource:
    return DataSource(id="s1", name="Main", type=type_, connection_string=conn)


class TestConnectionStrings:
    """Tests for sanitize_for_local() and restore_from_local()."""

    def test_server_databases_stripped(self) -> None:
        """Test server connection strings never reach the local cache."""
        sanitized = sanitize_for_local(
            [source(DatabaseType.POSTGRESQL, "postgres://u:p@h/db")], "secret"
        )
        assert sanitized[0].connection_string == ""

    def test_supabase_obfuscated_with_secret(self) -> None:
        """Test Supabase strings are obfuscated and restored with the secret."""
        original = source(DatabaseType.SUPABASE, "https://x.supabase.co|anon")
        sanitized = sanitize_for_local([original], "k3y")
        assert sanitized[0].connection_string.startswith(ENCRYPT_PREFIX)
        restored = restore_from_local(sanitized, "k3y")
        assert restored[0].connection_string == "https://x.supabase.co|anon"

    def test_supabase_dropped_without_secret(self) -> None:
        """Test Supabase strings are dropped when no secret is configured."""
        sanitized = sanitize_for_local(
            [source(DatabaseType.SUPABASE, "https://x.supabase.co")], None
        )
        assert sanitized[0].connection_string == ""

    def test_other_types_untouched(self) -> None:
        """Test demo and REST sources keep their connection string."""
        rest = source(DatabaseType.REST_API, "https://api.example.com")
        assert sanitize_for_local([rest], "k")[0].connection_string == "https://api.example.com"

    def test_obfuscate_without_secret(self) -> None:
        """Test obfuscation is a no-op without a secret."""
        assert obfuscate("plain", None) == "plain"
        assert reveal("plain", "k") == "plain"

    def test_reveal_corrupt_value(self) -> None:
        """Test a corrupt obfuscated value is returned unchanged."""
        assert reveal("enc::!!!not-base64", "k") == "enc::!!!not-base64"
