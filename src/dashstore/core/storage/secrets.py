"""
Connection-string handling for the local cache.

Server database credentials never reach the local cache. Supabase
connection strings are kept only when a local data secret is configured,
obfuscated with a repeating-key XOR and base64 under the ``enc::`` prefix.

This is obfuscation against casual inspection of the cache file, not
encryption; anything that must stay confidential belongs in the remote
store only.
"""

import base64
import binascii
import logging
from collections.abc import Iterable

from dashstore.core.entities.models import DatabaseType, DataSource

logger = logging.getLogger(__name__)

ENCRYPT_PREFIX = "enc::"

# Connection strings of these types are always stripped before caching locally
LOCALLY_STRIPPED_TYPES = frozenset(
    {
        DatabaseType.POSTGRESQL,
        DatabaseType.MYSQL,
        DatabaseType.SQL_SERVER,
        DatabaseType.REDIS,
        DatabaseType.MONGODB,
        DatabaseType.COSMOSDB,
    }
)

_PLACEHOLDER_CONNECTION = "N/A"


def _xor(text: str, key: str) -> str:
    return "".join(chr(ord(char) ^ ord(key[i % len(key)])) for i, char in enumerate(text))


def obfuscate(text: str, secret: str | None) -> str:
    """
    Obfuscate ``text`` with ``secret``.

    Example:
        >>> value = obfuscate("postgres://u:p@h/db", "k3y")
        >>> value.startswith("enc::")
        True
        >>> reveal(value, "k3y")
        'postgres://u:p@h/db'
    """
    if not secret:
        return text
    xored = _xor(text, secret)
    return ENCRYPT_PREFIX + base64.b64encode(xored.encode("utf-8")).decode("ascii")


def reveal(text: str, secret: str | None) -> str:
    """Undo :func:`obfuscate`. Values without the prefix are returned as-is."""
    if not secret or not text.startswith(ENCRYPT_PREFIX):
        return text
    try:
        decoded = base64.b64decode(text[len(ENCRYPT_PREFIX) :], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        logger.error("Failed to reveal obfuscated connection string, keeping raw value: %s", e)
        return text
    return _xor(decoded, secret)


def sanitize_for_local(sources: Iterable[DataSource], secret: str | None) -> list[DataSource]:
    """Prepare data sources for writing to the local cache."""
    result: list[DataSource] = []
    for source in sources:
        if source.type in LOCALLY_STRIPPED_TYPES:
            source = source.model_copy(update={"connection_string": ""})
        elif source.type == DatabaseType.SUPABASE:
            conn = source.connection_string
            if secret and conn and conn != _PLACEHOLDER_CONNECTION:
                conn = obfuscate(conn, secret)
            else:
                conn = ""
            source = source.model_copy(update={"connection_string": conn})
        result.append(source)
    return result


def restore_from_local(sources: Iterable[DataSource], secret: str | None) -> list[DataSource]:
    """Reverse :func:`sanitize_for_local` where possible (stripped values stay empty)."""
    result: list[DataSource] = []
    for source in sources:
        if secret and source.connection_string.startswith(ENCRYPT_PREFIX):
            source = source.model_copy(
                update={"connection_string": reveal(source.connection_string, secret)}
            )
        result.append(source)
    return result


__all__ = [
    "ENCRYPT_PREFIX",
    "LOCALLY_STRIPPED_TYPES",
    "obfuscate",
    "restore_from_local",
    "reveal",
    "sanitize_for_local",
]
