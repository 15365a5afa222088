"""
Configuration data models for dashstore.

These models define the structure of ``.dashstore.json`` and
``~/.config/dashstore/config.json``, with validation via Pydantic.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RemoteConfig(BaseModel):
    """
    Remote configuration service settings.

    Without a URL remote sync is disabled and the local cache is the only
    store.
    """

    url: str | None = Field(default=None, description="Configuration endpoint URL")
    tenant_id: str | None = Field(default=None, description="Tenant sent as X-Tenant-Id")
    api_key: str | None = Field(default=None, description="Credential sent on every call")
    api_secret: str | None = Field(default=None, description="Credential sent on every call")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    max_retries: int = Field(default=3, ge=0, description="Retries for transient failures")

    @field_validator("url")
    @classmethod
    def _blank_url_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def enabled(self) -> bool:
        return self.url is not None


class LocalConfig(BaseModel):
    cache_path: str = Field(default=".dashstore/cache.db", description="SQLite cache file")
    data_secret: str | None = Field(
        default=None,
        description="Key used to obfuscate connection strings in the local cache",
    )


class AutosaveConfig(BaseModel):
    debounce_ms: int = Field(
        default=500,
        ge=0,
        description="Delay between the last edit and the local commit",
    )


class HostConfig(BaseModel):
    """Host-injected values, surfaced to templates as fixed variables."""

    department: str | None = Field(default=None)
    owner: str | None = Field(default=None)


class DashstoreConfig(BaseModel):
    """
    Top-level dashstore configuration.

    Example:
        >>> config = DashstoreConfig(remote=RemoteConfig(url="https://cfg.example.com"))
        >>> config.remote.enabled
        True
        >>> config.autosave.debounce_ms
        500
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    local: LocalConfig = Field(default_factory=LocalConfig)
    autosave: AutosaveConfig = Field(default_factory=AutosaveConfig)
    host: HostConfig = Field(default_factory=HostConfig)

    model_config = ConfigDict(
        extra="allow",  # Allow extra fields for forward compatibility
        validate_assignment=True,
    )
