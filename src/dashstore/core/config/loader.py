"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from dashstore.core.config.models import DashstoreConfig

logger = logging.getLogger(__name__)

# Global cache to avoid reloading config multiple times per session
_config_cache: DashstoreConfig | None = None

# env var -> (section, field)
_STRING_OVERRIDES = {
    "DASHSTORE_REMOTE_URL": ("remote", "url"),
    "DASHSTORE_TENANT_ID": ("remote", "tenant_id"),
    "DASHSTORE_API_KEY": ("remote", "api_key"),
    "DASHSTORE_API_SECRET": ("remote", "api_secret"),
    "DASHSTORE_LOCAL_DATA_SECRET": ("local", "data_secret"),
    "DASHSTORE_CACHE_PATH": ("local", "cache_path"),
    "DASHSTORE_DEPARTMENT": ("host", "department"),
    "DASHSTORE_OWNER": ("host", "owner"),
}


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """Path to ~/.config/dashstore/config.json (or XDG equivalent)."""
    return get_xdg_config_home() / "dashstore" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    if cwd is None:
        cwd = Path.cwd()
    return cwd / ".dashstore.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`. Nested dicts
    are merged, not replaced.

    Example:
        >>> base = {"a": 1, "b": {"x": 10, "y": 20}}
        >>> override = {"b": {"y": 30, "z": 40}, "c": 3}
        >>> deep_merge(base, override)
        {'a': 1, 'b': {'x': 10, 'y': 30, 'z': 40}, 'c': 3}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON as dict, or None if file doesn't exist or can't be parsed
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            return None
    except (json.JSONDecodeError, OSError) as e:
        # Config loading stays resilient; a broken file is skipped
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def _set(result: dict[str, Any], section: str, field: str, value: Any) -> None:
    section_dict = dict(result.get(section) or {})
    section_dict[field] = value
    result[section] = section_dict


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Env vars have the highest precedence and override all config files.

    Supported env vars:
        DASHSTORE_REMOTE_URL - overrides remote.url
        DASHSTORE_TENANT_ID - overrides remote.tenant_id
        DASHSTORE_API_KEY / DASHSTORE_API_SECRET - override remote credentials
        DASHSTORE_LOCAL_DATA_SECRET - overrides local.data_secret
        DASHSTORE_CACHE_PATH - overrides local.cache_path
        DASHSTORE_DEBOUNCE_MS - overrides autosave.debounce_ms
        DASHSTORE_DEPARTMENT / DASHSTORE_OWNER - override host values

    Args:
        config_dict: Configuration dictionary to override

    Returns:
        Configuration dictionary with env var overrides applied
    """
    result = config_dict.copy()

    for env_name, (section, field) in _STRING_OVERRIDES.items():
        if value := os.environ.get(env_name):
            _set(result, section, field, value)

    if debounce_str := os.environ.get("DASHSTORE_DEBOUNCE_MS"):
        try:
            debounce = int(debounce_str)
        except ValueError:
            logger.warning("Invalid DASHSTORE_DEBOUNCE_MS value '%s', ignoring", debounce_str)
        else:
            if debounce < 0:
                logger.warning(
                    "DASHSTORE_DEBOUNCE_MS must be >= 0, got %d, ignoring", debounce
                )
            else:
                _set(result, "autosave", "debounce_ms", debounce)

    return result


def get_default_config() -> dict[str, Any]:
    """Hard-coded default configuration."""
    return {
        "remote": {"timeout_seconds": 30.0, "max_retries": 3},
        "local": {"cache_path": ".dashstore/cache.db"},
        "autosave": {"debounce_ms": 500},
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> DashstoreConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (DASHSTORE_*)
        2. Project config (.dashstore.json)
        3. User config (~/.config/dashstore/config.json)
        4. Hardcoded defaults

    Args:
        project_dir: Project directory to load .dashstore.json from (defaults to cwd)
        use_cache: If True, return cached config from previous load

    Returns:
        Validated DashstoreConfig instance

    Raises:
        pydantic.ValidationError: If the merged config fails validation

    Example:
        >>> config = load_config()
        >>> config.autosave.debounce_ms
        500
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_json_file(get_project_config_path(project_dir)):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    config = DashstoreConfig(**merged)
    _config_cache = config
    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None
