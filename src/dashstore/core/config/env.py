"""Environment loading helpers.

dashstore reads layered ``.env`` files before loading its configuration:
- OS environment (highest precedence)
- Project environment files (``./.env``, ``./.env.local``)
- User environment files (``$XDG_CONFIG_HOME/dashstore/.env``)

A ``.env`` value never overrides a variable that is already present in the
process environment (e.g. exported in the shell).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path

from dotenv import dotenv_values

from dashstore.core.config.loader import get_xdg_config_home

logger = logging.getLogger(__name__)

ENV_PREFIX = "DASHSTORE_"


def user_env_file() -> Path:
    """Path of the per-user ``.env`` file."""
    return get_xdg_config_home() / "dashstore" / ".env"


def _read_env(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    values = dotenv_values(path)
    return {str(k): str(v) for k, v in values.items() if k is not None and v is not None}


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> dict[str, Path]:
    """Load environment variables from user + project .env files.

    Args:
        project_dir: base directory for project env paths (defaults to cwd)
        user_env_paths: explicit user env file paths
        project_env_paths: explicit project env file paths

    Returns:
        Each variable set from a file, mapped to the file that won

    Notes:
        Keys that came from the user env may be overridden by the project
        env; keys already in the process environment are never touched.
    """
    if project_dir is None:
        project_dir = Path.cwd()
    if user_env_paths is None:
        user_env_paths = [user_env_file()]
    if project_env_paths is None:
        project_env_paths = [project_dir / ".env", project_dir / ".env.local"]

    sources: dict[str, Path] = {}
    for p in user_env_paths:
        _apply_file(Path(p), sources, overridable=set())
    user_keys = set(sources)
    for p in project_env_paths:
        _apply_file(Path(p), sources, overridable=user_keys)
    return dict(sorted(sources.items()))


def _apply_file(path: Path, sources: dict[str, Path], *, overridable: set[str]) -> None:
    applied: list[str] = []
    for k, v in _read_env(path).items():
        if k in os.environ and k not in overridable:
            continue
        os.environ[k] = v
        sources[k] = path
        applied.append(k)
    if applied:
        logger.debug("Loaded %d variable(s) from %s", len(applied), path)


def dashstore_keys(sources: Mapping[str, Path]) -> dict[str, Path]:
    """Only the ``DASHSTORE_*`` entries of a load_layered_env() result."""
    return {k: p for k, p in sources.items() if k.startswith(ENV_PREFIX)}
