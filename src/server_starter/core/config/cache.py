"""Centralized configuration caching.

Provides a single source of truth for loaded configuration across all domain
configs. Domain configs should use this module instead of loading YAML
themselves.
"""
from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Any, Dict, Optional

_config_cache: Dict[str, Dict[str, Any]] = {}


def _normalize_repo_root(repo_root: Optional[Path]) -> Path:
    if repo_root is None:
        return Path.cwd().resolve()
    return Path(repo_root).expanduser().resolve()


def _cache_key(repo_root: Path) -> str:
    """Generate a cache key from the resolved root, env overrides and config mtimes."""
    from .manager import ENV_PREFIX, get_project_config_dir, get_user_config_dir, iter_yaml_files

    # Tests and long-running processes may mutate SERVER_STARTER_* env vars or
    # rewrite project YAML after a first load; both must miss the cache.
    env_items = sorted(
        (k, os.environ.get(k, ""))
        for k in os.environ.keys()
        if k.startswith(ENV_PREFIX)
    )
    env_fp = hashlib.sha256(repr(env_items).encode("utf-8")).hexdigest()[:12]

    files: list[tuple[str, int, int]] = []
    for d in (get_user_config_dir() / "config", get_project_config_dir(repo_root) / "config"):
        for p in iter_yaml_files(d):
            try:
                st = p.stat()
                files.append((str(p), int(st.st_mtime_ns), int(st.st_size)))
            except OSError:
                files.append((str(p), 0, 0))
    cfg_fp = hashlib.sha256(repr(files).encode("utf-8")).hexdigest()[:12]

    return f"{repo_root}:env={env_fp}:cfg={cfg_fp}"


def get_cached_config(repo_root: Optional[Path] = None, validate: bool = True) -> Dict[str, Any]:
    """Get configuration with caching.

    Returns the same config dict instance for the same repo_root (and unchanged
    environment/config files), avoiding repeated file I/O.

    Args:
        repo_root: Project root path. Uses the current directory if None.
        validate: Whether to validate against the bundled schema on a miss.

    Returns:
        Configuration dictionary (cached; treat as immutable).
    """
    from .manager import ConfigManager

    normalized_root = _normalize_repo_root(repo_root)
    key = _cache_key(normalized_root)
    if key not in _config_cache:
        _config_cache[key] = ConfigManager(repo_root=normalized_root).load_config(validate=validate)
    return _config_cache[key]


def clear_all_caches() -> None:
    """Clear all configuration caches.

    Call this when configuration files have changed and need to be reloaded.
    """
    _config_cache.clear()


def is_cached(repo_root: Optional[Path] = None) -> bool:
    return _cache_key(_normalize_repo_root(repo_root)) in _config_cache


__all__ = [
    "get_cached_config",
    "clear_all_caches",
    "is_cached",
]
