"""server-starter configuration system.

Usage:
    from server_starter.core.config import ConfigManager
    from server_starter.core.config.domains import LaunchConfig

    # Direct config manager usage
    config = ConfigManager(repo_root=Path("/path/to/project")).load_config()

    # Domain-specific accessors (recommended)
    options = LaunchConfig(repo_root=Path("/path/to/project")).default_options()

    # Cached config access
    from server_starter.core.config.cache import get_cached_config, clear_all_caches
    config = get_cached_config(repo_root)
"""
from __future__ import annotations

from .base import BaseDomainConfig
from .cache import clear_all_caches, get_cached_config, is_cached
from .domains import LaunchConfig, LoggingConfig
from .manager import ConfigManager

__all__ = [
    "BaseDomainConfig",
    "ConfigManager",
    "LaunchConfig",
    "LoggingConfig",
    "clear_all_caches",
    "get_cached_config",
    "is_cached",
]
