"""Domain-specific configuration accessors.

Each domain config extends BaseDomainConfig and provides typed, cached access
to one section of the merged configuration:

- LaunchConfig: defaults for launching and closing child servers
- LoggingConfig: stdlib logging setup

Usage:
    from server_starter.core.config.domains import LaunchConfig

    launch = LaunchConfig(repo_root=Path("/path/to/project"))
    options = launch.default_options()
"""
from __future__ import annotations

from .launch import LaunchConfig, resolve_signal
from .logging import LoggingConfig

__all__ = [
    "LaunchConfig",
    "LoggingConfig",
    "resolve_signal",
]
