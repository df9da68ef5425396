"""Domain-specific configuration for launching child servers.

Provides cached access to the defaults applied to ``ServerHandle.launch``
and ``ServerHandle.close``.
"""
from __future__ import annotations

import signal
from functools import cached_property
from typing import Any, Dict, Optional

from server_starter.core.exceptions import ConfigError

from ..base import BaseDomainConfig

DEFAULT_SIGNAL = "SIGINT"


def resolve_signal(value: Any) -> signal.Signals:
    """Turn ``"SIGTERM"``, ``"term"``, ``15`` or a ``signal.Signals`` into a signal."""
    if isinstance(value, signal.Signals):
        return value
    if isinstance(value, int):
        try:
            return signal.Signals(value)
        except ValueError as exc:
            raise ConfigError(f"Unknown signal number: {value}") from exc
    name = str(value).strip().upper()
    if not name.startswith("SIG"):
        name = f"SIG{name}"
    try:
        return signal.Signals[name]
    except KeyError as exc:
        raise ConfigError(f"Unknown signal: {value}") from exc


class LaunchConfig(BaseDomainConfig):
    """Accessor for the ``launch`` section.

    Keys mirror ``LaunchOptions`` fields plus the close-side settings
    ``default_signal`` and ``close_timeout_seconds``.
    """

    def _config_section(self) -> str:
        return "launch"

    @cached_property
    def default_signal(self) -> signal.Signals:
        return resolve_signal(self.section.get("default_signal") or DEFAULT_SIGNAL)

    @cached_property
    def close_timeout_seconds(self) -> Optional[float]:
        raw = self.section.get("close_timeout_seconds")
        if raw is None:
            return None
        return float(raw)

    def default_options(self):
        """Build the configured default ``LaunchOptions``."""
        from server_starter.core.server.models import LaunchOptions

        return LaunchOptions.from_raw(self.option_settings())

    def option_settings(self) -> Dict[str, Any]:
        """Return the raw settings that map onto ``LaunchOptions`` fields."""
        keys = (
            "forward_stdout",
            "forward_stderr",
            "allow_descriptor_handoff",
            "connect_timeout_ms",
            "retry_interval_ms",
            "environment",
            "inherit_environment",
            "cwd",
        )
        return {k: self.section[k] for k in keys if k in self.section}


__all__ = [
    "DEFAULT_SIGNAL",
    "LaunchConfig",
    "resolve_signal",
]
