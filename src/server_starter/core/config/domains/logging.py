"""Domain-specific configuration for server-starter logging.

This config controls whether ``configure_logging_from_config`` installs a
handler, at which level, and whether records go to a file or to stderr.
"""

from __future__ import annotations

from functools import cached_property
from pathlib import Path
from typing import Optional

from ..base import BaseDomainConfig


class LoggingConfig(BaseDomainConfig):
    def _config_section(self) -> str:
        return "logging"

    @cached_property
    def enabled(self) -> bool:
        return bool(self.section.get("enabled", False))

    @cached_property
    def level(self) -> str:
        return str(self.section.get("level") or "INFO").upper()

    @cached_property
    def file(self) -> Optional[Path]:
        """Log file path, resolved against the project root; None means stderr."""
        raw = self.section.get("file")
        if not raw:
            return None
        path = Path(str(raw)).expanduser()
        if not path.is_absolute():
            path = self.repo_root / path
        return path


__all__ = ["LoggingConfig"]
