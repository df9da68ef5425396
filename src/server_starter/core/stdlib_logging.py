from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

_CONFIGURED_TARGET: str | None = None
_INSTALLED_HANDLER: logging.Handler | None = None

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOGGER_NAME = "server_starter"


def _level_from_name(name: str) -> int:
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else logging.INFO


def configure_stdlib_logging(*, level: str = "INFO", log_path: Optional[Path] = None) -> None:
    """Attach one handler to the ``server_starter`` logger.

    Writes to ``log_path`` when given, to stderr otherwise. Idempotent
    per-process: reconfiguring for the same target only updates the level.
    """
    global _CONFIGURED_TARGET, _INSTALLED_HANDLER

    target = str(Path(log_path).resolve()) if log_path is not None else "<stderr>"
    pkg_logger = logging.getLogger(LOGGER_NAME)
    pkg_logger.setLevel(_level_from_name(level))

    if _CONFIGURED_TARGET == target and _INSTALLED_HANDLER is not None:
        _INSTALLED_HANDLER.setLevel(_level_from_name(level))
        return

    # Replace the handler we installed earlier when switching targets.
    if _INSTALLED_HANDLER is not None:
        pkg_logger.removeHandler(_INSTALLED_HANDLER)
        _INSTALLED_HANDLER.close()
        _INSTALLED_HANDLER = None

    handler: logging.Handler
    if log_path is not None:
        Path(target).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(target, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(_level_from_name(level))
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    pkg_logger.addHandler(handler)

    _INSTALLED_HANDLER = handler
    _CONFIGURED_TARGET = target


def configure_logging_from_config(repo_root: Optional[Path] = None) -> bool:
    """Apply the ``logging`` config section. Returns True when a handler was installed."""
    from server_starter.core.config.domains import LoggingConfig

    cfg = LoggingConfig(repo_root=repo_root)
    if not cfg.enabled:
        return False
    configure_stdlib_logging(level=cfg.level, log_path=cfg.file)
    return True


def reset_stdlib_logging_for_tests() -> None:
    """Test-only: remove the handler installed by this module."""
    global _CONFIGURED_TARGET, _INSTALLED_HANDLER
    pkg_logger = logging.getLogger(LOGGER_NAME)
    if _INSTALLED_HANDLER is not None:
        pkg_logger.removeHandler(_INSTALLED_HANDLER)
        _INSTALLED_HANDLER.close()
    pkg_logger.setLevel(logging.NOTSET)
    _INSTALLED_HANDLER = None
    _CONFIGURED_TARGET = None


__all__ = [
    "configure_stdlib_logging",
    "configure_logging_from_config",
    "reset_stdlib_logging_for_tests",
]
