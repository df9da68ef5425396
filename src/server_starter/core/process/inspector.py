"""Child process inspection.

psutil is a required dependency: it gives the same liveness answer on every
platform, including Windows where ``os.kill(pid, 0)`` terminates the target.
"""
from __future__ import annotations

import logging

import psutil

logger = logging.getLogger(__name__)


def is_process_alive(pid: int | None) -> bool:
    """Check if a process is alive by PID.

    A zombie (exited but not yet reaped) counts as dead: it can no longer
    accept connections or react to signals.

    Args:
        pid: Process ID to check; None or non-positive values are never alive.

    Returns:
        bool: True if the process exists and is not a zombie
    """
    if pid is None or pid <= 0:
        return False
    if not psutil.pid_exists(pid):
        return False
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Permission denied implies the process exists but is protected
        return True


def describe_process(pid: int) -> dict[str, object]:
    """Return name/status/cmdline of ``pid`` for diagnostics (empty when gone)."""
    try:
        proc = psutil.Process(pid)
        with proc.oneshot():
            return {
                "pid": pid,
                "name": proc.name(),
                "status": proc.status(),
                "cmdline": proc.cmdline(),
            }
    except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
        logger.debug("cannot describe pid %s: %s", pid, exc)
        return {}


__all__ = ["describe_process", "is_process_alive"]
