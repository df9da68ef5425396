from __future__ import annotations

from typing import Any, Dict, Mapping


class ServerStarterError(Exception):
    """Base exception for server-starter."""

    context: Dict[str, Any]

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        if context is not None:
            # Store a shallow copy to avoid accidental mutation.
            self.context = dict(context)
        else:
            self.context = {}

    def to_json_error(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "context": self.context,
        }


class BindError(ServerStarterError, OSError):
    """Raised when the requested port/address cannot be bound."""

    def __init__(
        self,
        message: str,
        *,
        port: int | None = None,
        address: str | None = None,
        errno: int | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if port is not None:
            ctx["port"] = port
        if address is not None:
            ctx["address"] = address
        if errno is not None:
            ctx["errno"] = errno
        super().__init__(message, context=ctx)
        self.errno = errno


class ServerStateError(ServerStarterError, RuntimeError):
    """Raised when a server handle is used out of lifecycle order."""


class AlreadyLaunchedError(ServerStateError):
    """Raised when ``launch`` is called on a handle that was already launched."""


class NotLaunchedError(ServerStateError):
    """Raised when ``close`` is called on a handle that was never launched."""


class LaunchError(ServerStarterError, OSError):
    """Raised when the OS could not start the child process at all."""

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        errno: int | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if command is not None:
            ctx["command"] = command
        if errno is not None:
            ctx["errno"] = errno
        super().__init__(message, context=ctx)
        self.errno = errno


class ReadinessError(ServerStarterError):
    """Base class for failures while waiting for a launched server."""


class ReadinessTimeout(ReadinessError, TimeoutError):
    """Raised when port probing exceeds the connect timeout."""


class ConnectProbeError(ReadinessError, ConnectionError):
    """Raised when a readiness probe fails with anything but connection-refused."""


class ConfigError(ServerStarterError, ValueError):
    """Raised for invalid launch options or configuration files."""


__all__ = [
    "ServerStarterError",
    "BindError",
    "ServerStateError",
    "AlreadyLaunchedError",
    "NotLaunchedError",
    "LaunchError",
    "ReadinessError",
    "ReadinessTimeout",
    "ConnectProbeError",
    "ConfigError",
]
