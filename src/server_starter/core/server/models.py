from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from server_starter.core.exceptions import ConfigError


class ServerState(str, enum.Enum):
    """Lifecycle of a ServerHandle. ``EXITED`` is terminal."""

    IDLE = "idle"
    LISTENING = "listening"
    LAUNCHED = "launched"
    EXITED = "exited"


@dataclass(frozen=True)
class ExitStatus:
    """How the child terminated.

    ``exit_code`` is None when the child was killed by a signal; ``exit_signal``
    is then the signal name (e.g. ``"SIGINT"``). Both are None when the child
    never started.
    """

    exit_code: int | None = None
    exit_signal: str | None = None


_LEGACY_LAUNCH_KEY_HINTS: dict[str, str] = {
    "stdout": "forward_stdout",
    "stderr": "forward_stderr",
    "connectTimeout": "connect_timeout_ms",
    "retryTime": "retry_interval_ms",
    "fdPassingAllowed": "allow_descriptor_handoff",
    "avoidFdPassing": "allow_descriptor_handoff (inverted)",
    "env": "environment",
}


def _raise_on_legacy_keys(raw: Mapping[str, Any]) -> None:
    found = [key for key in _LEGACY_LAUNCH_KEY_HINTS if key in raw]
    if not found:
        return
    hints = ", ".join(f"{k} -> {_LEGACY_LAUNCH_KEY_HINTS[k]}" for k in found)
    raise ConfigError(f"Unsupported legacy launch option keys: {hints}", context={"keys": found})


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return default
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "on"}
    return bool(v)


def _as_ms(name: str, v: Any, default: float) -> float:
    if v is None:
        return float(default)
    try:
        value = float(v)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"launch option {name} must be a number, got {v!r}") from exc
    if value < 0:
        raise ConfigError(f"launch option {name} must not be negative, got {v!r}")
    return value


@dataclass(frozen=True)
class LaunchOptions:
    """Options for ``ServerHandle.launch``.

    ``allow_descriptor_handoff`` is a request: platforms without descriptor
    inheritance (Windows) always fall back to the port-rebind protocol.
    ``environment`` is merged over the parent environment unless
    ``inherit_environment`` is False, in which case it replaces it.
    """

    forward_stdout: bool = False
    forward_stderr: bool = True
    allow_descriptor_handoff: bool = True
    connect_timeout_ms: float = 30000
    retry_interval_ms: float = 60
    environment: dict[str, str] = field(default_factory=dict)
    inherit_environment: bool = True
    cwd: str | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | None, *, base: LaunchOptions | None = None) -> LaunchOptions:
        """Build options from a raw mapping, falling back to ``base`` for missing keys."""
        defaults = base or cls()
        if raw is None:
            return defaults
        if not isinstance(raw, Mapping):
            raise ConfigError(f"launch options must be a mapping, got {type(raw).__name__}")

        _raise_on_legacy_keys(raw)
        unknown = sorted(set(raw) - {f.name for f in fields(cls)})
        if unknown:
            raise ConfigError(f"Unknown launch option keys: {', '.join(unknown)}", context={"keys": unknown})

        env = dict(defaults.environment)
        env_raw = raw.get("environment")
        if env_raw is not None:
            if not isinstance(env_raw, Mapping):
                raise ConfigError("launch option environment must be a mapping")
            env.update({str(k): str(v) for k, v in env_raw.items()})

        cwd_raw = raw.get("cwd", defaults.cwd)
        cwd = os.path.expandvars(str(cwd_raw).strip()) if cwd_raw is not None else None

        return cls(
            forward_stdout=_as_bool(raw.get("forward_stdout"), defaults.forward_stdout),
            forward_stderr=_as_bool(raw.get("forward_stderr"), defaults.forward_stderr),
            allow_descriptor_handoff=_as_bool(
                raw.get("allow_descriptor_handoff"), defaults.allow_descriptor_handoff
            ),
            connect_timeout_ms=_as_ms(
                "connect_timeout_ms", raw.get("connect_timeout_ms"), defaults.connect_timeout_ms
            ),
            retry_interval_ms=_as_ms(
                "retry_interval_ms", raw.get("retry_interval_ms"), defaults.retry_interval_ms
            ),
            environment=env,
            inherit_environment=_as_bool(raw.get("inherit_environment"), defaults.inherit_environment),
            cwd=cwd or None,
        )

    @property
    def connect_timeout_seconds(self) -> float:
        return float(self.connect_timeout_ms) / 1000.0

    @property
    def retry_interval_seconds(self) -> float:
        return float(self.retry_interval_ms) / 1000.0

    def child_environment(self, announced: Mapping[str, str]) -> dict[str, str]:
        """Environment for one child: base env, user overrides, then the announcement."""
        env: dict[str, str] = dict(os.environ) if self.inherit_environment else {}
        env.update(self.environment)
        env.update(announced)
        return env


__all__ = [
    "ExitStatus",
    "LaunchOptions",
    "ServerState",
]
