"""How a launched child is handed its socket and judged ready.

Two strategies, chosen once per launch by ``select_readiness``:

``InheritedDescriptor``
    The parent's listening socket is placed at descriptor 3 in the child.
    The kernel already queues connections, so the server is ready as soon
    as the parent has let go of its own handle. No polling.

``PortRebind``
    The parent closes its listener before spawning, the child binds the
    announced port itself, and the parent probes it with TCP connects until
    one succeeds or the connect timeout elapses.
"""
from __future__ import annotations

import logging
import os
import socket
import time
from dataclasses import dataclass
from typing import Union

from server_starter.core.exceptions import ConnectProbeError, ReadinessTimeout

from .listener import Listener
from .models import LaunchOptions

logger = logging.getLogger(__name__)

# First descriptor after stdin/stdout/stderr.
INHERITED_FD = 3

LISTEN_ENV = "SERVER_STARTER_LISTEN"
PORT_ENV = "SERVER_STARTER_PORT"

_WILDCARD_PROBE_HOSTS = {
    "": "127.0.0.1",
    "0.0.0.0": "127.0.0.1",
    "::": "::1",
}


def supports_descriptor_inheritance() -> bool:
    return os.name == "posix"


def probe_host(address: str | None) -> str:
    """Host to connect to when probing a server bound on ``address``."""
    return _WILDCARD_PROBE_HOSTS.get(address or "", address or "127.0.0.1")


def format_url(scheme: str, address: str | None, port: int) -> str:
    host = address or "127.0.0.1"
    if ":" in host:
        host = f"[{host}]"
    return f"{scheme}://{host}:{port}"


def probe_until_ready(host: str, port: int, *, deadline: float, retry_interval: float) -> int:
    """Connect to ``host:port`` until it accepts, returning the number of attempts.

    ``deadline`` is a ``time.monotonic()`` value. Connection-refused is
    retried every ``retry_interval`` seconds until the deadline passes; any
    other connect error fails immediately. A connect that times out (SYNs
    dropped on a full accept queue) counts as not ready yet.

    Raises:
        ReadinessTimeout: still refused when the deadline passed.
        ConnectProbeError: any other connect failure.
    """
    attempts = 0
    while True:
        attempts += 1
        remaining = deadline - time.monotonic()
        try:
            conn = socket.create_connection((host, port), timeout=max(0.05, remaining))
        except (ConnectionRefusedError, socket.timeout) as exc:
            if time.monotonic() >= deadline:
                raise ReadinessTimeout(
                    f"Server on {host}:{port} not accepting connections after {attempts} attempts",
                    context={"host": host, "port": port, "attempts": attempts},
                ) from exc
            logger.debug("probe %s:%s %s (attempt %d), retrying", host, port, exc, attempts)
            time.sleep(retry_interval)
            continue
        except OSError as exc:
            raise ConnectProbeError(
                f"Probing {host}:{port} failed: {exc}",
                context={"host": host, "port": port, "errno": exc.errno},
            ) from exc
        conn.close()
        return attempts


@dataclass(frozen=True)
class InheritedDescriptor:
    """Hand the bound socket to the child at ``INHERITED_FD``."""

    descriptor: int

    def listen_address(self, scheme: str, address: str | None, port: int) -> str:
        return f"{scheme}://*?fd={INHERITED_FD}"

    def announcement(self, listen_address: str, port: int) -> dict[str, str]:
        return {LISTEN_ENV: listen_address}

    def before_spawn(self, listener: Listener) -> None:
        pass

    def await_ready(self, listener: Listener, *, started_at: float) -> None:
        # The child holds its own copy now; keeping ours would leave the port
        # accepting after the child exits.
        listener.release()
        logger.debug("descriptor %s handed off for port %s", self.descriptor, listener.port)


@dataclass(frozen=True)
class PortRebind:
    """Free the port, let the child bind it, and probe until it accepts."""

    host: str
    port: int
    connect_timeout: float
    retry_interval: float

    descriptor = None

    def listen_address(self, scheme: str, address: str | None, port: int) -> str:
        return format_url(scheme, address, port)

    def announcement(self, listen_address: str, port: int) -> dict[str, str]:
        return {LISTEN_ENV: listen_address, PORT_ENV: str(port)}

    def before_spawn(self, listener: Listener) -> None:
        listener.close()

    def await_ready(self, listener: Listener, *, started_at: float) -> None:
        attempts = probe_until_ready(
            self.host,
            self.port,
            deadline=started_at + self.connect_timeout,
            retry_interval=self.retry_interval,
        )
        logger.debug("port %s accepted after %d probe(s)", self.port, attempts)


ReadinessMode = Union[InheritedDescriptor, PortRebind]


def select_readiness(listener: Listener, options: LaunchOptions) -> ReadinessMode:
    if options.allow_descriptor_handoff and supports_descriptor_inheritance():
        return InheritedDescriptor(descriptor=listener.descriptor)
    return PortRebind(
        host=probe_host(listener.address),
        port=listener.port,
        connect_timeout=options.connect_timeout_seconds,
        retry_interval=options.retry_interval_seconds,
    )


__all__ = [
    "INHERITED_FD",
    "LISTEN_ENV",
    "PORT_ENV",
    "InheritedDescriptor",
    "PortRebind",
    "ReadinessMode",
    "format_url",
    "probe_host",
    "probe_until_ready",
    "select_readiness",
    "supports_descriptor_inheritance",
]
