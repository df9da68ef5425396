from __future__ import annotations

import logging
import socket

from server_starter.core.exceptions import BindError

logger = logging.getLogger(__name__)

DEFAULT_BACKLOG = 128


def _family_for(address: str | None) -> socket.AddressFamily:
    if address and ":" in address:
        return socket.AF_INET6
    return socket.AF_INET


class Listener:
    """A TCP listening socket bound in the parent.

    The socket is owned by the listener until ``close()`` (port-rebind
    protocol) or ``release()`` (descriptor handoff). After a handoff
    ``descriptor`` stays readable but is advisory only: the parent no longer
    holds that descriptor open.
    """

    def __init__(self, sock: socket.socket, *, address: str | None) -> None:
        self._sock: socket.socket | None = sock
        self.address = address
        self.port: int = sock.getsockname()[1]
        self.descriptor: int = sock.fileno()
        self.handed_off = False

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def close(self) -> None:
        """Close the parent's socket, freeing the port. Safe to call twice."""
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()
            logger.debug("listener on port %s closed", self.port)

    def release(self) -> None:
        """Relinquish the socket after a child inherited its descriptor."""
        self.handed_off = True
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else ("handed-off" if self.handed_off else "closed")
        return f"<Listener {self.address or '*'}:{self.port} fd={self.descriptor} {state}>"


def allocate(port: int = 0, address: str | None = None, *, backlog: int = DEFAULT_BACKLOG) -> Listener:
    """Bind and listen on ``address``/``port``.

    ``port=0`` asks the OS for an ephemeral port; an omitted address binds
    every local IPv4 address.

    Raises:
        BindError: port in use, permission denied, or an unusable address.
    """
    requested = int(port or 0)
    if not 0 <= requested <= 65535:
        raise BindError(f"Port out of range: {requested}", port=requested, address=address)

    host = address or ""
    try:
        sock = socket.create_server(
            (host, requested),
            family=_family_for(address),
            backlog=backlog,
        )
    except OSError as exc:
        raise BindError(
            f"Cannot listen on {address or '*'}:{requested}: {exc.strerror or exc}",
            port=requested,
            address=address,
            errno=exc.errno,
        ) from exc

    listener = Listener(sock, address=address)
    logger.debug("allocated %r", listener)
    return listener


__all__ = ["DEFAULT_BACKLOG", "Listener", "allocate"]
