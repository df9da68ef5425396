"""Helpers for servers launched by server-starter.

A child is started in one of two modes, announced in its environment:

- descriptor mode: ``SERVER_STARTER_LISTEN=http://*?fd=3``; a socket that is
  already bound and listening sits at descriptor 3. Do not bind, just accept.
- port mode: ``SERVER_STARTER_LISTEN=http://127.0.0.1:<port>`` and
  ``SERVER_STARTER_PORT=<port>``; bind and listen on that port yourself.

``listening_socket()`` handles both::

    sock = listening_socket()
    httpd = HTTPServer(sock.getsockname()[:2], Handler, bind_and_activate=False)
    httpd.socket = sock
    httpd.serve_forever()
"""
from __future__ import annotations

import os
import socket
from typing import NamedTuple, Optional
from urllib.parse import parse_qs, urlsplit

from server_starter.core.server.readiness import INHERITED_FD, LISTEN_ENV, PORT_ENV


class ListenTarget(NamedTuple):
    host: Optional[str]
    port: Optional[int]
    fd: Optional[int]


def parse_listen_address(value: str) -> ListenTarget:
    """Parse ``scheme://host:port`` or ``scheme://*?fd=N``."""
    parts = urlsplit(value)
    fd_values = parse_qs(parts.query).get("fd")
    if fd_values:
        return ListenTarget(host=None, port=None, fd=int(fd_values[0]))
    return ListenTarget(host=parts.hostname, port=parts.port, fd=None)


def listen_target(environ: Optional[dict] = None) -> Optional[ListenTarget]:
    env = os.environ if environ is None else environ
    raw = env.get(LISTEN_ENV)
    if raw:
        return parse_listen_address(raw)
    port = env.get(PORT_ENV)
    if port:
        return ListenTarget(host=None, port=int(port), fd=None)
    return None


def inherited_socket(fd: int = INHERITED_FD) -> Optional[socket.socket]:
    """Wrap the inherited listening descriptor, or None when it is not a socket."""
    try:
        return socket.socket(fileno=fd)
    except OSError:
        return None


def listening_socket(address: str = "127.0.0.1", port: Optional[int] = None, backlog: int = 128) -> socket.socket:
    """Return the socket this child should accept on.

    Uses the inherited descriptor in descriptor mode; otherwise binds the
    announced port (or ``port`` when nothing was announced).
    """
    target = listen_target()
    if target is not None and target.fd is not None:
        sock = inherited_socket(target.fd)
        if sock is None:
            raise RuntimeError(f"{LISTEN_ENV} announces fd {target.fd} but it is not an open socket")
        return sock

    bind_port = target.port if target is not None and target.port is not None else port
    if bind_port is None:
        raise RuntimeError(f"No port announced: set {LISTEN_ENV} or {PORT_ENV}")
    host = target.host if target is not None and target.host else address
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    return socket.create_server((host, bind_port), family=family, backlog=backlog)


__all__ = [
    "INHERITED_FD",
    "LISTEN_ENV",
    "PORT_ENV",
    "ListenTarget",
    "inherited_socket",
    "listen_target",
    "listening_socket",
    "parse_listen_address",
]
