from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from .handle import ServerHandle
from .models import LaunchOptions, ServerState
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class ServerStarter:
    """Factory for allocated ``ServerHandle`` objects sharing one configuration root."""

    def __init__(self, *, repo_root: Optional[Path] = None, supervisor: ProcessSupervisor | None = None) -> None:
        self.repo_root = repo_root
        self._supervisor = supervisor

    def new_server(self, port: int = 0, address: str | None = None, *, scheme: str = "http") -> ServerHandle:
        """Create a handle and bind its listening socket (``BindError`` on failure)."""
        handle = ServerHandle(
            port,
            address,
            scheme=scheme,
            repo_root=self.repo_root,
            supervisor=self._supervisor,
        )
        return handle.listen()


_default_starter = ServerStarter()


def new_server(port: int = 0, address: str | None = None, *, scheme: str = "http") -> ServerHandle:
    return _default_starter.new_server(port, address, scheme=scheme)


@contextmanager
def server_lifecycle(
    command: str,
    args: Sequence[Any] = (),
    options: LaunchOptions | Mapping[str, Any] | None = None,
    *,
    port: int = 0,
    address: str | None = None,
    starter: ServerStarter | None = None,
    **overrides: Any,
) -> Iterator[ServerHandle]:
    """Allocate, launch and yield a ready server; close it on exit.

    ``args`` items may contain ``{port}``, which is replaced by the bound port
    for children that take their port on the command line.
    """
    handle = (starter or _default_starter).new_server(port, address)
    try:
        argv = [str(a).replace("{port}", str(handle.port)) for a in args]
        handle.launch(command, argv, options, **overrides)
        yield handle
    finally:
        logger.debug("tearing down %r", handle)
        if handle.state is ServerState.LAUNCHED:
            handle.close()
        elif handle.listener is not None:
            handle.listener.close()


__all__ = ["ServerStarter", "new_server", "server_lifecycle"]
