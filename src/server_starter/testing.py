"""pytest plugin: managed child servers for tests.

Enable with ``pytest_plugins = ["server_starter.testing"]`` and request the
``server_starter`` fixture::

    def test_hello(server_starter):
        server = server_starter()
        server.launch(sys.executable, ["app.py"])
        ...

Every handle the factory returns is closed at teardown, launched or not.
"""
from __future__ import annotations

import logging
import signal
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Callable, Iterator, List, Optional

import pytest

from server_starter.core.server.handle import ServerHandle
from server_starter.core.server.models import ServerState
from server_starter.core.server.starter import ServerStarter

logger = logging.getLogger(__name__)

TEARDOWN_TIMEOUT_SECONDS = 10.0

ServerFactory = Callable[..., ServerHandle]


def close_quietly(handle: ServerHandle, timeout: Optional[float] = TEARDOWN_TIMEOUT_SECONDS) -> None:
    """Release whatever ``handle`` still holds; SIGKILL a child that ignores SIGINT."""
    if handle.state is ServerState.LAUNCHED:
        try:
            handle.close(timeout=timeout)
        except FutureTimeoutError:
            logger.warning("server %r ignored SIGINT for %ss, killing it", handle, timeout)
            handle.close(getattr(signal, "SIGKILL", signal.SIGTERM), timeout=timeout)
    elif handle.listener is not None:
        handle.listener.close()


@pytest.fixture
def server_starter(request: pytest.FixtureRequest) -> Iterator[ServerFactory]:
    """Factory for allocated ``ServerHandle`` objects, closed at teardown.

    Call it as ``server_starter(port=0, address=None, scheme="http")``. The
    configuration root defaults to pytest's root directory.
    """
    starter = ServerStarter(repo_root=Path(request.config.rootpath))
    handles: List[ServerHandle] = []

    def _factory(port: int = 0, address: Optional[str] = None, *, scheme: str = "http") -> ServerHandle:
        handle = starter.new_server(port, address, scheme=scheme)
        handles.append(handle)
        return handle

    yield _factory

    for handle in reversed(handles):
        close_quietly(handle)


__all__ = ["TEARDOWN_TIMEOUT_SECONDS", "close_quietly", "server_starter"]
