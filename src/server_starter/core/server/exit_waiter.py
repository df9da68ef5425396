from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable

from server_starter.core.exceptions import AlreadyLaunchedError

from .models import ExitStatus

logger = logging.getLogger(__name__)


class ExitWaiter:
    """One exit event, any number of observers.

    Every future handed out by ``on_exit`` before ``fire`` resolves when it
    fires, in registration order; futures requested afterwards come back
    already resolved. ``claim`` is the launch gate: it succeeds exactly once.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: list[Future[ExitStatus]] = []
        self._status: ExitStatus | None = None
        self._fired = False
        self._claimed = False

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def status(self) -> ExitStatus | None:
        return self._status

    def claim(self) -> None:
        with self._lock:
            if self._claimed:
                raise AlreadyLaunchedError("Server already launched")
            self._claimed = True

    def on_exit(self) -> Future[ExitStatus]:
        fut: Future[ExitStatus] = Future()
        with self._lock:
            if not self._fired:
                self._pending.append(fut)
                return fut
            status = self._status
        fut.set_result(status)  # type: ignore[arg-type]
        return fut

    def add_callback(self, fn: Callable[[ExitStatus], object]) -> None:
        def _call(fut: Future[ExitStatus]) -> None:
            try:
                fn(fut.result())
            except Exception:
                logger.exception("exit callback %r failed", fn)

        self.on_exit().add_done_callback(_call)

    def fire(self, status: ExitStatus) -> int:
        """Resolve every pending observer with ``status``; returns how many."""
        with self._lock:
            if self._fired:
                raise RuntimeError("exit event already fired")
            self._fired = True
            self._status = status
            pending, self._pending = self._pending, []
        for fut in pending:
            fut.set_result(status)
        return len(pending)


__all__ = ["ExitWaiter"]
