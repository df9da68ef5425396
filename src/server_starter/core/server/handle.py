from __future__ import annotations

import logging
import signal
import threading
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from server_starter.core.config.domains import LaunchConfig, resolve_signal
from server_starter.core.exceptions import (
    AlreadyLaunchedError,
    LaunchError,
    NotLaunchedError,
    ReadinessError,
    ServerStateError,
)
from server_starter.core.process.inspector import describe_process

from . import events
from .exit_waiter import ExitWaiter
from .listener import Listener, allocate
from .models import ExitStatus, LaunchOptions, ServerState
from .readiness import format_url, select_readiness
from .supervisor import ProcessRecord, ProcessSupervisor, SpawnConfig

logger = logging.getLogger(__name__)

SignalLike = Union[int, str, signal.Signals]
_UNSET: Any = object()


class ServerHandle(events.EventEmitter):
    """One managed child server: allocate, launch, close.

    States move ``IDLE -> LISTENING -> LAUNCHED -> EXITED`` and never back.
    A handle supervises at most one process; ``launch`` succeeds once.

    Events (see ``on``): ``"error"`` (exception), ``"stdout"`` / ``"stderr"``
    (raw bytes chunks), ``"exit"`` (``ExitStatus``).
    """

    def __init__(
        self,
        port: int = 0,
        address: str | None = None,
        *,
        scheme: str = "http",
        repo_root: Optional[Path] = None,
        supervisor: ProcessSupervisor | None = None,
    ) -> None:
        super().__init__()
        self.requested_port = int(port or 0)
        self.requested_address = address
        self.scheme = scheme
        self.repo_root = repo_root
        self.listen_address: str | None = None

        self._supervisor = supervisor or ProcessSupervisor()
        self._listener: Listener | None = None
        self._record: ProcessRecord | None = None
        self._state = ServerState.IDLE
        self._exit_waiter = ExitWaiter()
        self._state_lock = threading.Lock()

    # ---- properties --------------------------------------------------------

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def port(self) -> int | None:
        return self._listener.port if self._listener is not None else None

    @property
    def address(self) -> str | None:
        return self.requested_address

    @property
    def listener(self) -> Listener | None:
        return self._listener

    @property
    def pid(self) -> int | None:
        """PID of the running child, None before launch and after exit."""
        record = self._record
        return record.pid if record is not None else None

    @property
    def exited(self) -> bool:
        return self._state is ServerState.EXITED

    @property
    def exit_status(self) -> ExitStatus | None:
        return self._exit_waiter.status

    def url(self) -> str:
        if self.port is None:
            raise ServerStateError("Server has no port before listen()")
        return format_url(self.scheme, self.requested_address, self.port)

    # ---- lifecycle ---------------------------------------------------------

    def listen(self) -> ServerHandle:
        """Bind the listening socket. Raises ``BindError`` and stays IDLE on failure."""
        if self._state is not ServerState.IDLE:
            raise ServerStateError(f"listen() requires an idle server, state is {self._state.value}")
        self._listener = allocate(self.requested_port, self.requested_address)
        self._state = ServerState.LISTENING
        logger.debug("server listening on %s", self.url())
        return self

    def launch(
        self,
        command: str,
        args: Sequence[Any] = (),
        options: LaunchOptions | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> ServerHandle:
        """Start ``command`` and return once it accepts connections.

        ``options`` may be a ``LaunchOptions`` or a raw mapping; missing keys
        and ``overrides`` fall back to the configured launch defaults.

        Raises:
            AlreadyLaunchedError: this handle was launched before.
            ServerStateError: ``listen()`` was not called.
            LaunchError: the child could not be started.
            ReadinessTimeout: port probing timed out (the child keeps running).
            ConnectProbeError: port probing failed for another reason.
        """
        if self._state is ServerState.IDLE:
            raise ServerStateError("launch() requires listen() first")
        if self._state is not ServerState.LISTENING:
            raise AlreadyLaunchedError("Server already launched")
        # Claimed first: a launch that fails on its options still counts.
        self._exit_waiter.claim()
        resolved = self._resolve_options(options, overrides)

        listener = self._listener
        assert listener is not None

        mode = select_readiness(listener, resolved)
        self.listen_address = mode.listen_address(self.scheme, self.requested_address, listener.port)
        spawn_config = SpawnConfig(
            env=resolved.child_environment(mode.announcement(self.listen_address, listener.port)),
            cwd=resolved.cwd,
            forward_stdout=resolved.forward_stdout,
            forward_stderr=resolved.forward_stderr,
            inherit_descriptor=mode.descriptor,
            on_stdout=lambda chunk: self.emit(events.STDOUT, chunk),
            on_stderr=lambda chunk: self.emit(events.STDERR, chunk),
            on_exit=self._handle_exit,
        )

        started_at = time.monotonic()
        mode.before_spawn(listener)
        with self._state_lock:
            try:
                self._record = self._supervisor.spawn(command, list(args), spawn_config)
            except LaunchError as exc:
                self._fail_launch(exc)
                raise
            self._state = ServerState.LAUNCHED
        logger.info("launched %s (pid %s) for %s", command, self.pid, self.listen_address)

        try:
            mode.await_ready(listener, started_at=started_at)
        except ReadinessError:
            pid = self.pid
            logger.warning(
                "server pid %s on port %s not ready; it is left running until close(): %s",
                pid,
                listener.port,
                describe_process(pid) if pid is not None else {},
            )
            raise
        logger.info("server ready at %s after %.3fs", self.url(), time.monotonic() - started_at)
        return self

    def close(self, sig: SignalLike | None = None, timeout: Any = _UNSET) -> ExitStatus:
        """Signal the child and wait for it to exit.

        ``sig`` defaults to the configured signal (SIGINT). ``timeout`` is in
        seconds; omitted means the configured ``close_timeout_seconds``, None
        waits forever. Returns immediately when the child already exited.

        Raises:
            NotLaunchedError: ``launch`` was never called.
            concurrent.futures.TimeoutError: the child outlived ``timeout``.
        """
        if self._state in (ServerState.IDLE, ServerState.LISTENING):
            raise NotLaunchedError("Server was never launched")

        resolved_sig = resolve_signal(sig) if sig is not None else self._launch_config().default_signal
        wait_for = self._launch_config().close_timeout_seconds if timeout is _UNSET else timeout

        fut = self._exit_waiter.on_exit()
        record = self._record
        if record is not None and not fut.done():
            self._supervisor.send_signal(record, resolved_sig)
        return fut.result(timeout=wait_for)

    def on_exit(self) -> Future[ExitStatus]:
        """One-shot exit notification; already resolved once the child exited."""
        return self._exit_waiter.on_exit()

    def wait(self, timeout: float | None = None) -> ExitStatus:
        """Block until the child exits, without signalling it."""
        if self._state in (ServerState.IDLE, ServerState.LISTENING):
            raise NotLaunchedError("Server was never launched")
        return self._exit_waiter.on_exit().result(timeout=timeout)

    def add_exit_callback(self, fn: Callable[[ExitStatus], object]) -> None:
        self._exit_waiter.add_callback(fn)

    # ---- internals ---------------------------------------------------------

    def _launch_config(self) -> LaunchConfig:
        return LaunchConfig(repo_root=self.repo_root)

    def _resolve_options(
        self,
        options: LaunchOptions | Mapping[str, Any] | None,
        overrides: Mapping[str, Any],
    ) -> LaunchOptions:
        if isinstance(options, LaunchOptions):
            base = options
        else:
            base = LaunchOptions.from_raw(options, base=self._launch_config().default_options())
        if overrides:
            base = LaunchOptions.from_raw(overrides, base=base)
        return base

    def _fail_launch(self, exc: LaunchError) -> None:
        # Called with _state_lock held; no process will ever report an exit.
        logger.warning("launch failed: %s", exc)
        if self._listener is not None:
            self._listener.close()
        self._state = ServerState.EXITED
        self._exit_waiter.fire(ExitStatus())
        self.emit(events.ERROR, exc)

    def _handle_exit(self, status: ExitStatus) -> None:
        with self._state_lock:
            self._record = None
            self._state = ServerState.EXITED
        logger.info("server on port %s exited: code=%s signal=%s", self.port, status.exit_code, status.exit_signal)
        self._exit_waiter.fire(status)
        self.emit(events.EXIT, status)

    # ---- context manager ---------------------------------------------------

    def __enter__(self) -> ServerHandle:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._state is ServerState.LAUNCHED:
            self.close()
        elif self._listener is not None:
            self._listener.close()

    def __repr__(self) -> str:
        return f"<ServerHandle {self._state.value} port={self.port} pid={self.pid}>"


__all__ = ["ServerHandle"]
