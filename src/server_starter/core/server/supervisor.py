from __future__ import annotations

import codecs
import contextlib
import logging
import os
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, TextIO

from server_starter.core.exceptions import LaunchError
from server_starter.core.process.inspector import is_process_alive

from .models import ExitStatus
from .readiness import INHERITED_FD

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 65536
# Grandchildren can hold the pipes open after the child exits.
_DRAIN_TIMEOUT_SECONDS = 2.0
# preexec_fn runs between fork and exec while pump and watcher threads of
# other children are live; spawns that need it go through one at a time and
# the hook itself only makes dup2/fcntl calls.
_HANDOFF_SPAWN_LOCK = threading.Lock()

ChunkCallback = Callable[[bytes], Any]
ExitCallback = Callable[[ExitStatus], Any]


@dataclass
class SpawnConfig:
    env: Optional[dict[str, str]] = None
    cwd: Optional[str] = None
    forward_stdout: bool = False
    forward_stderr: bool = True
    inherit_descriptor: Optional[int] = None
    on_stdout: Optional[ChunkCallback] = None
    on_stderr: Optional[ChunkCallback] = None
    on_exit: Optional[ExitCallback] = None


@dataclass
class ProcessRecord:
    pid: int
    popen: subprocess.Popen
    argv: list[str]
    exit_code: Optional[int] = None
    exit_signal: Optional[str] = None
    threads: list[threading.Thread] = field(default_factory=list)

    @property
    def stdout(self):
        return self.popen.stdout

    @property
    def stderr(self):
        return self.popen.stderr

    @property
    def exited(self) -> bool:
        return self.exit_code is not None or self.exit_signal is not None


def exit_status_from_returncode(returncode: int) -> ExitStatus:
    if returncode < 0 and os.name == "posix":
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = f"SIG{-returncode}"
        return ExitStatus(exit_code=None, exit_signal=name)
    return ExitStatus(exit_code=returncode, exit_signal=None)


def _place_inherited_descriptor(fd: int) -> Callable[[], None]:
    """Build a pre-exec hook that puts ``fd`` at ``INHERITED_FD`` in the child."""

    def _hook() -> None:
        if fd == INHERITED_FD:
            os.set_inheritable(fd, True)
        else:
            os.dup2(fd, INHERITED_FD, inheritable=True)

    return _hook


def _popen_kwargs(config: SpawnConfig) -> dict[str, Any]:
    if config.inherit_descriptor is None:
        return {}
    if os.name != "posix":
        raise LaunchError("Descriptor inheritance is not supported on this platform")
    # close_fds would close the descriptor right after the hook placed it.
    return {
        "close_fds": False,
        "preexec_fn": _place_inherited_descriptor(config.inherit_descriptor),
    }


class ProcessSupervisor:
    """Spawns one child, pumps its output and reports its exit exactly once.

    ``stdout``/``stderr`` are the forwarding targets; None means whatever
    ``sys.stdout``/``sys.stderr`` are at write time.
    """

    def __init__(self, *, stdout: TextIO | None = None, stderr: TextIO | None = None) -> None:
        self._stdout = stdout
        self._stderr = stderr

    def _target(self, name: str) -> TextIO:
        if name == "stdout":
            return self._stdout or sys.stdout
        return self._stderr or sys.stderr

    def spawn(self, command: str, args: Sequence[str], config: SpawnConfig) -> ProcessRecord:
        """Start ``command`` with ``args``.

        Raises:
            LaunchError: the executable is missing, not executable, or exec failed.
        """
        argv = [str(command), *(str(a) for a in args)]
        extra = _popen_kwargs(config)
        try:
            with _HANDOFF_SPAWN_LOCK if extra else contextlib.nullcontext():
                popen = subprocess.Popen(  # noqa: S603
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    env=config.env,
                    cwd=config.cwd,
                    **extra,
                )
        except (OSError, subprocess.SubprocessError) as exc:
            raise LaunchError(
                f"Cannot start {argv[0]}: {exc}",
                command=argv[0],
                errno=getattr(exc, "errno", None),
            ) from exc

        record = ProcessRecord(pid=popen.pid, popen=popen, argv=argv)
        logger.debug("spawned pid %s: %s", popen.pid, argv)

        pumps = [
            self._start_thread(
                f"server-starter-stdout-{popen.pid}",
                self._pump,
                popen.stdout,
                "stdout" if config.forward_stdout else None,
                config.on_stdout,
            ),
            self._start_thread(
                f"server-starter-stderr-{popen.pid}",
                self._pump,
                popen.stderr,
                "stderr" if config.forward_stderr else None,
                config.on_stderr,
            ),
        ]
        record.threads.extend(pumps)
        record.threads.append(
            self._start_thread(
                f"server-starter-exit-{popen.pid}",
                self._watch,
                record,
                pumps,
                config.on_exit,
            )
        )
        return record

    def send_signal(self, record: ProcessRecord, sig: int = signal.SIGINT) -> bool:
        """Deliver ``sig`` to the child. Returns False when it is already gone."""
        if record.exited or not is_process_alive(record.pid):
            logger.debug("pid %s already gone, not sending %s", record.pid, sig)
            return False
        try:
            if os.name == "nt" and sig not in (
                getattr(signal, "CTRL_C_EVENT", None),
                getattr(signal, "CTRL_BREAK_EVENT", None),
            ):
                record.popen.terminate()
            else:
                record.popen.send_signal(sig)
        except ProcessLookupError:
            return False
        logger.debug("sent %s to pid %s", sig, record.pid)
        return True

    @staticmethod
    def _start_thread(name: str, target: Callable[..., Any], *args: Any) -> threading.Thread:
        t = threading.Thread(target=target, args=args, name=name, daemon=True)
        t.start()
        return t

    def _pump(self, stream, forward: str | None, callback: ChunkCallback | None) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = stream.read1(_CHUNK_SIZE)
                if not chunk:
                    break
                if forward is not None:
                    self._forward(forward, decoder.decode(chunk))
                if callback is not None:
                    try:
                        callback(chunk)
                    except Exception:
                        logger.warning("%s callback failed", forward or "stream", exc_info=True)
            if forward is not None:
                self._forward(forward, decoder.decode(b"", final=True))
        except (OSError, ValueError) as exc:
            logger.debug("stream pump stopped: %s", exc)
        finally:
            stream.close()

    def _forward(self, name: str, text: str) -> None:
        if not text:
            return
        target = self._target(name)
        try:
            target.write(text)
            target.flush()
        except (OSError, ValueError) as exc:
            logger.debug("cannot forward child %s: %s", name, exc)

    def _watch(self, record: ProcessRecord, pumps: list[threading.Thread], on_exit: ExitCallback | None) -> None:
        returncode = record.popen.wait()
        for t in pumps:
            t.join(timeout=_DRAIN_TIMEOUT_SECONDS)
        status = exit_status_from_returncode(returncode)
        record.exit_code = status.exit_code
        record.exit_signal = status.exit_signal
        logger.debug("pid %s exited: code=%s signal=%s", record.pid, status.exit_code, status.exit_signal)
        if on_exit is not None:
            try:
                on_exit(status)
            except Exception:
                logger.exception("exit handler for pid %s failed", record.pid)


__all__ = [
    "ProcessRecord",
    "ProcessSupervisor",
    "SpawnConfig",
    "exit_status_from_returncode",
]
