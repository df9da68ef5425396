"""End-to-end lifecycle tests: REAL child servers, sockets and signals (NO MOCKS)."""
from __future__ import annotations

import http.client
import io
import os
import socket
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from server_starter.core.exceptions import (
    AlreadyLaunchedError,
    LaunchError,
    NotLaunchedError,
    ReadinessTimeout,
    ServerStateError,
)
from server_starter.core.process.inspector import is_process_alive
from server_starter.core.server import (
    ExitStatus,
    ProcessSupervisor,
    ServerHandle,
    ServerState,
    server_lifecycle,
)

posix_only = pytest.mark.skipif(os.name != "posix", reason="descriptor handoff and signals are POSIX-only")

CLOSE_TIMEOUT = 10


def fetch(port: int, path: str = "/") -> tuple[int, str, bytes]:
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=10)
    try:
        conn.request("GET", path)
        resp = conn.getresponse()
        return resp.status, resp.getheader("Content-Type"), resp.read()
    finally:
        conn.close()


def assert_refused(port: int) -> None:
    with pytest.raises(ConnectionRefusedError):
        socket.create_connection(("127.0.0.1", port), timeout=2).close()


@posix_only
def test_descriptor_handoff_serves_then_stops(server_starter, support_script):
    server = server_starter()
    port = server.port

    server.launch(sys.executable, [support_script("hello_server.py")])

    assert server.state is ServerState.LAUNCHED
    assert server.listen_address == "http://*?fd=3"
    assert server.listener.handed_off
    assert fetch(port) == (200, "text/plain", b"Hello World!")

    status = server.close(timeout=CLOSE_TIMEOUT)

    assert status == ExitStatus(exit_code=None, exit_signal="SIGINT")
    assert server.state is ServerState.EXITED
    assert server.pid is None
    assert_refused(port)


@posix_only
def test_descriptor_handoff_is_ready_before_child_accepts(server_starter, support_script):
    server = server_starter()
    started = time.monotonic()

    server.launch(sys.executable, [support_script("hello_server.py"), "1000"])

    # No probing in descriptor mode: launch returns while the child still sleeps.
    assert time.monotonic() - started < 1.0
    assert fetch(server.port)[2] == b"Hello World!"
    server.close(timeout=CLOSE_TIMEOUT)


@posix_only
def test_concurrent_descriptor_handoffs_each_serve_their_own_port(server_starter, support_script):
    servers = [server_starter() for _ in range(4)]

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(lambda s: s.launch(sys.executable, [support_script("hello_server.py")]), servers))

    assert len({s.port for s in servers}) == 4
    assert len({s.pid for s in servers}) == 4
    for server in servers:
        assert server.listen_address == "http://*?fd=3"
        assert fetch(server.port) == (200, "text/plain", b"Hello World!")

    with ThreadPoolExecutor(max_workers=4) as pool:
        statuses = list(pool.map(lambda s: s.close(timeout=CLOSE_TIMEOUT), servers))
    assert statuses == [ExitStatus(exit_signal="SIGINT")] * 4
    for server in servers:
        assert_refused(server.port)


def test_port_rebind_serves_then_stops(server_starter, support_script):
    server = server_starter()
    port = server.port

    server.launch(sys.executable, [support_script("hello_server.py")], allow_descriptor_handoff=False)

    assert server.listen_address == f"http://127.0.0.1:{port}"
    assert not server.listener.is_open
    assert not server.listener.handed_off
    assert fetch(port) == (200, "text/plain", b"Hello World!")

    server.close(timeout=CLOSE_TIMEOUT)
    assert server.pid is None
    assert_refused(port)


def test_port_rebind_waits_for_slow_start(server_starter, support_script):
    server = server_starter()
    started = time.monotonic()

    server.launch(
        sys.executable,
        [support_script("hello_server.py"), "1000"],
        {"allow_descriptor_handoff": False},
    )

    assert time.monotonic() - started >= 1.0
    assert fetch(server.port)[2] == b"Hello World!"
    server.close(timeout=CLOSE_TIMEOUT)


def test_port_rebind_timeout_leaves_child_running(server_starter, support_script):
    server = server_starter()
    port = server.port

    with pytest.raises(ReadinessTimeout):
        server.launch(
            sys.executable,
            [support_script("hello_server.py"), "3000"],
            allow_descriptor_handoff=False,
            connect_timeout_ms=500,
        )

    assert server.state is ServerState.LAUNCHED
    assert server.pid is not None
    assert_refused(port)

    status = server.close(timeout=CLOSE_TIMEOUT)
    assert server.exited
    if os.name == "posix":
        assert status.exit_signal == "SIGINT"


def test_second_launch_raises(server_starter, support_script):
    server = server_starter()
    server.launch(sys.executable, [support_script("hello_server.py")], allow_descriptor_handoff=False)

    with pytest.raises(AlreadyLaunchedError):
        server.launch(sys.executable, [support_script("hello_server.py")])

    server.close(timeout=CLOSE_TIMEOUT)
    with pytest.raises(AlreadyLaunchedError):
        server.launch(sys.executable, [support_script("hello_server.py")])


def test_close_before_launch_raises(server_starter):
    server = server_starter()
    with pytest.raises(NotLaunchedError):
        server.close()
    with pytest.raises(NotLaunchedError):
        server.wait(timeout=0)


def test_launch_requires_listen():
    with pytest.raises(ServerStateError, match="listen"):
        ServerHandle().launch(sys.executable, ["-c", "pass"])


@posix_only
def test_concurrent_closes_resolve_only_after_exit(server_starter, support_script):
    server = server_starter()
    server.launch(
        sys.executable,
        [support_script("slow_exit_server.py"), "500"],
        allow_descriptor_handoff=False,
    )
    pid = server.pid
    started = time.monotonic()

    def close_and_observe(_i: int) -> tuple[ExitStatus, float, bool]:
        status = server.close(timeout=CLOSE_TIMEOUT)
        return status, time.monotonic() - started, is_process_alive(pid)

    with ThreadPoolExecutor(max_workers=4) as pool:
        observed = list(pool.map(close_and_observe, range(4)))

    statuses = {status for status, _elapsed, _alive in observed}
    assert statuses == {ExitStatus(exit_code=0)}
    for _status, elapsed, alive in observed:
        # The child keeps running for 500ms after SIGINT.
        assert elapsed >= 0.45
        assert not alive
    assert server.exit_status == ExitStatus(exit_code=0)
    # After exit, close returns at once without signalling.
    assert server.close(timeout=0) == ExitStatus(exit_code=0)
    # After exit, close returns at once without signalling.
    assert server.close(timeout=0) == results[0]


def test_missing_executable_raises_launch_error(server_starter, tmp_path):
    server = server_starter()
    errors: list[BaseException] = []
    server.on("error", errors.append)

    with pytest.raises(LaunchError):
        server.launch(str(tmp_path / "no-such-server"))

    assert server.state is ServerState.EXITED
    assert server.exit_status == ExitStatus(exit_code=None, exit_signal=None)
    assert not server.listener.is_open
    assert len(errors) == 1 and isinstance(errors[0], LaunchError)
    assert server.close() == ExitStatus()


@posix_only
def test_output_events_and_exit_code(server_starter):
    server = server_starter()
    stdout: list[bytes] = []
    stderr: list[bytes] = []
    exits: list[ExitStatus] = []
    exited = threading.Event()
    server.on("stdout", stdout.append)
    server.on("stderr", stderr.append)
    server.on("exit", lambda status: (exits.append(status), exited.set()))

    server.launch(
        sys.executable,
        ["-c", "import sys; sys.stdout.write('out\\n'); sys.stderr.write('err\\n'); sys.exit(3)"],
        forward_stderr=False,
    )
    status = server.wait(timeout=CLOSE_TIMEOUT)
    # The exit event is emitted right after waiters are resolved.
    assert exited.wait(timeout=CLOSE_TIMEOUT)

    assert status == ExitStatus(exit_code=3)
    assert b"".join(stdout) == b"out\n"
    assert b"".join(stderr) == b"err\n"
    assert exits == [status]


@posix_only
def test_environment_and_forwarding(support_script):
    out = io.StringIO()
    server = ServerHandle(supervisor=ProcessSupervisor(stdout=out)).listen()
    with server:
        server.launch(
            sys.executable,
            ["-c", "import os; print(os.environ['GREETING'], os.environ['SERVER_STARTER_LISTEN'])"],
            forward_stdout=True,
            environment={"GREETING": "hi"},
        )
        server.wait(timeout=CLOSE_TIMEOUT)

    assert out.getvalue() == "hi http://*?fd=3\n"


@posix_only
def test_environment_without_inheritance(monkeypatch):
    monkeypatch.setenv("PARENT_ONLY_MARKER", "1")
    chunks: list[bytes] = []
    server = ServerHandle().listen()
    server.on("stdout", chunks.append)
    with server:
        server.launch(
            sys.executable,
            ["-c", "import os; print('PARENT_ONLY_MARKER' in os.environ, os.environ['SERVER_STARTER_LISTEN'])"],
            inherit_environment=False,
        )
        server.wait(timeout=CLOSE_TIMEOUT)

    assert b"".join(chunks).decode().split() == ["False", "http://*?fd=3"]


def test_server_lifecycle_context_manager(support_script):
    with server_lifecycle(
        sys.executable,
        [support_script("hello_server.py")],
        allow_descriptor_handoff=False,
    ) as server:
        assert fetch(server.port)[2] == b"Hello World!"
        assert server.pid is not None

    assert server.state is ServerState.EXITED
    assert_refused(server.port)


def test_exit_callbacks_and_futures(server_starter, support_script):
    server = server_starter()
    seen: list[ExitStatus] = []
    server.launch(sys.executable, [support_script("hello_server.py")], allow_descriptor_handoff=False)
    server.add_exit_callback(seen.append)
    fut = server.on_exit()

    status = server.close(timeout=CLOSE_TIMEOUT)

    assert fut.result(timeout=CLOSE_TIMEOUT) == status
    assert seen == [status]
