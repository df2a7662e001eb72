"""Pytest configuration and fixtures."""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable

import pytest

from chaintrace.config import Config
from chaintrace.errors import SSHConnectError
from chaintrace.events import QueueSink
from chaintrace.models import CommandOutput, Credentials


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class FakeHandle:
    """Stands in for InteractiveHandle: chunks are fed from the test."""

    def __init__(self, host: str = "10.0.0.1") -> None:
        self.host = host
        self.written: list[bytes] = []
        self.sizes: list[tuple[int, int]] = []
        self.close_calls = 0
        self.recv_error: Exception | None = None
        self._chunks: queue.Queue[bytes] = queue.Queue()
        self._eof = threading.Event()

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    def feed(self, data: bytes) -> None:
        self._chunks.put(data)

    def finish(self) -> None:
        self._eof.set()

    def recv(self, size: int) -> bytes | None:
        if self.recv_error is not None:
            raise self.recv_error
        try:
            return self._chunks.get_nowait()[:size]
        except queue.Empty:
            return b"" if self._eof.is_set() else None

    def write(self, data: bytes) -> None:
        self.written.append(data)

    def resize(self, cols: int, rows: int) -> None:
        self.sizes.append((cols, rows))

    def close(self, timeout: float = 5.0, poll_interval: float = 0.01) -> None:
        self.close_calls += 1


class FakeShellExecutor:
    """Executor whose open_interactive hands out FakeHandles."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.handles: list[FakeHandle] = []
        self.fail_with: Exception | None = None

    def open_interactive(self, credentials: Credentials, cols: int, rows: int) -> FakeHandle:
        if self.fail_with is not None:
            raise self.fail_with
        handle = FakeHandle(credentials.host)
        self.handles.append(handle)
        return handle


class FakeTraceExecutor:
    """Executor answering chain and fallback greps from per-host tables.

    ``primary`` and ``fallback`` map host -> stdout text, or an exception
    to raise. Unknown hosts raise a connection error.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.primary: dict[str, str | Exception] = {}
        self.fallback: dict[str, str | Exception] = {}
        self.calls: list[tuple[str, str]] = []

    def execute(
        self, credentials: Credentials, command: str, timeout: float | None = None
    ) -> CommandOutput:
        kind = "fallback" if self.config.app_log_pattern in command else "primary"
        self.calls.append((credentials.host, kind))
        table = self.fallback if kind == "fallback" else self.primary
        answer = table.get(credentials.host)
        if answer is None:
            if kind == "fallback":
                return CommandOutput(stdout="", exit_status=0)
            raise SSHConnectError(credentials.host, "connect", "Connection refused")
        if isinstance(answer, Exception):
            raise answer
        return CommandOutput(stdout=answer, exit_status=0)

    def hosts_contacted(self, kind: str = "primary") -> list[str]:
        return [host for host, k in self.calls if k == kind]


@pytest.fixture
def config() -> Config:
    """Configuration with short timeouts for fast tests."""
    return Config(
        poll_interval=0.005,
        lock_timeout=0.2,
        close_timeout=0.1,
        servers_file="/tmp/test_chaintrace_servers.json",
        app_name="TestChainTrace",
    )


@pytest.fixture
def creds() -> Credentials:
    return Credentials(host="10.0.0.1", port=22, username="ops", password="secret")


@pytest.fixture
def sink() -> QueueSink:
    return QueueSink()


@pytest.fixture
def shell_executor(config: Config) -> FakeShellExecutor:
    return FakeShellExecutor(config)


@pytest.fixture
def trace_executor(config: Config) -> FakeTraceExecutor:
    return FakeTraceExecutor(config)
