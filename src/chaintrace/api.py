"""Application context: the operations a UI or CLI layer calls."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor

from chaintrace.config import Config
from chaintrace.errors import ChainTraceError
from chaintrace.events import EventSink
from chaintrace.executor import RemoteExecutor
from chaintrace.logsearch import read_log_file, search_log_files, search_servers
from chaintrace.models import (
    CommandResult,
    Credentials,
    LogSearchResult,
    ServerConfig,
    TraceResult,
)
from chaintrace.session import SessionManager
from chaintrace.tracer import ChainTracer, ProgressCallback

logger = logging.getLogger(__name__)


class ChainTraceApp:
    """Owns the session registry, tracer and worker pool.

    Session operations other than ``start_session`` and all trace/search
    operations return result objects instead of raising.
    """

    def __init__(
        self,
        config: Config | None = None,
        sink: EventSink | None = None,
        executor: RemoteExecutor | None = None,
    ) -> None:
        self.config = config or Config()
        self.executor = executor or RemoteExecutor(self.config)
        self.sessions = SessionManager(self.executor, sink, self.config)
        self.tracer = ChainTracer(self.executor, self.config)
        self._pool = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="chaintrace"
        )

    def __enter__(self) -> ChainTraceApp:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        self.sessions.close_all()
        self._pool.shutdown(wait=True)

    # Interactive sessions

    def start_session(
        self, host: str, port: int, username: str, password: str, cols: int, rows: int
    ) -> str:
        """Open a shell. Setup failures raise RemoteError."""
        return self.sessions.start_session(
            Credentials(host, port, username, password), cols, rows
        )

    def send_input(self, session_id: str, data: str) -> CommandResult:
        try:
            self.sessions.send_input(session_id, data)
        except ChainTraceError as e:
            return CommandResult.failure(str(e))
        return CommandResult.success()

    def resize(self, session_id: str, cols: int, rows: int) -> CommandResult:
        try:
            self.sessions.resize(session_id, cols, rows)
        except ChainTraceError as e:
            return CommandResult.failure(str(e))
        return CommandResult.success()

    def close_session(self, session_id: str) -> CommandResult:
        try:
            self.sessions.close_session(session_id)
        except Exception as e:
            logger.warning("Error closing session %s: %s", session_id, e)
            return CommandResult.failure(str(e))
        return CommandResult.success()

    # Chain tracing

    def trace_server_chain(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        trace_id: str,
        log_path: str,
        known_servers: Iterable[ServerConfig | Credentials] = (),
        on_log: ProgressCallback | None = None,
    ) -> TraceResult:
        return self.tracer.trace(
            Credentials(host, port, username, password),
            trace_id,
            log_path,
            list(known_servers),
            on_log=on_log,
        )

    def submit_trace(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        trace_id: str,
        log_path: str,
        known_servers: Iterable[ServerConfig | Credentials] = (),
        on_log: ProgressCallback | None = None,
    ) -> Future[TraceResult]:
        """Run trace_server_chain on the worker pool."""
        # Copy now so the trace sees a fixed snapshot
        snapshot = list(known_servers)
        return self._pool.submit(
            self.trace_server_chain,
            host, port, username, password, trace_id, log_path, snapshot, on_log,
        )

    # One-shot helpers

    def search_log_files(
        self, server: ServerConfig, log_path: str, trace_id: str = ""
    ) -> LogSearchResult:
        return search_log_files(
            self.executor, server.credentials, server.id, log_path, trace_id
        )

    def search_servers(
        self, servers: Iterable[ServerConfig], log_path: str, trace_id: str = ""
    ) -> list[LogSearchResult]:
        """search_log_files on several servers in parallel, results in input order."""
        return search_servers(
            self.executor, servers, log_path, trace_id, self.config.max_workers
        )

    def read_log_file(
        self, credentials: Credentials, file_path: str, max_lines: int = 1000
    ) -> str:
        return read_log_file(self.executor, credentials, file_path, max_lines)

    def test_connection(self, credentials: Credentials) -> str:
        return self.executor.test_connection(credentials)

    def execute_command(self, credentials: Credentials, command: str) -> str:
        return self.executor.run_command(credentials, command)
