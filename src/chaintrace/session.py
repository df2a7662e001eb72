"""Registry of live interactive shells, each with its own reader thread."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from chaintrace.config import Config
from chaintrace.errors import SessionLockError, SessionNotFoundError
from chaintrace.events import EXIT, OUTPUT, EventSink, SessionEvent, deliver
from chaintrace.executor import InteractiveHandle, RemoteExecutor
from chaintrace.models import Credentials

logger = logging.getLogger(__name__)


class SessionState(Enum):
    STARTING = "starting"
    STREAMING = "streaming"
    CLOSING = "closing"
    REMOVED = "removed"


@dataclass
class Session:
    """A live shell. ``lock`` guards every use of ``handle``."""

    id: str
    host: str
    handle: InteractiveHandle
    state: SessionState = SessionState.STARTING
    lock: threading.Lock = field(default_factory=threading.Lock)
    shutdown: threading.Event = field(default_factory=threading.Event)
    reader: threading.Thread | None = None


class SessionManager:
    """Starts, feeds, resizes and closes interactive sessions.

    Output is pushed to ``sink`` from one background reader thread per
    session. The manager holds no global state; the application creates
    one and passes it to whatever drives the sessions.
    """

    def __init__(
        self,
        executor: RemoteExecutor,
        sink: EventSink | None = None,
        config: Config | None = None,
    ) -> None:
        self.config = config or executor.config
        self._executor = executor
        self._sink = sink
        self._sessions: dict[str, Session] = {}
        # Held only for dict lookups/inserts/pops, never during channel I/O
        self._registry_lock = threading.Lock()

    def start_session(self, credentials: Credentials, cols: int, rows: int) -> str:
        """Open a shell and start streaming its output.

        Raises:
            RemoteError: any connect/auth/PTY/shell failure
        """
        handle = self._executor.open_interactive(credentials, cols, rows)
        session = Session(id=str(uuid.uuid4()), host=credentials.host, handle=handle)
        with self._registry_lock:
            self._sessions[session.id] = session

        session.reader = threading.Thread(
            target=self._reader_loop,
            args=(session,),
            name=f"session-reader-{session.id[:8]}",
            daemon=True,
        )
        session.state = SessionState.STREAMING
        session.reader.start()
        logger.info("Session %s started on %s", session.id, session.host)
        return session.id

    def get(self, session_id: str) -> Session:
        with self._registry_lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def has_session(self, session_id: str) -> bool:
        with self._registry_lock:
            return session_id in self._sessions

    def list_sessions(self) -> list[str]:
        with self._registry_lock:
            return list(self._sessions)

    @contextmanager
    def _locked(self, session: Session) -> Iterator[InteractiveHandle]:
        if not session.lock.acquire(timeout=self.config.lock_timeout):
            raise SessionLockError(session.id)
        try:
            yield session.handle
        finally:
            session.lock.release()

    def send_input(self, session_id: str, data: str | bytes) -> None:
        """Write keystrokes to the session's shell.

        Raises:
            SessionNotFoundError: unknown session id
            SessionLockError: channel lock not acquired in time
            RemoteIOError: the write failed
        """
        session = self.get(session_id)
        payload = data.encode("utf-8") if isinstance(data, str) else data
        with self._locked(session) as handle:
            handle.write(payload)

    def resize(self, session_id: str, cols: int, rows: int) -> None:
        session = self.get(session_id)
        with self._locked(session) as handle:
            handle.resize(cols, rows)

    def close_session(self, session_id: str) -> None:
        """Stop the reader and close the shell. Unknown ids are ignored."""
        with self._registry_lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return

        session.state = SessionState.CLOSING
        session.shutdown.set()
        # The reader's recv never blocks and it exits once shutdown is set,
        # so the lock is always released eventually
        while not session.lock.acquire(timeout=self.config.lock_timeout):
            logger.warning("Still waiting for the lock to close session %s", session_id)
        try:
            session.handle.close(
                timeout=self.config.close_timeout,
                poll_interval=self.config.poll_interval,
            )
        finally:
            session.lock.release()
        session.state = SessionState.REMOVED
        logger.info("Session %s closed", session_id)

    def close_all(self) -> None:
        for session_id in self.list_sessions():
            self.close_session(session_id)

    def _reader_loop(self, session: Session) -> None:
        """Poll the channel and forward output until EOF, error or shutdown."""
        chunk_size = self.config.chunk_size
        while not session.shutdown.is_set():
            with session.lock:
                # close_session may have run while we waited for the lock
                if session.shutdown.is_set():
                    break
                try:
                    chunk = session.handle.recv(chunk_size)
                except Exception as e:
                    logger.debug("Reader for %s stopped: %s", session.id, e)
                    break

            if chunk is None:
                session.shutdown.wait(self.config.poll_interval)
                continue

            if not chunk:
                deliver(self._sink, SessionEvent(EXIT, session.id))
                break

            # Terminal output may split or contain invalid UTF-8
            text = chunk.decode("utf-8", errors="replace")
            deliver(self._sink, SessionEvent(OUTPUT, session.id, text))

        logger.debug("Reader for %s finished", session.id)
