"""Exception types raised by chaintrace."""

from __future__ import annotations


class ChainTraceError(Exception):
    """Base class for all chaintrace errors."""


class RemoteError(ChainTraceError):
    """A failure talking to a remote host.

    ``stage`` names the step that failed (connect, handshake, auth, channel,
    exec, pty, shell, read, write, resize) so callers can report it precisely.
    """

    def __init__(self, host: str, stage: str, message: str) -> None:
        super().__init__(f"{stage} failed on {host}: {message}")
        self.host = host
        self.stage = stage
        self.message = message


class SSHConnectError(RemoteError):
    """TCP connection or SSH handshake failed."""


class AuthError(RemoteError):
    """Credentials rejected or authentication left incomplete."""


class ChannelError(RemoteError):
    """Opening a channel, running a command, or setting up a PTY/shell failed."""


class RemoteIOError(RemoteError):
    """Read, write or timeout on an established channel."""


class ConfigurationError(ChainTraceError):
    """Local configuration is missing or inconsistent."""


class SessionError(ChainTraceError):
    """Base class for interactive session lookups and locking."""

    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(message)
        self.session_id = session_id


class SessionNotFoundError(SessionError):
    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"Session not found: {session_id}")


class SessionLockError(SessionError):
    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"Lock failed for session: {session_id}")
