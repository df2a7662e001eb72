"""Password-authenticated SSH command execution and PTY shells."""

from __future__ import annotations

import logging
import socket
import time

import paramiko

from chaintrace.config import Config
from chaintrace.errors import (
    AuthError,
    ChannelError,
    RemoteIOError,
    SSHConnectError,
)
from chaintrace.models import EXIT_STATUS_UNKNOWN, CommandOutput, Credentials

logger = logging.getLogger(__name__)


class InteractiveHandle:
    """An open PTY shell on a remote host.

    Not thread safe: callers serialize access (see SessionManager).
    """

    def __init__(
        self,
        host: str,
        transport: paramiko.Transport,
        channel: paramiko.Channel,
    ) -> None:
        self.host = host
        self._transport = transport
        self._channel = channel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def recv(self, size: int) -> bytes | None:
        """Read up to ``size`` bytes without blocking.

        Returns:
            The bytes read, ``b""`` at end of stream, or ``None`` when no
            data is available yet.
        """
        if self._channel.recv_ready():
            return self._channel.recv(size)
        if self._channel.closed or self._channel.eof_received:
            return b""
        return None

    def write(self, data: bytes) -> None:
        try:
            self._channel.sendall(data)
        except (OSError, paramiko.SSHException) as e:
            raise RemoteIOError(self.host, "write", str(e)) from e

    def resize(self, cols: int, rows: int) -> None:
        try:
            self._channel.resize_pty(width=cols, height=rows)
        except (OSError, paramiko.SSHException) as e:
            raise RemoteIOError(self.host, "resize", str(e)) from e

    def close(self, timeout: float = 5.0, poll_interval: float = 0.01) -> None:
        """Send end-of-stream, wait for the remote to close, release the transport."""
        if self._closed:
            return
        self._closed = True
        try:
            self._channel.shutdown_write()
            deadline = time.monotonic() + timeout
            while not self._channel.closed and time.monotonic() < deadline:
                time.sleep(poll_interval)
        except (OSError, EOFError, paramiko.SSHException) as e:
            logger.debug("EOF on %s failed: %s", self.host, e)
        finally:
            self._channel.close()
            self._transport.close()


class RemoteExecutor:
    """Runs commands on remote hosts, one fresh SSH connection per call."""

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or Config()

    def _connect(self, credentials: Credentials) -> paramiko.Transport:
        """Open TCP, run the SSH handshake and authenticate by password.

        Raises:
            SSHConnectError: TCP connect or handshake failed
            AuthError: password rejected or authentication incomplete
        """
        host = credentials.host
        timeout = self.config.connect_timeout
        logger.debug("Connecting to %s:%s", host, credentials.port)
        try:
            sock = socket.create_connection((host, credentials.port), timeout=timeout)
        except OSError as e:
            raise SSHConnectError(host, "connect", str(e)) from e

        transport = paramiko.Transport(sock)
        try:
            transport.start_client(timeout=timeout)
        except (OSError, EOFError, paramiko.SSHException) as e:
            transport.close()
            raise SSHConnectError(host, "handshake", str(e)) from e

        try:
            transport.auth_password(credentials.username, credentials.password)
        except (paramiko.AuthenticationException, paramiko.SSHException) as e:
            transport.close()
            raise AuthError(host, "auth", str(e)) from e

        # auth_password can return without raising while the server still
        # expects further authentication (partial success)
        if not transport.is_authenticated():
            transport.close()
            raise AuthError(host, "auth", f"authentication incomplete for {credentials.username}")
        return transport

    def _open_channel(
        self, transport: paramiko.Transport, host: str
    ) -> paramiko.Channel:
        try:
            return transport.open_session(timeout=self.config.connect_timeout)
        except (OSError, EOFError, paramiko.SSHException) as e:
            transport.close()
            raise ChannelError(host, "channel", str(e)) from e

    def _drain(
        self, channel: paramiko.Channel, host: str, timeout: float
    ) -> tuple[bytes, bytes]:
        """Read stdout and stderr side by side until the remote sends EOF.

        Both buffers are emptied on every pass so that neither stream can
        fill its window and stall the command.

        Raises:
            RemoteIOError: no data or EOF within ``timeout`` seconds, or a read failed
        """
        chunk_size = self.config.chunk_size
        stdout: list[bytes] = []
        stderr: list[bytes] = []
        deadline = time.monotonic() + timeout
        try:
            while True:
                # EOF follows all data, so read it before draining the buffers
                eof = channel.eof_received or channel.closed
                got_data = False
                if channel.recv_ready():
                    stdout.append(channel.recv(chunk_size))
                    got_data = True
                if channel.recv_stderr_ready():
                    stderr.append(channel.recv_stderr(chunk_size))
                    got_data = True

                if got_data:
                    deadline = time.monotonic() + timeout
                    continue
                if eof:
                    break
                if time.monotonic() >= deadline:
                    raise RemoteIOError(host, "read", f"timed out after {timeout}s")
                time.sleep(self.config.poll_interval)
        except (OSError, paramiko.SSHException) as e:
            raise RemoteIOError(host, "read", str(e)) from e
        return b"".join(stdout), b"".join(stderr)

    def execute(
        self,
        credentials: Credentials,
        command: str,
        timeout: float | None = None,
    ) -> CommandOutput:
        """Run one command to completion.

        Args:
            credentials: Host and login to use
            command: Shell command line to run remotely
            timeout: Read timeout in seconds (default: config.command_timeout)

        Returns:
            Captured stdout/stderr and the exit status (-1 if unknown).
        """
        host = credentials.host
        read_timeout = timeout if timeout is not None else self.config.command_timeout
        transport = self._connect(credentials)
        try:
            channel = self._open_channel(transport, host)
            channel.settimeout(read_timeout)
            try:
                channel.exec_command(command)
            except (OSError, EOFError, paramiko.SSHException) as e:
                raise ChannelError(host, "exec", str(e)) from e

            stdout, stderr = self._drain(channel, host, read_timeout)

            exit_status = EXIT_STATUS_UNKNOWN
            if channel.status_event.wait(read_timeout) and channel.exit_status_ready():
                exit_status = channel.recv_exit_status()
            channel.close()
        finally:
            transport.close()

        logger.debug("Command on %s exited with %s", host, exit_status)
        return CommandOutput(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_status=exit_status,
        )

    def open_interactive(
        self, credentials: Credentials, cols: int, rows: int
    ) -> InteractiveHandle:
        """Connect, request a PTY of the given size and start a login shell."""
        host = credentials.host
        transport = self._connect(credentials)
        channel = self._open_channel(transport, host)
        try:
            channel.get_pty(term=self.config.term, width=cols, height=rows)
        except (OSError, EOFError, paramiko.SSHException) as e:
            transport.close()
            raise ChannelError(host, "pty", str(e)) from e
        try:
            channel.invoke_shell()
        except (OSError, EOFError, paramiko.SSHException) as e:
            transport.close()
            raise ChannelError(host, "shell", str(e)) from e

        # Reads are polled via recv_ready; the timeout only bounds writes
        channel.settimeout(self.config.command_timeout)
        logger.info("Opened %dx%d shell on %s", cols, rows, host)
        return InteractiveHandle(host, transport, channel)

    def test_connection(self, credentials: Credentials) -> str:
        """Probe a host by running a trivial command."""
        self.execute(
            credentials,
            "echo 'Connection test successful'",
            timeout=self.config.probe_timeout,
        )
        return f"Successfully connected to {credentials.host} as {credentials.username}"

    def run_command(self, credentials: Credentials, command: str) -> str:
        """Run a command and return its output as one display string."""
        result = self.execute(credentials, command)
        if result.stderr and result.exit_status != 0:
            return f"{result.stdout}\n[stderr] {result.stderr}\n[exit: {result.exit_status}]"
        return result.stdout
