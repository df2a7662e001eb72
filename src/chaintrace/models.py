"""Data records passed between the executor, tracer, store and callers."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

# Exit status reported when the remote side never sent one
EXIT_STATUS_UNKNOWN = -1


@dataclass(frozen=True)
class Credentials:
    """Where and how to log in to one host. The password is plaintext."""

    host: str
    port: int = 22
    username: str = ""
    password: str = field(default="", repr=False)

    @property
    def key(self) -> str:
        """Identity used for keyring entries and log messages."""
        return f"{self.username}@{self.host}:{self.port}"


@dataclass
class ServerConfig:
    """One entry of the server list."""

    host: str
    port: int = 22
    username: str = ""
    password: str = field(default="", repr=False)
    description: str = ""
    environment: str = ""
    status: str = "unknown"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def credentials(self) -> Credentials:
        return Credentials(self.host, self.port, self.username, self.password)

    def to_record(self) -> dict[str, Any]:
        """Serializable form without the password."""
        record = asdict(self)
        record.pop("password")
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any], password: str = "") -> ServerConfig:
        return cls(
            id=str(record.get("id") or uuid.uuid4()),
            host=str(record["host"]),
            port=int(record.get("port", 22)),
            username=str(record.get("username", "")),
            password=password,
            description=str(record.get("description", "")),
            environment=str(record.get("environment", "")),
            status=str(record.get("status", "unknown")),
        )


@dataclass
class CommandOutput:
    """Captured result of one remote command."""

    stdout: str
    stderr: str = ""
    exit_status: int = EXIT_STATUS_UNKNOWN


@dataclass
class CommandResult:
    """Outcome of a session operation, returned across the API boundary."""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> CommandResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, message: str) -> CommandResult:
        return cls(ok=False, error=message)


@dataclass
class ChainNode:
    """One matched log entry and the downstream entries found from it."""

    filename: str
    dus_id: str
    ip: str
    log_path: str
    children: list[ChainNode] = field(default_factory=list)
    next_hop: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "dus_id": self.dus_id,
            "ip": self.ip,
            "log_path": self.log_path,
            "next_hop": self.next_hop,
            "children": [child.to_dict() for child in self.children],
        }

    def walk(self) -> list[ChainNode]:
        """This node followed by all descendants, depth first."""
        nodes = [self]
        for child in self.children:
            nodes.extend(child.walk())
        return nodes


@dataclass
class TraceResult:
    """Result of a full chain trace. Always returned, even on failure."""

    nodes: list[ChainNode] = field(default_factory=list)
    trace_log: list[str] = field(default_factory=list)
    total_hops: int = 0
    duration: float = 0.0
    error: str | None = None

    @property
    def duration_ms(self) -> int:
        return int(self.duration * 1000)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "trace_log": list(self.trace_log),
            "total_hops": self.total_hops,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass
class LogFileInfo:
    path: str
    name: str
    match_count: int = 0


@dataclass
class LogSearchResult:
    """Log files found on one server, with per-file match counts."""

    server_id: str
    host: str
    files: list[LogFileInfo] = field(default_factory=list)
    total_matches: int = 0
    duration: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "server_id": self.server_id,
            "host": self.host,
            "files": [asdict(f) for f in self.files],
            "total_matches": self.total_matches,
            "duration_ms": int(self.duration * 1000),
            "error": self.error,
        }
