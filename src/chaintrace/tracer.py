"""
Transaction Chain Tracer: depth-first walk of the servers that handled a trace id.

Sequence per hop:
    1. Stop if the depth bound is reached or the host was already visited
    2. Grep the host's logs for the trace id, keeping lines with a peer address
    3. Parse each line into (filename, business id, peer ip)
    4. If nothing was found, or only router (G) entries, search the app logs instead
    5. Follow every valid entry (B/C prefix) to its peer, if the peer is a known server

Cycle prevention is keyed on host ip, so a server reachable over two
branches is searched once:

          A
        /   \\
       B     C
        \\   /
          D          <- searched from B, skipped from C

A failure at any hop below the root is written to the trace log and ends
that branch only. A failure at the root is reported in TraceResult.error.
"""

from __future__ import annotations

import logging
import shlex
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from chaintrace.config import Config
from chaintrace.executor import RemoteExecutor
from chaintrace.models import ChainNode, Credentials, ServerConfig, TraceResult

logger = logging.getLogger(__name__)

# Business id prefixes that mark a genuine processing hop
VALID_NODE_PREFIXES = ("B", "C")
# Prefix of router entries; only these leave the app-log search enabled
ROUTER_NODE_PREFIX = "G"

ProgressCallback = Callable[[str], None]


# ============================================================
# Remote commands
# ============================================================

def build_chain_command(trace_id: str, log_path: str, config: Config | None = None) -> str:
    """Grep pipeline printing ``filename business_id peer_ip`` per match."""
    cfg = config or Config()
    sed_expr = (
        r"s/^\([^:]*\):.*" + cfg.dest_marker + r"=\([^|]*\).*"
        + cfg.peer_marker + r"=\([0-9.]*\).*/\1 \2 \3/p"
    )
    return (
        f"cd {shlex.quote(log_path)} && "
        f"find . -maxdepth 1 -name {shlex.quote(cfg.log_pattern)} -print0 | "
        f"xargs -0 -P $(nproc) grep -H -F -- {shlex.quote(trace_id)} 2>/dev/null | "
        f"grep -F {shlex.quote(cfg.peer_marker)} | "
        f"sed -n {shlex.quote(sed_expr)} | "
        f"grep -v 'N/A' | sort -u"
    )


def build_fallback_command(trace_id: str, log_path: str, config: Config | None = None) -> str:
    """Grep pipeline over app logs printing ``filename business_id`` per match."""
    cfg = config or Config()
    marker = cfg.business_marker
    awk_prog = (
        "/" + marker + "/ { filename = $1; sub(/^\\.\\//, \"\", filename); "
        "text = $0; sub(/.*" + marker + " : /, \"\", text); "
        "split(text, codes, \" \"); print filename, codes[1] }"
    )
    return (
        f"cd {shlex.quote(log_path)} && "
        f"find . -maxdepth 1 -name {shlex.quote(cfg.app_log_pattern)} -print0 | "
        f"xargs -0 -P $(nproc) grep -H -F -- {shlex.quote(trace_id)} 2>/dev/null | "
        f"awk -F: {shlex.quote(awk_prog)}"
    )


# ============================================================
# Output parsing
# ============================================================

def _strip_dot_slash(filename: str) -> str:
    return filename[2:] if filename.startswith("./") else filename


def parse_chain_line(line: str) -> tuple[str, str, str] | None:
    """Parse ``filename business_id ip``; None if fewer than three fields."""
    parts = line.split()
    if len(parts) < 3:
        return None
    return _strip_dot_slash(parts[0]), parts[1], parts[2]


def parse_fallback_line(line: str) -> tuple[str, str] | None:
    """Parse ``filename business_id``; None if fewer than two fields."""
    parts = line.split()
    if len(parts) < 2:
        return None
    return _strip_dot_slash(parts[0]), parts[1]


def is_valid_chain_node(dus_id: str) -> bool:
    """B/C ids are processing hops; anything else (G = router) is a leaf."""
    return dus_id.startswith(VALID_NODE_PREFIXES)


def is_router_node(dus_id: str) -> bool:
    return dus_id.startswith(ROUTER_NODE_PREFIX)


def index_known_servers(
    servers: Iterable[ServerConfig | Credentials],
) -> dict[str, Credentials]:
    """Map host -> credentials. The first entry for a host wins."""
    known: dict[str, Credentials] = {}
    for server in servers:
        creds = server.credentials if isinstance(server, ServerConfig) else server
        known.setdefault(creds.host, creds)
    return known


# ============================================================
# Tracer
# ============================================================

@dataclass
class _TraceRun:
    """Mutable state of one trace call."""
    trace_id: str
    log_path: str
    known: dict[str, Credentials]
    max_depth: int
    on_log: ProgressCallback | None = None
    visited: set[str] = field(default_factory=set)
    lines: list[str] = field(default_factory=list)

    def log(self, message: str, level: int = logging.INFO) -> None:
        self.lines.append(message)
        if message:
            logger.log(level, message)
        if self.on_log is not None:
            try:
                self.on_log(message)
            except Exception as e:
                logger.debug(f"Progress callback error: {e}")


class ChainTracer:
    """
    Follows a trace id from server to server by grepping logs over SSH.

    Usage:
        tracer = ChainTracer(RemoteExecutor())
        result = tracer.trace(
            Credentials("10.0.0.1", 22, "ops", "secret"),
            trace_id="20240101000123",
            log_path="/app/logs",
            known_servers=store.known_servers(),
        )
        # result.nodes -> forest of ChainNode
        # result.trace_log -> progress lines
    """

    def __init__(self, executor: RemoteExecutor, config: Config | None = None):
        self.config = config or executor.config
        self._executor = executor

    def trace(
        self,
        credentials: Credentials,
        trace_id: str,
        log_path: str,
        known_servers: Iterable[ServerConfig | Credentials] = (),
        on_log: ProgressCallback | None = None,
        max_depth: int | None = None,
    ) -> TraceResult:
        """Trace the chain starting at ``credentials.host``. Never raises."""
        started = time.monotonic()
        run = _TraceRun(
            trace_id=trace_id,
            log_path=log_path,
            known=index_known_servers(known_servers),
            max_depth=self.config.max_depth if max_depth is None else max_depth,
            on_log=on_log,
        )

        run.log("=== Chain trace started ===")
        run.log(f"Trace ID: {trace_id}")
        run.log(f"Start host: {credentials.host}")
        run.log(f"Log path: {log_path}")
        run.log("")

        try:
            if not trace_id.strip():
                raise ValueError("trace id is required")
            nodes = self._trace_host(run, credentials, 0)
        except Exception as e:
            run.log(f"Error: {e}", logging.ERROR)
            return TraceResult(
                nodes=[],
                trace_log=run.lines,
                total_hops=0,
                duration=time.monotonic() - started,
                error=str(e),
            )

        total_hops = len(run.visited)
        run.log("")
        run.log(f"=== Trace complete: visited {total_hops} host(s) ===")
        return TraceResult(
            nodes=nodes,
            trace_log=run.lines,
            total_hops=total_hops,
            duration=time.monotonic() - started,
        )

    def _trace_host(
        self, run: _TraceRun, credentials: Credentials, depth: int
    ) -> list[ChainNode]:
        host = credentials.host
        step = depth + 1

        if depth >= run.max_depth:
            run.log(f"[WARN] Max depth {run.max_depth} reached at {host}", logging.WARNING)
            return []
        if host in run.visited:
            run.log(f"[SKIP] Already visited: {host}")
            return []
        run.visited.add(host)

        run.log(f"[{step}] Searching on {host} ...")
        output = self._executor.execute(
            credentials,
            build_chain_command(run.trace_id, run.log_path, self.config),
            timeout=self.config.trace_timeout,
        )
        lines = [line for line in output.stdout.splitlines() if line.strip()]
        entries = [parse_chain_line(line) for line in lines]

        fallback_nodes: list[ChainNode] = []
        if not any(e is not None and not is_router_node(e[1]) for e in entries):
            fallback_nodes = self._search_fallback(run, credentials, step)

        if not lines and not fallback_nodes:
            run.log(f"[{step}] No results found on {host}")
            return []
        if lines:
            run.log(f"[{step}] Found {len(lines)} entries on {host}")

        nodes: list[ChainNode] = []
        for entry in entries:
            if entry is None:
                continue
            filename, dus_id, ip = entry
            valid = is_valid_chain_node(dus_id)
            kind = "valid node" if valid else "router node"
            run.log(f"  -> {filename} {dus_id} {ip} ({kind})")

            children = self._follow(run, ip, depth) if valid else []
            nodes.append(
                ChainNode(
                    filename=filename,
                    dus_id=dus_id,
                    ip=host,
                    log_path=run.log_path,
                    children=children,
                    next_hop=ip,
                )
            )

        nodes.extend(fallback_nodes)
        return nodes

    def _follow(self, run: _TraceRun, ip: str, depth: int) -> list[ChainNode]:
        """Recurse into a next hop; any failure ends only this branch."""
        if ip in run.visited:
            run.log(f"[SKIP] Already visited: {ip}")
            return []

        next_server = run.known.get(ip)
        if next_server is None:
            run.log(
                f"[ERROR] Next hop {ip} is not in the server list. "
                f"Add it to the server configuration to continue tracing.",
                logging.WARNING,
            )
            return []

        try:
            return self._trace_host(run, next_server, depth + 1)
        except Exception as e:
            run.log(f"[ERROR] Failed to trace {ip}: {e}", logging.ERROR)
            return []

    def _search_fallback(
        self, run: _TraceRun, credentials: Credentials, step: int
    ) -> list[ChainNode]:
        host = credentials.host
        run.log(f"[{step}] Checking backup app logs on {host}...")
        try:
            output = self._executor.execute(
                credentials,
                build_fallback_command(run.trace_id, run.log_path, self.config),
                timeout=self.config.trace_timeout,
            )
        except Exception as e:
            logger.debug(f"Fallback search on {host} failed: {e}")
            return []

        nodes = []
        for line in output.stdout.splitlines():
            entry = parse_fallback_line(line)
            if entry is None:
                continue
            filename, dus_id = entry
            nodes.append(ChainNode(filename, dus_id, host, run.log_path))
            run.log(f"  -> [Fallback] found {filename} {dus_id} on {host}")
        return nodes
