"""Single-host log file listing, match counting and reading."""

from __future__ import annotations

import logging
import shlex
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

from chaintrace.executor import RemoteExecutor
from chaintrace.models import Credentials, LogFileInfo, LogSearchResult, ServerConfig

logger = logging.getLogger(__name__)

MAX_LISTED_FILES = 100


def build_list_command(log_path: str, pattern: str = "*log*") -> str:
    return (
        f"find {shlex.quote(log_path)} -maxdepth 1 -type f "
        f"-name {shlex.quote(pattern)} 2>/dev/null | head -{MAX_LISTED_FILES}"
    )


def build_count_command(trace_id: str, paths: list[str]) -> str:
    # -H keeps the "path:count" form even for a single file
    quoted = " ".join(shlex.quote(p) for p in paths)
    return f"grep -H -c -F -- {shlex.quote(trace_id)} {quoted} 2>/dev/null"


def parse_counts(output: str) -> dict[str, int]:
    """Parse ``path:count`` lines from grep -c."""
    counts: dict[str, int] = {}
    for line in output.splitlines():
        path, sep, count = line.rpartition(":")
        if not sep:
            continue
        try:
            counts[path] = int(count.strip())
        except ValueError:
            continue
    return counts


def search_log_files(
    executor: RemoteExecutor,
    credentials: Credentials,
    server_id: str,
    log_path: str,
    trace_id: str = "",
) -> LogSearchResult:
    """List log files on one host, with match counts when a trace id is given.

    Files without matches are dropped and the rest sorted by count,
    descending. Errors are reported in the result, never raised.
    """
    started = time.monotonic()
    result = LogSearchResult(server_id=server_id, host=credentials.host)
    try:
        listing = executor.execute(
            credentials,
            build_list_command(log_path, executor.config.log_pattern),
        )
        paths = [p.strip() for p in listing.stdout.splitlines() if p.strip()]
        counts: dict[str, int] = {}
        if paths and trace_id:
            output = executor.execute(credentials, build_count_command(trace_id, paths))
            counts = parse_counts(output.stdout)

        files = [
            LogFileInfo(path=p, name=p.rsplit("/", 1)[-1], match_count=counts.get(p, 0))
            for p in paths
        ]
        if trace_id:
            files = [f for f in files if f.match_count > 0]
            files.sort(key=lambda f: f.match_count, reverse=True)

        result.files = files
        result.total_matches = sum(f.match_count for f in files)
    except Exception as e:
        logger.warning("Log search on %s failed: %s", credentials.host, e)
        result.error = str(e)

    result.duration = time.monotonic() - started
    return result


def search_servers(
    executor: RemoteExecutor,
    servers: Iterable[ServerConfig],
    log_path: str,
    trace_id: str = "",
    max_workers: int = 4,
) -> list[LogSearchResult]:
    """Run search_log_files on several servers in parallel, in input order."""
    servers = list(servers)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [
            pool.submit(
                search_log_files, executor, s.credentials, s.id, log_path, trace_id
            )
            for s in servers
        ]
        return [f.result() for f in futures]


def read_log_file(
    executor: RemoteExecutor,
    credentials: Credentials,
    file_path: str,
    max_lines: int = 1000,
) -> str:
    """First ``max_lines`` lines of a remote file."""
    command = f"head -n {int(max_lines)} {shlex.quote(file_path)} 2>/dev/null"
    return executor.execute(credentials, command).stdout
