"""Unit tests for single-host log search helpers."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from chaintrace.errors import SSHConnectError
from chaintrace.logsearch import (
    build_count_command,
    build_list_command,
    parse_counts,
    read_log_file,
    search_log_files,
    search_servers,
)
from chaintrace.models import CommandOutput, ServerConfig

pytestmark = pytest.mark.unit

LISTING = "/app/logs/a.log\n/app/logs/b.log\n/app/logs/c.log\n"


def scripted_executor(config, *outputs) -> MagicMock:
    executor = MagicMock()
    executor.config = config
    executor.execute.side_effect = [
        o if isinstance(o, Exception) else CommandOutput(stdout=o, exit_status=0)
        for o in outputs
    ]
    return executor


class TestCommands:
    """Tests for remote command construction and output parsing."""

    def test_list_command(self) -> None:
        """Test the file listing command."""
        cmd = build_list_command("/app/my logs")
        assert cmd.startswith("find '/app/my logs' -maxdepth 1 -type f -name '*log*'")
        assert cmd.endswith("| head -100")

    def test_count_command_forces_filenames(self) -> None:
        """Test that the count command always prints file names."""
        cmd = build_count_command("T'1", ["/a b.log", "/c.log"])
        assert "grep -H -c -F --" in cmd
        assert "'/a b.log' /c.log" in cmd

    def test_parse_counts(self) -> None:
        """Test parsing of grep count output."""
        output = "/app/logs/a.log:3\n/app/logs/x:y.log:1\nnoise\n/app/logs/b.log:abc\n"
        assert parse_counts(output) == {"/app/logs/a.log": 3, "/app/logs/x:y.log": 1}


class TestSearchLogFiles:
    """Tests for listing and counting across one or more servers."""

    def test_counts_filtered_and_sorted(self, config, creds) -> None:
        """Test that files without matches are dropped and the rest sorted."""
        executor = scripted_executor(
            config,
            LISTING,
            "/app/logs/a.log:2\n/app/logs/b.log:0\n/app/logs/c.log:7\n",
        )

        result = search_log_files(executor, creds, "srv-1", "/app/logs", "T1")

        assert result.error is None
        assert result.server_id == "srv-1"
        assert result.host == creds.host
        assert [(f.name, f.match_count) for f in result.files] == [("c.log", 7), ("a.log", 2)]
        assert result.total_matches == 9
        assert executor.execute.call_count == 2

    def test_without_trace_id_lists_everything(self, config, creds) -> None:
        """Test listing without a trace id."""
        executor = scripted_executor(config, LISTING)

        result = search_log_files(executor, creds, "srv-1", "/app/logs")

        assert [f.name for f in result.files] == ["a.log", "b.log", "c.log"]
        assert result.total_matches == 0
        assert executor.execute.call_count == 1

    def test_no_files(self, config, creds) -> None:
        """Test a directory without log files."""
        executor = scripted_executor(config, "")

        result = search_log_files(executor, creds, "srv-1", "/app/logs", "T1")

        assert result.files == []
        assert result.error is None
        assert executor.execute.call_count == 1

    def test_error_reported_not_raised(self, config, creds) -> None:
        """Test that remote errors end up in the result."""
        executor = scripted_executor(
            config, SSHConnectError(creds.host, "connect", "no route to host")
        )

        result = search_log_files(executor, creds, "srv-1", "/app/logs", "T1")

        assert result.files == []
        assert "no route to host" in result.error
        assert result.to_dict()["error"] == result.error

    def test_search_servers_keeps_order(self, config) -> None:
        """Test that parallel search keeps input order."""
        executor = MagicMock()
        executor.config = config

        def execute(credentials, command, timeout=None):
            return CommandOutput(stdout=f"/logs/{credentials.host}.log\n", exit_status=0)

        executor.execute.side_effect = execute
        servers = [ServerConfig(host=h, id=h) for h in ("h1", "h2", "h3")]

        results = search_servers(executor, servers, "/logs", max_workers=2)

        assert [r.server_id for r in results] == ["h1", "h2", "h3"]
        assert [r.files[0].name for r in results] == ["h1.log", "h2.log", "h3.log"]


def test_read_log_file(config, creds) -> None:
    """Test reading the head of a remote file."""
    executor = scripted_executor(config, "line1\nline2\n")

    text = read_log_file(executor, creds, "/app/logs/a b.log", max_lines=50)

    assert text == "line1\nline2\n"
    command = executor.execute.call_args.args[1]
    assert command == "head -n 50 '/app/logs/a b.log' 2>/dev/null"
