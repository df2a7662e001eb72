"""Command-line interface for chaintrace."""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import os
import sys
import threading
from collections.abc import Callable

from chaintrace.api import ChainTraceApp
from chaintrace.config import Config
from chaintrace.console import error, format_search, format_trace, info, success, warning
from chaintrace.errors import ChainTraceError
from chaintrace.events import EXIT, SessionEvent
from chaintrace.models import Credentials, ServerConfig
from chaintrace.store import ServerStore

# Exit codes
EXIT_COMPLETED = 0
EXIT_ERROR = 1

# Config file for persisting host/user
CONFIG_FILE = os.path.expanduser("~/.chaintrace_config")

DEFAULT_LOG_PATH = "/app/logs"


def load_saved_config() -> dict[str, str]:
    """Load saved host/user/log path from config file."""
    if os.path.exists(CONFIG_FILE):
        try:
            with open(CONFIG_FILE) as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def save_config(host: str, user: str, log_path: str | None = None) -> None:
    """Save host/user/log path to config file for future use."""
    config: dict[str, str] = {"host": host, "user": user}
    if log_path:
        config["log_path"] = log_path
    try:
        with open(CONFIG_FILE, "w") as f:
            json.dump(config, f)
    except OSError:
        pass  # Silently fail if we can't write


def resolve_credentials(
    store: ServerStore,
    host: str,
    port: int,
    user: str | None,
    password_provider: Callable[[str, str], str] | None = None,
) -> Credentials:
    """Credentials for host: from the server store, else prompt for a password."""
    server = store.find_by_host(host)
    if server and (not user or user == server.username) and server.password:
        return Credentials(host, server.port, server.username, server.password)

    username = user or (server.username if server else "")
    if not username:
        username = input("[?] Enter remote username: ").strip()
    if password_provider:
        password = password_provider(host, username)
    else:
        password = getpass.getpass(f"[?] Enter password for {username}@{host}: ")
    return Credentials(host, port, username, password)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Interactive SSH shells and transaction chain tracing across server logs."
    )
    parser.add_argument("-H", "--host", default=None, help="Remote hostname")
    parser.add_argument("-U", "--user", default=None, help="Remote username")
    parser.add_argument("-P", "--port", type=int, default=22, help="SSH port (default: 22)")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    trace = sub.add_parser("trace", help="Follow a trace id across servers")
    trace.add_argument("trace_id", help="Transaction identifier to search for")
    trace.add_argument("-l", "--log-path", default=None, help="Remote log directory")
    trace.add_argument("-d", "--max-depth", type=int, default=None, help="Max hops (default: 10)")
    trace.add_argument("--json", action="store_true", help="Print the result as JSON")

    search = sub.add_parser("search", help="List log files, counting trace id matches")
    search.add_argument("trace_id", nargs="?", default="", help="Optional trace id")
    search.add_argument("-l", "--log-path", default=None, help="Remote log directory")
    search.add_argument("-a", "--all", action="store_true", help="Search every stored server")

    read = sub.add_parser("read", help="Print the head of a remote log file")
    read.add_argument("file", help="Remote file path")
    read.add_argument("-n", "--lines", type=int, default=1000, help="Lines to read")

    exec_cmd = sub.add_parser("exec", help="Run one command")
    exec_cmd.add_argument(
        "remote_command", nargs=argparse.REMAINDER, help="Command to run, options included"
    )

    sub.add_parser("test", help="Check that the host accepts the credentials")

    shell = sub.add_parser("shell", help="Open an interactive shell")
    shell.add_argument("--cols", type=int, default=120)
    shell.add_argument("--rows", type=int, default=40)

    servers = sub.add_parser("servers", help="Manage the server list")
    servers.add_argument("action", choices=["list", "add", "remove"])
    servers.add_argument("--id", default=None, help="Server id (remove)")
    servers.add_argument("--description", default="", help="Description (add)")
    servers.add_argument("--environment", default="", help="Environment label (add)")
    return parser


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


def _run_shell(app: ChainTraceApp, creds: Credentials, cols: int, rows: int, ended: threading.Event) -> int:
    session_id = app.start_session(
        creds.host, creds.port, creds.username, creds.password, cols, rows
    )
    print(success(f"Session {session_id} open. Ctrl-D to close."))
    try:
        while not ended.is_set():
            try:
                line = input()
            except EOFError:
                break
            result = app.send_input(session_id, line + "\n")
            if not result.ok:
                print(error(result.error or "send failed"))
                break
    except KeyboardInterrupt:
        pass
    app.close_session(session_id)
    print(f"\n{info('Session closed.')}")
    return EXIT_COMPLETED


def _servers(store: ServerStore, args: argparse.Namespace, host: str | None) -> int:
    if args.action == "list":
        servers = store.list_servers()
        if not servers:
            print(warning("No servers configured."))
        for s in servers:
            print(f"  {s.id}  {s.username}@{s.host}:{s.port}  {s.environment}  {s.description}")
        return EXIT_COMPLETED

    if args.action == "remove":
        if not args.id:
            print(error("--id is required to remove a server."))
            return EXIT_ERROR
        store.delete_server(args.id)
        print(success(f"Removed server {args.id}."))
        return EXIT_COMPLETED

    if not host or not args.user:
        print(error("--host and --user are required to add a server."))
        return EXIT_ERROR
    password = getpass.getpass(f"[?] Enter password for {args.user}@{host}: ")
    server = store.save_server(
        ServerConfig(
            host=host,
            port=args.port,
            username=args.user,
            password=password,
            description=args.description,
            environment=args.environment,
        )
    )
    print(success(f"Saved server {server.id} ({server.host})."))
    return EXIT_COMPLETED


def main(args: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    saved = load_saved_config()
    parser = _build_parser()
    parsed = parser.parse_args(args)
    if parsed.command == "exec" and not parsed.remote_command:
        parser.error("exec: a remote command is required")
    _setup_logging(parsed.verbose)

    config = Config()
    store = ServerStore(config.servers_file, config.app_name)
    host = parsed.host or saved.get("host")

    try:
        if parsed.command == "servers":
            return _servers(store, parsed, parsed.host)

        if not host:
            host = input("[?] Enter remote hostname: ").strip()
            if not host:
                print(error("Hostname is required."))
                return EXIT_ERROR

        creds = resolve_credentials(store, host, parsed.port, parsed.user or saved.get("user"))
        log_path = getattr(parsed, "log_path", None) or saved.get("log_path") or DEFAULT_LOG_PATH
        save_config(host, creds.username, log_path)

        if parsed.command == "trace" and parsed.max_depth is not None:
            config.max_depth = parsed.max_depth

        ended = threading.Event()

        def sink(event: SessionEvent) -> None:
            if event.kind == EXIT:
                ended.set()
            elif event.data:
                sys.stdout.write(event.data)
                sys.stdout.flush()

        with ChainTraceApp(config, sink=sink) as app:
            if parsed.command == "trace":
                if not parsed.json:
                    print(info(f"Tracing {parsed.trace_id} from {host}..."))
                result = app.trace_server_chain(
                    creds.host, creds.port, creds.username, creds.password,
                    parsed.trace_id, log_path, store.known_servers(),
                )
                if parsed.json:
                    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
                else:
                    print(format_trace(result))
                return EXIT_COMPLETED if result.ok else EXIT_ERROR

            if parsed.command == "search":
                if parsed.all:
                    results = app.search_servers(store.list_servers(), log_path, parsed.trace_id)
                else:
                    target = ServerConfig(host=creds.host, port=creds.port,
                                          username=creds.username, password=creds.password,
                                          id=host)
                    results = [app.search_log_files(target, log_path, parsed.trace_id)]
                for r in results:
                    print(format_search(r))
                return EXIT_ERROR if any(r.error for r in results) else EXIT_COMPLETED

            if parsed.command == "read":
                print(app.read_log_file(creds, parsed.file, parsed.lines), end="")
                return EXIT_COMPLETED

            if parsed.command == "exec":
                print(app.execute_command(creds, " ".join(parsed.remote_command)))
                return EXIT_COMPLETED

            if parsed.command == "test":
                print(success(app.test_connection(creds)))
                return EXIT_COMPLETED

            return _run_shell(app, creds, parsed.cols, parsed.rows, ended)

    except ChainTraceError as e:
        print(error(str(e)))
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
