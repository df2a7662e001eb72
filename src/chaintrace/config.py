"""Tunable settings shared by the executor, session manager and tracer."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class Config:
    """Configuration for chaintrace components."""

    # Chain tracing
    max_depth: int = 10
    log_pattern: str = "*log*"
    app_log_pattern: str = "*app*log*"
    peer_marker: str = "PEER"
    dest_marker: str = "DESTDUS"
    business_marker: str = "dusCode"

    # Interactive sessions
    poll_interval: float = 0.01
    chunk_size: int = 4096
    close_timeout: float = 5.0
    lock_timeout: float = 5.0
    term: str = "xterm-256color"

    # Timeouts (seconds)
    connect_timeout: float = 10.0
    probe_timeout: float = 10.0
    command_timeout: float = 30.0
    trace_timeout: float = 60.0

    # Local storage
    app_name: str = "ChainTrace"
    servers_file: str = os.path.expanduser("~/.chaintrace/servers.json")

    max_workers: int = 4
