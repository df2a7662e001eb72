"""Terminal formatting for CLI status lines and chain trees."""

from __future__ import annotations

from chaintrace.models import ChainNode, LogSearchResult, TraceResult
from chaintrace.tracer import is_valid_chain_node

# ANSI color codes
CYAN = "\033[36m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"
WHITE = "\033[37m"
RESET = "\033[0m"


def info(msg: str) -> str:
    """Format info message [*] in cyan."""
    return f"{CYAN}[*]{RESET} {msg}"


def success(msg: str) -> str:
    """Format success message [+] in green."""
    return f"{GREEN}[+]{RESET} {msg}"


def warning(msg: str) -> str:
    """Format warning message [!] in yellow."""
    return f"{YELLOW}[!]{RESET} {msg}"


def error(msg: str) -> str:
    """Format error message [!] in red."""
    return f"{RED}[!]{RESET} {msg}"


def _node_label(node: ChainNode) -> str:
    color = GREEN if is_valid_chain_node(node.dus_id) else YELLOW
    hop = f" -> {node.next_hop}" if node.next_hop else " (app log)"
    return f"{color}{node.dus_id}{RESET} {node.filename} @ {node.ip}{hop}"


def render_tree(nodes: list[ChainNode], prefix: str = "") -> list[str]:
    """Draw a chain forest with box-drawing connectors."""
    lines = []
    for i, node in enumerate(nodes):
        last = i == len(nodes) - 1
        lines.append(f"{prefix}{'└── ' if last else '├── '}{_node_label(node)}")
        lines.extend(render_tree(node.children, prefix + ("    " if last else "│   ")))
    return lines


def format_trace(result: TraceResult) -> str:
    out = list(result.trace_log)
    out.append("")
    if result.error:
        out.append(error(f"Trace failed: {result.error}"))
    elif not result.nodes:
        out.append(warning("No chain entries found."))
    else:
        out.append(success(f"Chain ({result.total_hops} host(s), {result.duration_ms} ms):"))
        out.extend(render_tree(result.nodes))
    return "\n".join(out)


def format_search(result: LogSearchResult) -> str:
    if result.error:
        return error(f"{result.host}: {result.error}")
    if not result.files:
        return warning(f"{result.host}: no matching log files")
    out = [info(f"{result.host}: {len(result.files)} file(s), {result.total_matches} match(es)")]
    for f in result.files:
        out.append(f"    {f.match_count:>6}  {f.path}")
    return "\n".join(out)
