"""chaintrace - Interactive SSH shells and transaction chain tracing over SSH."""

from chaintrace.api import ChainTraceApp
from chaintrace.config import Config
from chaintrace.errors import (
    AuthError,
    ChainTraceError,
    ChannelError,
    ConfigurationError,
    RemoteError,
    RemoteIOError,
    SessionLockError,
    SessionNotFoundError,
    SSHConnectError,
)
from chaintrace.events import QueueSink, SessionEvent
from chaintrace.executor import RemoteExecutor
from chaintrace.models import ChainNode, Credentials, ServerConfig, TraceResult
from chaintrace.session import SessionManager
from chaintrace.tracer import ChainTracer

__version__ = "0.1.0"
__all__ = [
    "ChainTraceApp",
    "Config",
    "RemoteExecutor",
    "SessionManager",
    "ChainTracer",
    "SessionEvent",
    "QueueSink",
    "Credentials",
    "ServerConfig",
    "ChainNode",
    "TraceResult",
    "ChainTraceError",
    "RemoteError",
    "SSHConnectError",
    "AuthError",
    "ChannelError",
    "RemoteIOError",
    "ConfigurationError",
    "SessionNotFoundError",
    "SessionLockError",
]
