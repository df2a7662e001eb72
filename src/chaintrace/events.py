"""
Session events pushed from reader loops to the consumer.

The session manager emits SessionEvent objects through an EventSink
callback. Neither side imports the other; this module is the only
shared dependency.

Usage (consumer side):
    sink = QueueSink()
    manager = SessionManager(executor, sink)
    evt = sink.get(timeout=1.0)
"""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

OUTPUT = "output"
EXIT = "exit"


@dataclass(frozen=True)
class SessionEvent:
    """
    One notification about an interactive session.

    Kinds:
        output  : a chunk of decoded shell output (``data`` is set)
        exit    : the remote side ended the stream
    """
    kind: str                   # "output" or "exit"
    session_id: str
    data: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "session_id": self.session_id}
        if self.data is not None:
            payload["data"] = self.data
        return payload


# Type alias for the event callback
EventSink = Callable[[SessionEvent], None]


def deliver(sink: Optional[EventSink], event: SessionEvent) -> None:
    """Fire-and-forget delivery; sink failures are dropped."""
    if sink is None:
        return
    try:
        sink(event)
    except Exception as e:
        logger.debug(f"Event sink error: {e}")


class QueueSink:
    """EventSink that buffers events for a polling consumer."""

    def __init__(self) -> None:
        self._queue: queue.Queue[SessionEvent] = queue.Queue()

    def __call__(self, event: SessionEvent) -> None:
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> Optional[SessionEvent]:
        """Next event, or None if none arrived within ``timeout``."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[SessionEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events
