"""Wire protocol: decouples terminal sessions from their transports.

Events flow from the session manager to subscribers (a WebSocket gateway,
the CLI, tests). Subscribers either register a plain callback, invoked on
the thread that produced the event, or take an ``asyncio.Queue`` that is
fed through its event loop.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(enum.StrEnum):
    OUTPUT = "output"
    EXITED = "exited"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    execution_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "execution_id": self.execution_id,
            "timestamp": self.timestamp.isoformat(),
            **self.data,
        }


Subscriber = Callable[[WireEvent], None]


class Wire:
    """Thread-safe broadcast: session manager -> subscribers.

    Delivery is fire-and-forget. A subscriber that is not registered when
    an event is sent never sees it.
    """

    def __init__(self) -> None:
        self._callbacks: list[Subscriber] = []
        self._queues: list[tuple[asyncio.Queue[WireEvent | None], asyncio.AbstractEventLoop]] = []
        self._closed: bool = False
        self._lock = threading.Lock()

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called. A
        subscriber that raises is logged and skipped.
        """
        with self._lock:
            if self._closed:
                return
            callbacks = list(self._callbacks)
            queues = list(self._queues)
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Wire subscriber failed on %s event", event.type.value)
        for q, loop in queues:
            try:
                loop.call_soon_threadsafe(q.put_nowait, event)
            except RuntimeError:
                # Loop already closed
                logger.debug("Dropping %s event for closed loop", event.type.value)

    def send_output(self, execution_id: str, data: str) -> None:
        self.send(WireEvent(type=EventType.OUTPUT, execution_id=execution_id, data={"data": data}))

    def send_exit(self, execution_id: str, exit_code: int, signal: int | None = None) -> None:
        """Notify subscribers that a session's process terminated."""
        self.send(
            WireEvent(
                type=EventType.EXITED,
                execution_id=execution_id,
                data={"exit_code": exit_code, "signal": signal},
            )
        )

    def subscribe(self, callback: Subscriber) -> Subscriber:
        """Register a callback. Returns it, for use with ``unsubscribe()``."""
        with self._lock:
            self._callbacks.append(callback)
        return callback

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def subscribe_queue(
        self, loop: asyncio.AbstractEventLoop | None = None
    ) -> asyncio.Queue[WireEvent | None]:
        """Subscribe with a queue fed on ``loop`` (default: the running loop)."""
        loop = loop or asyncio.get_running_loop()
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        with self._lock:
            self._queues.append((q, loop))
        return q

    def unsubscribe_queue(self, q: asyncio.Queue) -> None:
        with self._lock:
            self._queues = [(queue, loop) for queue, loop in self._queues if queue is not q]

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._callbacks) + len(self._queues)

    def close(self) -> None:
        """Signal all queue subscribers that the wire is closing."""
        with self._lock:
            self._closed = True
            queues = list(self._queues)
        for q, loop in queues:
            try:
                loop.call_soon_threadsafe(q.put_nowait, None)
            except RuntimeError:
                logger.debug("Loop closed before wire shutdown")
