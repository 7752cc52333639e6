"""Terminal session record and its read-only metadata view."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from termhost.pty.buffer import OutputBuffer

if TYPE_CHECKING:
    from termhost.pty.process import PTYProcess
    from termhost.pty.supervisor import InactivityTimer


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(enum.StrEnum):
    """Lifecycle of a managed session.

    STARTING -> RUNNING -> EXITED (grace period) -> PURGED, or
    STARTING -> RUNNING -> PURGED via kill or inactivity.
    """

    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    PURGED = "purged"


@dataclass(frozen=True)
class SessionInfo:
    """Snapshot of a session handed to callers. Never exposes the process."""

    execution_id: str
    pid: int
    buffer: list[str]
    created_at: datetime
    last_activity: datetime
    exit_code: int | None = None
    state: SessionState = SessionState.RUNNING

    @property
    def alive(self) -> bool:
        return self.state is SessionState.RUNNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "pid": self.pid,
            "buffer": list(self.buffer),
            "exit_code": self.exit_code,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }


@dataclass
class TerminalSession:
    """Registry-internal state for one execution ID.

    All mutable fields are guarded by the owning manager's lock. The
    process handle is owned exclusively by this record.
    """

    execution_id: str
    buffer: OutputBuffer
    inactivity_timeout: float | None = None
    process: PTYProcess | None = None
    pid: int = 0
    cols: int = 80
    rows: int = 24
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)
    exit_code: int | None = None
    exit_signal: int | None = None
    overflow_warned: bool = False
    purged: bool = False
    idle_timer: InactivityTimer | None = field(default=None, repr=False)
    grace_timer: threading.Timer | None = field(default=None, repr=False)

    def touch(self) -> None:
        self.last_activity = _utcnow()

    def record_exit(self, exit_code: int, exit_signal: int | None = None) -> bool:
        """Record the exit status. Returns False if it was already set."""
        if self.exit_code is not None:
            return False
        self.exit_code = exit_code
        self.exit_signal = exit_signal
        return True

    @property
    def state(self) -> SessionState:
        if self.purged:
            return SessionState.PURGED
        if self.exit_code is not None:
            return SessionState.EXITED
        if self.process is None:
            return SessionState.STARTING
        return SessionState.RUNNING

    def info(self) -> SessionInfo:
        return SessionInfo(
            execution_id=self.execution_id,
            pid=self.pid,
            buffer=self.buffer.lines(),
            created_at=self.created_at,
            last_activity=self.last_activity,
            exit_code=self.exit_code,
            state=self.state,
        )
