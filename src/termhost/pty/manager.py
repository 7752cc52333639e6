"""Terminal manager: the registry of PTY sessions keyed by execution ID."""

from __future__ import annotations

import logging
import os
import threading
from functools import partial
from typing import Any, Callable

from termhost.config import TerminalConfig
from termhost.pty.buffer import OutputBuffer
from termhost.pty.errors import (
    InvalidArgumentError,
    ProcessClosedError,
    SessionExistsError,
    SessionNotFoundError,
)
from termhost.pty.process import PTYProcess
from termhost.pty.session import SessionInfo, TerminalSession
from termhost.pty.supervisor import InactivityTimer
from termhost.session.wire import Wire

logger = logging.getLogger(__name__)

# Same call shape as PTYProcess.spawn; replaceable for tests
Spawner = Callable[..., Any]


def _check_size(cols: int, rows: int) -> None:
    if cols <= 0 or rows <= 0:
        raise InvalidArgumentError(f"Terminal size must be positive, got {cols}x{rows}")


class TerminalManager:
    """Manages the lifecycle of PTY sessions for remote clients.

    The manager ensures:
    - At most one session per execution ID; duplicates are rejected
    - Output is buffered per session (bounded) and published on the wire
    - Idle sessions are reclaimed after their inactivity timeout
    - Exited sessions stay readable for a grace period, then are purged
    - All sessions are killed on shutdown (no orphan processes)

    Reader and timer threads call back into the manager, so the session
    map and every session's mutable fields are guarded by one re-entrant
    lock. Process I/O and event publishing happen outside the lock.
    """

    def __init__(
        self,
        config: TerminalConfig | None = None,
        wire: Wire | None = None,
        spawner: Spawner | None = None,
    ) -> None:
        self.config = config or TerminalConfig()
        self.wire = wire if wire is not None else Wire()
        self._spawner = spawner or PTYProcess.spawn
        self._sessions: dict[str, TerminalSession] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def spawn(
        self,
        execution_id: str,
        cwd: str,
        shell: str | None = None,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        cols: int | None = None,
        rows: int | None = None,
        inactivity_timeout: float | None = None,
    ) -> SessionInfo:
        """Spawn a PTY process for an execution.

        Args:
            execution_id: Caller-assigned unique key for the session.
            cwd: Working directory for the process.
            shell: Command to run. Defaults to the configured shell.
            args: Arguments for the command.
            env: Variables layered over the current environment.
            cols: Initial terminal width (default from config).
            rows: Initial terminal height (default from config).
            inactivity_timeout: Per-session idle timeout in seconds.

        Returns:
            Metadata for the new session (its buffer is empty).

        Raises:
            InvalidArgumentError: If execution_id is blank or a size is not positive.
            SessionExistsError: If a session for execution_id is registered.
            OSError: If the process cannot be started.
        """
        if not execution_id or not execution_id.strip():
            raise InvalidArgumentError("execution_id is required")
        cols = cols if cols is not None else self.config.default_cols
        rows = rows if rows is not None else self.config.default_rows
        _check_size(cols, rows)
        if inactivity_timeout is not None and inactivity_timeout <= 0:
            raise InvalidArgumentError("inactivity_timeout must be positive")

        command = shell or self.config.resolve_shell()
        process_env = {**os.environ, **(env or {})}
        process_env["TERM"] = (env or {}).get("TERM", self.config.term_name)

        with self._lock:
            if execution_id in self._sessions:
                raise SessionExistsError(execution_id)

            session = TerminalSession(
                execution_id=execution_id,
                buffer=OutputBuffer(
                    max_lines=self.config.max_buffer_lines,
                    max_bytes=self.config.max_buffer_bytes,
                ),
                inactivity_timeout=inactivity_timeout,
                cols=cols,
                rows=rows,
            )
            # Reader callbacks block on the lock until registration completes
            session.process = self._spawner(
                command,
                args or [],
                cwd=cwd,
                env=process_env,
                cols=cols,
                rows=rows,
                on_output=partial(self._on_output, session),
                on_exit=partial(self._on_exit, session),
                name=execution_id,
                read_chunk_size=self.config.read_chunk_size,
            )
            session.pid = session.process.pid
            session.idle_timer = InactivityTimer(
                self._timeout_for(session),
                partial(self._on_inactive, session),
                name=f"idle-{execution_id}",
            )
            if session.exit_code is None:
                session.idle_timer.reset()
            self._sessions[execution_id] = session

        logger.info("Spawned PTY process for %s, pid=%d", execution_id, session.pid)
        return session.info()

    def kill(self, execution_id: str) -> bool:
        """Kill a session's process and remove it immediately.

        The process still reports its end, so subscribers get an ``exited``
        event once it has been reaped.

        Returns:
            True if the session was removed, False if it was not found.
        """
        with self._lock:
            session = self._sessions.pop(execution_id, None)
            if session is None:
                return False
            self._retire(session)

        try:
            session.process.kill()
        except OSError:
            logger.exception("Error killing PTY process for %s", execution_id)
        logger.info("Killed PTY process for %s", execution_id)
        return True

    def shutdown(self) -> None:
        """Kill all sessions. Called on process-wide teardown."""
        with self._lock:
            execution_ids = list(self._sessions)
        logger.info("Shutting down, cleaning up %d sessions", len(execution_ids))
        for execution_id in execution_ids:
            self.kill(execution_id)
        with self._lock:
            self._sessions.clear()

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def write(self, execution_id: str, data: str) -> bool:
        """Write input to a session's process.

        Best-effort: returns False instead of raising when the session is
        unknown or the write fails.
        """
        with self._lock:
            session = self._sessions.get(execution_id)
        if session is None:
            logger.warning("Terminal session not found: %s", execution_id)
            return False

        try:
            session.process.write(data)
        except ProcessClosedError:
            logger.debug("Write to stopped terminal %s dropped", execution_id)
            return False
        except OSError:
            logger.exception("Failed to write to terminal %s", execution_id)
            return False

        self._record_activity(session)
        return True

    def resize(self, execution_id: str, cols: int, rows: int) -> None:
        """Resize a session's terminal.

        Raises:
            SessionNotFoundError: If no session is registered for execution_id.
            InvalidArgumentError: If cols or rows is not positive.
        """
        _check_size(cols, rows)
        with self._lock:
            session = self._sessions.get(execution_id)
        if session is None:
            raise SessionNotFoundError(execution_id)

        try:
            session.process.resize(cols, rows)
        except ProcessClosedError:
            logger.debug("Resize of stopped terminal %s ignored", execution_id)
            return
        except OSError:
            logger.exception("Failed to resize terminal %s", execution_id)
            return

        with self._lock:
            session.cols = cols
            session.rows = rows
        self._record_activity(session)
        logger.info("Resized terminal %s to %dx%d", execution_id, cols, rows)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def get_session(self, execution_id: str) -> SessionInfo | None:
        with self._lock:
            session = self._sessions.get(execution_id)
            return session.info() if session else None

    def get_buffer(self, execution_id: str) -> list[str]:
        """Return a copy of the session's buffered lines ([] if unknown)."""
        with self._lock:
            session = self._sessions.get(execution_id)
            return session.buffer.lines() if session else []

    def get_active_session_ids(self) -> list[str]:
        """All registered IDs, including sessions in their exit grace period."""
        with self._lock:
            return list(self._sessions)

    def has(self, execution_id: str) -> bool:
        with self._lock:
            return execution_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __enter__(self) -> TerminalManager:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Internals (must hold the lock unless noted)
    # ------------------------------------------------------------------

    def _timeout_for(self, session: TerminalSession) -> float:
        return session.inactivity_timeout or self.config.inactivity_timeout

    def _record_activity(self, session: TerminalSession) -> None:
        """Refresh last_activity and push the idle deadline. Takes the lock."""
        with self._lock:
            if session.purged:
                return
            session.touch()
            # Exited sessions run on the grace timer only
            if session.exit_code is None and session.idle_timer is not None:
                session.idle_timer.reset(self._timeout_for(session))

    def _retire(self, session: TerminalSession) -> None:
        session.purged = True
        if session.idle_timer is not None:
            session.idle_timer.cancel()
        if session.grace_timer is not None:
            session.grace_timer.cancel()

    def _remove_if_current(self, session: TerminalSession) -> bool:
        """Remove session if it is still the one registered under its ID."""
        if session.purged or self._sessions.get(session.execution_id) is not session:
            return False
        del self._sessions[session.execution_id]
        self._retire(session)
        return True

    # ------------------------------------------------------------------
    # Callbacks from reader and timer threads
    # ------------------------------------------------------------------

    def _on_output(self, session: TerminalSession, text: str) -> None:
        with self._lock:
            if session.purged:
                return
            evicted = session.buffer.append_text(text)
            if evicted and not session.overflow_warned:
                session.overflow_warned = True
                logger.warning(
                    "Buffer limit reached for %s, trimmed to %d lines "
                    "(this warning will not repeat)",
                    session.execution_id,
                    session.buffer.line_count,
                )
            self._record_activity(session)

        self.wire.send_output(session.execution_id, text)

    def _on_exit(self, session: TerminalSession, exit_code: int, exit_signal: int | None) -> None:
        with self._lock:
            if not session.record_exit(exit_code, exit_signal):
                return
            if session.purged:
                # Stopped by kill() or inactivity: already unregistered, no grace period
                removed = True
            else:
                removed = False
                if session.idle_timer is not None:
                    session.idle_timer.cancel()
                grace = threading.Timer(
                    self.config.exit_grace_period, self._purge_after_exit, args=(session,)
                )
                grace.daemon = True
                grace.name = f"grace-{session.execution_id}"
                session.grace_timer = grace
                grace.start()

        logger.info(
            "PTY process %s for %s, code: %s",
            "stopped" if removed else "exited",
            session.execution_id,
            exit_code,
        )
        self.wire.send_exit(session.execution_id, exit_code, exit_signal)

    def _purge_after_exit(self, session: TerminalSession) -> None:
        with self._lock:
            if not self._remove_if_current(session):
                return
        try:
            # Already dead, so this only guards against a lingering group
            session.process.kill()
        except OSError:
            logger.exception("Error killing process during cleanup for %s", session.execution_id)
        logger.info(
            "Cleaned up session %s (buffer: %d lines, %d bytes)",
            session.execution_id,
            session.buffer.line_count,
            session.buffer.size,
        )

    def _on_inactive(self, session: TerminalSession, token: int) -> None:
        with self._lock:
            if session.idle_timer is None or not session.idle_timer.is_current(token):
                logger.debug("Stale inactivity timer for %s", session.execution_id)
                return
            if not self._remove_if_current(session):
                return
            timeout = self._timeout_for(session)

        logger.info(
            "Session %s inactive for %ss, cleaning up", session.execution_id, timeout
        )
        try:
            session.process.terminate(self.config.terminate_timeout)
        except OSError:
            logger.exception(
                "Error terminating inactive session %s", session.execution_id
            )
