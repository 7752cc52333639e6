"""Exceptions raised by the terminal session manager."""

from __future__ import annotations


class TerminalError(Exception):
    """Base class for terminal session errors."""


class InvalidArgumentError(TerminalError, ValueError):
    """A request was malformed (empty execution ID, bad terminal size)."""


class SessionExistsError(TerminalError):
    """A session is already registered for the execution ID."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Terminal session already exists for execution: {execution_id}")
        self.execution_id = execution_id


class SessionNotFoundError(TerminalError, LookupError):
    """No session is registered for the execution ID."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Terminal session not found: {execution_id}")
        self.execution_id = execution_id


class ProcessClosedError(TerminalError):
    """I/O was attempted on a PTY process that is no longer running."""
