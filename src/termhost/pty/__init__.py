"""PTY process management: managed pseudo-terminal sessions.

Every session runs a real OS process bound to a pseudo-terminal, with
bounded output buffering, inactivity reclamation, and a grace period
after exit during which the final output stays readable.
"""

from termhost.pty.buffer import OutputBuffer
from termhost.pty.errors import (
    InvalidArgumentError,
    ProcessClosedError,
    SessionExistsError,
    SessionNotFoundError,
    TerminalError,
)
from termhost.pty.manager import TerminalManager
from termhost.pty.process import PTYProcess, PTYStatus
from termhost.pty.session import SessionInfo, SessionState, TerminalSession
from termhost.pty.supervisor import InactivityTimer

__all__ = [
    "InactivityTimer",
    "InvalidArgumentError",
    "OutputBuffer",
    "PTYProcess",
    "PTYStatus",
    "ProcessClosedError",
    "SessionExistsError",
    "SessionInfo",
    "SessionNotFoundError",
    "SessionState",
    "TerminalError",
    "TerminalManager",
    "TerminalSession",
]
