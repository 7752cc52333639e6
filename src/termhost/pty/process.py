"""PTY process adapter: the only component that talks to the OS.

Spawns a command bound to a fresh pseudo-terminal, relays its output to a
callback from a dedicated reader thread, and reports the exit status once
the terminal is drained.
"""

from __future__ import annotations

import codecs
import enum
import fcntl
import logging
import os
import pty
import select
import signal
import struct
import subprocess
import termios
import threading
from typing import Callable

from termhost.pty.errors import ProcessClosedError

logger = logging.getLogger(__name__)

# Chunks that look like agent/tool activity are mirrored here for visibility
output_logger = logging.getLogger("termhost.pty.output")

OutputCallback = Callable[[str], None]
ExitCallback = Callable[[int, int | None], None]

READ_CHUNK_SIZE = 4096
POLL_INTERVAL = 0.05  # seconds between status checks in the reader
REAP_TIMEOUT = 2.0

_LOG_MARKERS = (
    '"type":"assistant"',
    '"type":"tool_use"',
    '"type":"system"',
    "error",
    "Error",
    "completed",
    "success",
)


class PTYStatus(enum.Enum):
    """Lifecycle states for a PTY process."""

    RUNNING = "running"
    KILLING = "killing"  # Kill requested, waiting for process to die
    KILLED = "killed"  # Killed by us
    EXITED = "exited"  # Process exited on its own


def should_mirror(text: str) -> bool:
    """Whether an output chunk is interesting enough for the operational log."""
    return any(marker in text for marker in _LOG_MARKERS)


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def _acquire_controlling_tty() -> None:
    """Make the PTY slave (the child's stdin) its controlling terminal.

    Runs as ``preexec_fn`` in the forked child after ``setsid()``. The
    parent has reader and timer threads alive at fork time, and a lock
    one of them held stays locked in the child forever. So this does a
    single ``ioctl`` and nothing else: no imports, no logging, no
    allocation-heavy helpers.
    """
    try:
        fcntl.ioctl(0, termios.TIOCSCTTY, 0)
    except OSError:
        pass


def _split_returncode(returncode: int) -> tuple[int, int | None]:
    """Map a Popen returncode to (exit_code, signal)."""
    if returncode < 0:
        signum = -returncode
        return 128 + signum, signum
    return returncode, None


class PTYProcess:
    """One OS process bound to a pseudo-terminal.

    Created through ``spawn()``. The process runs in its own session and
    process group with the PTY slave as its controlling terminal, so
    signals reach the whole tree and ``^C`` written to the master behaves
    like it does in a real terminal.

    Output is read by a daemon thread and handed to ``on_output`` in the
    order it was produced. When the terminal closes (or the child has
    exited and nothing is left to read) the thread reaps the child, closes
    the master fd and calls ``on_exit(exit_code, signal)``. This happens
    exactly once per process, including after ``kill()`` or ``terminate()``.
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        master_fd: int,
        *,
        command: list[str],
        cols: int,
        rows: int,
        on_output: OutputCallback | None = None,
        on_exit: ExitCallback | None = None,
        name: str = "",
        read_chunk_size: int = READ_CHUNK_SIZE,
    ) -> None:
        self._proc = proc
        self._master_fd = master_fd
        self._fd_closed = False
        self.command = command
        self.cols = cols
        self.rows = rows
        self.name = name or str(proc.pid)
        self._on_output = on_output
        self._on_exit = on_exit
        self._read_chunk_size = read_chunk_size
        self._status = PTYStatus.RUNNING
        self._lock = threading.Lock()
        self._reader: threading.Thread | None = None
        self.exit_code: int | None = None
        self.exit_signal: int | None = None

    @classmethod
    def spawn(
        cls,
        command: str,
        args: list[str] | None = None,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        cols: int = 80,
        rows: int = 24,
        on_output: OutputCallback | None = None,
        on_exit: ExitCallback | None = None,
        name: str = "",
        read_chunk_size: int = READ_CHUNK_SIZE,
    ) -> PTYProcess:
        """Start ``command`` in a new PTY and begin relaying its output.

        Raises:
            OSError: If the PTY cannot be allocated or the command cannot
                be started (missing executable, bad working directory).
        """
        argv = [command, *(args or [])]
        master_fd, slave_fd = pty.openpty()
        try:
            _set_winsize(slave_fd, cols, rows)
            proc = subprocess.Popen(
                argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=cwd,
                env=env,
                start_new_session=True,  # Own session + process group
                preexec_fn=_acquire_controlling_tty,
                close_fds=True,
            )
        except Exception:
            os.close(master_fd)
            raise
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        process = cls(
            proc,
            master_fd,
            command=argv,
            cols=cols,
            rows=rows,
            on_output=on_output,
            on_exit=on_exit,
            name=name,
            read_chunk_size=read_chunk_size,
        )
        process._start_reader()
        logger.info(
            "PTY process %s started: pid=%d cmd=%s", process.name, proc.pid, " ".join(argv)
        )
        return process

    # ------------------------------------------------------------------
    # Reader thread
    # ------------------------------------------------------------------

    def _start_reader(self) -> None:
        t = threading.Thread(
            target=self._read_loop, daemon=True, name=f"pty-reader-{self.name}"
        )
        self._reader = t
        t.start()

    def _read_loop(self) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        fd = self._master_fd
        try:
            while self._status is PTYStatus.RUNNING:
                ready, _, _ = select.select([fd], [], [], POLL_INTERVAL)
                if not ready:
                    # Background children may keep the slave open after the
                    # shell itself is gone; the shell's exit ends the session.
                    if self._proc.poll() is not None:
                        break
                    continue
                try:
                    data = os.read(fd, self._read_chunk_size)
                except OSError:
                    # EIO once every slave fd is closed
                    break
                if not data:
                    break
                self._emit(decoder.decode(data))
            if self._status is PTYStatus.RUNNING:
                self._emit(decoder.decode(b"", final=True))
        except Exception:
            logger.exception("PTY reader %s failed", self.name)
        finally:
            self._finish()

    def _emit(self, text: str) -> None:
        if not text:
            return
        if should_mirror(text):
            output_logger.info("[%s] %s", self.name, text.rstrip())
        if self._on_output is None:
            return
        try:
            self._on_output(text)
        except Exception:
            logger.exception("Error in on_output callback for PTY %s", self.name)

    def _finish(self) -> None:
        # Runs once, on the reader thread, for every way the process can end
        with self._lock:
            if self._status is PTYStatus.RUNNING:
                self._status = PTYStatus.EXITED

        returncode = self._reap()
        self.exit_code, self.exit_signal = _split_returncode(returncode)

        with self._lock:
            if not self._fd_closed:
                try:
                    os.close(self._master_fd)
                except OSError:
                    pass
                self._fd_closed = True

        logger.info(
            "PTY process %s %s (code=%s, signal=%s)",
            self.name,
            "exited" if self._status is PTYStatus.EXITED else "stopped",
            self.exit_code,
            self.exit_signal,
        )
        if self._on_exit is None:
            return
        try:
            self._on_exit(self.exit_code, self.exit_signal)
        except Exception:
            logger.exception("Error in on_exit callback for PTY %s", self.name)

    def _reap(self) -> int:
        try:
            return self._proc.wait(timeout=REAP_TIMEOUT)
        except subprocess.TimeoutExpired:
            # Terminal closed but the process lives on without it
            logger.warning("PTY process %s outlived its terminal, killing", self.name)
            self._signal_group(signal.SIGKILL)
            return self._proc.wait()

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def write(self, data: str) -> None:
        """Write text to the process's terminal input.

        Raises:
            ProcessClosedError: If the process is no longer running.
            OSError: If the underlying write fails.
        """
        view = memoryview(data.encode("utf-8"))
        with self._lock:
            if self._status is not PTYStatus.RUNNING or self._fd_closed:
                raise ProcessClosedError(f"PTY process {self.name} is not running")
            while view:
                written = os.write(self._master_fd, view)
                view = view[written:]

    def resize(self, cols: int, rows: int) -> None:
        """Set the terminal window size (delivers SIGWINCH to the foreground job)."""
        with self._lock:
            if self._status is not PTYStatus.RUNNING or self._fd_closed:
                raise ProcessClosedError(f"PTY process {self.name} is not running")
            _set_winsize(self._master_fd, cols, rows)
            self.cols = cols
            self.rows = rows

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def _signal_group(self, sig: int) -> None:
        try:
            # start_new_session makes the child its own group leader
            os.killpg(self._proc.pid, sig)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._proc.pid)

    def _begin_stop(self) -> bool:
        with self._lock:
            if self._status is not PTYStatus.RUNNING:
                return False
            self._status = PTYStatus.KILLING
            return True

    def kill(self) -> None:
        """Kill the entire process tree immediately. No-op once stopped."""
        if not self._begin_stop():
            return
        try:
            self._signal_group(signal.SIGKILL)
            try:
                self._proc.wait(timeout=REAP_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning("PTY process %s did not die after SIGKILL", self.name)
            logger.info("Killed PTY process %s (pid=%d)", self.name, self._proc.pid)
        finally:
            self._status = PTYStatus.KILLED

    def terminate(self, timeout: float = REAP_TIMEOUT) -> None:
        """Hang up the terminal, then force-kill if the process lingers.

        No-op once the process has exited or been stopped.
        """
        if not self._begin_stop():
            return
        try:
            self._signal_group(signal.SIGHUP)
            try:
                self._proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.info("PTY process %s ignored SIGHUP, killing", self.name)
                self._signal_group(signal.SIGKILL)
                try:
                    self._proc.wait(timeout=REAP_TIMEOUT)
                except subprocess.TimeoutExpired:
                    logger.warning("PTY process %s did not die after SIGKILL", self.name)
        finally:
            self._status = PTYStatus.KILLED

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def alive(self) -> bool:
        return self._status is PTYStatus.RUNNING

    @property
    def status(self) -> PTYStatus:
        return self._status

    def join(self, timeout: float | None = None) -> None:
        """Wait for the reader thread to finish (mainly for tests and the CLI)."""
        if self._reader is not None:
            self._reader.join(timeout)

    def __repr__(self) -> str:
        return f"PTYProcess(name={self.name!r}, pid={self.pid}, status={self._status.value})"
