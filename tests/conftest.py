"""Shared fixtures: a fake PTY process for registry tests, polling helpers."""

from __future__ import annotations

import itertools
import time
from typing import Any, Callable, Iterator

import pytest

from termhost.config import TerminalConfig
from termhost.pty.errors import ProcessClosedError
from termhost.pty.manager import TerminalManager

_pids = itertools.count(10_000)


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeProcess:
    """Stands in for PTYProcess; tests drive output and exit by hand."""

    def __init__(self, command: str, args: list[str], **kwargs: Any) -> None:
        self.command = command
        self.args = args
        self.cwd = kwargs["cwd"]
        self.env = kwargs["env"]
        self.cols = kwargs["cols"]
        self.rows = kwargs["rows"]
        self.name = kwargs["name"]
        self.read_chunk_size = kwargs.get("read_chunk_size")
        self._on_output = kwargs["on_output"]
        self._on_exit = kwargs["on_exit"]
        self.pid = next(_pids)
        self.alive = True
        self.writes: list[str] = []
        self.write_error: Exception | None = None
        self.resize_error: Exception | None = None
        self.kill_error: Exception | None = None
        self.kill_calls = 0
        self.terminate_calls = 0

    def write(self, data: str) -> None:
        if not self.alive:
            raise ProcessClosedError(f"{self.name} is not running")
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(data)

    def resize(self, cols: int, rows: int) -> None:
        if not self.alive:
            raise ProcessClosedError(f"{self.name} is not running")
        if self.resize_error is not None:
            raise self.resize_error
        self.cols = cols
        self.rows = rows

    def kill(self) -> None:
        self.kill_calls += 1
        if self.kill_error is not None:
            raise self.kill_error
        self._stop(137, 9)

    def terminate(self, timeout: float = 2.0) -> None:
        self.terminate_calls += 1
        self._stop(129, 1)

    def _stop(self, code: int, signal: int) -> None:
        # A stopped process reports its end like any other, once
        if self.alive:
            self.alive = False
            self._on_exit(code, signal)

    # Test drivers

    def emit(self, text: str) -> None:
        self._on_output(text)

    def exit(self, code: int = 0, signal: int | None = None) -> None:
        self.alive = False
        self._on_exit(code, signal)


class FakeSpawner:
    def __init__(self) -> None:
        self.processes: list[FakeProcess] = []
        self.error: Exception | None = None

    def __call__(self, command: str, args: list[str], **kwargs: Any) -> FakeProcess:
        if self.error is not None:
            raise self.error
        process = FakeProcess(command, args, **kwargs)
        self.processes.append(process)
        return process

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def config() -> TerminalConfig:
    return TerminalConfig(
        default_shell="/bin/sh",
        inactivity_timeout=60.0,
        exit_grace_period=0.2,
    )


@pytest.fixture
def manager(config: TerminalConfig, spawner: FakeSpawner) -> Iterator[TerminalManager]:
    tm = TerminalManager(config=config, spawner=spawner)
    yield tm
    tm.shutdown()
