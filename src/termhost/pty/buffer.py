"""Bounded output buffer for terminal sessions."""

from __future__ import annotations

import threading
from collections import deque

MAX_BUFFER_LINES = 10_000
MAX_BUFFER_BYTES = 10 * 1024 * 1024  # 10MB


def _line_size(line: str) -> int:
    return len(line.encode("utf-8", errors="replace"))


class OutputBuffer:
    """Thread-safe sliding window over the most recent terminal output.

    Output is kept as an ordered sequence of lines bounded by two
    independent caps:

    * ``max_lines``: maximum number of lines retained.
    * ``max_bytes``: maximum total size, counted as the UTF-8 length of
      every line plus one separator byte between consecutive lines.

    Both caps hold after every ``append_text()`` call. The oldest lines
    are evicted first; the remaining lines keep their order.
    """

    def __init__(
        self,
        max_lines: int = MAX_BUFFER_LINES,
        max_bytes: int = MAX_BUFFER_BYTES,
    ) -> None:
        if max_lines <= 0:
            raise ValueError("max_lines must be positive")
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        self.max_lines = max_lines
        self.max_bytes = max_bytes
        self._lines: deque[str] = deque()
        self._content_bytes: int = 0  # Sum of line sizes, separators excluded
        self._lock = threading.Lock()

    def append_text(self, text: str) -> int:
        """Append a chunk of output, splitting it on ``\\n``.

        Every piece of the split becomes its own line, so a chunk ending in
        a newline leaves a trailing empty line behind.

        Returns:
            Number of old lines evicted to satisfy the caps.
        """
        new_lines = text.split("\n")
        with self._lock:
            for line in new_lines:
                self._lines.append(line)
                self._content_bytes += _line_size(line)

            evicted = 0
            overflow = len(self._lines) - self.max_lines
            if overflow > 0:
                for _ in range(overflow):
                    self._content_bytes -= _line_size(self._lines.popleft())
                evicted += overflow

            while self._lines and self._size_locked() > self.max_bytes:
                self._content_bytes -= _line_size(self._lines.popleft())
                evicted += 1
            return evicted

    def _size_locked(self) -> int:
        if not self._lines:
            return 0
        return self._content_bytes + len(self._lines) - 1

    def lines(self) -> list[str]:
        """Return a copy of all buffered lines, oldest first."""
        with self._lock:
            return list(self._lines)

    @property
    def line_count(self) -> int:
        """Current number of lines in the buffer."""
        with self._lock:
            return len(self._lines)

    @property
    def size(self) -> int:
        """Current buffered size in bytes, separators included."""
        with self._lock:
            return self._size_locked()
