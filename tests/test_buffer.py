"""Tests for termhost.pty.buffer.OutputBuffer."""

from __future__ import annotations

import pytest

from termhost.pty.buffer import MAX_BUFFER_BYTES, MAX_BUFFER_LINES, OutputBuffer


class TestOutputBufferBasics:
    def test_empty(self) -> None:
        buf = OutputBuffer()
        assert buf.line_count == 0
        assert buf.size == 0
        assert buf.lines() == []

    def test_defaults(self) -> None:
        buf = OutputBuffer()
        assert buf.max_lines == MAX_BUFFER_LINES == 10_000
        assert buf.max_bytes == MAX_BUFFER_BYTES == 10 * 1024 * 1024

    def test_append_text(self) -> None:
        buf = OutputBuffer()
        buf.append_text("line1\nline2\nline3")
        assert buf.lines() == ["line1", "line2", "line3"]
        assert buf.line_count == 3

    def test_append_text_trailing_newline(self) -> None:
        buf = OutputBuffer()
        buf.append_text("line1\nline2\n")
        # Trailing newline creates an empty string after split
        assert buf.lines() == ["line1", "line2", ""]

    def test_each_chunk_starts_new_lines(self) -> None:
        buf = OutputBuffer()
        buf.append_text("ab")
        buf.append_text("cd")
        assert buf.lines() == ["ab", "cd"]

    def test_lines_returns_copy(self) -> None:
        buf = OutputBuffer()
        buf.append_text("a")
        lines = buf.lines()
        lines.append("mutated")
        assert buf.lines() == ["a"]

    def test_size_counts_separators(self) -> None:
        buf = OutputBuffer()
        buf.append_text("ab\ncd")
        assert buf.size == 5

    def test_size_counts_utf8_bytes(self) -> None:
        buf = OutputBuffer()
        buf.append_text("é")
        assert buf.size == 2

    @pytest.mark.parametrize("kwargs", [{"max_lines": 0}, {"max_bytes": 0}, {"max_lines": -1}])
    def test_rejects_non_positive_limits(self, kwargs: dict[str, int]) -> None:
        with pytest.raises(ValueError):
            OutputBuffer(**kwargs)


class TestOutputBufferLineCap:
    def test_maxlines_enforced(self) -> None:
        buf = OutputBuffer(max_lines=5)
        for i in range(10):
            buf.append_text(f"line {i}")
        assert buf.line_count == 5
        assert buf.lines() == ["line 5", "line 6", "line 7", "line 8", "line 9"]

    def test_one_more_line_at_cap_evicts_exactly_one(self) -> None:
        buf = OutputBuffer(max_lines=3)
        buf.append_text("a\nb\nc")
        evicted = buf.append_text("d")
        assert evicted == 1
        assert buf.lines() == ["b", "c", "d"]

    def test_large_chunk_evicted_in_one_step(self) -> None:
        buf = OutputBuffer(max_lines=4)
        evicted = buf.append_text("\n".join(str(i) for i in range(10)))
        assert evicted == 6
        assert buf.lines() == ["6", "7", "8", "9"]

    def test_no_eviction_within_cap(self) -> None:
        buf = OutputBuffer(max_lines=3)
        assert buf.append_text("a\nb") == 0

    def test_twenty_thousand_single_character_lines(self) -> None:
        buf = OutputBuffer()
        for _ in range(20_000):
            buf.append_text("x")
        assert buf.line_count == MAX_BUFFER_LINES
        assert buf.lines()[-1] == "x"


class TestOutputBufferByteCap:
    def test_size_cap_enforced(self) -> None:
        buf = OutputBuffer(max_lines=1000, max_bytes=20)
        for i in range(10):
            buf.append_text(f"line{i}")  # 5 bytes + separator
        assert buf.size <= 20
        assert buf.lines() == ["line7", "line8", "line9"]

    def test_single_oversized_line_is_dropped(self) -> None:
        buf = OutputBuffer(max_bytes=8)
        buf.append_text("x" * 100)
        assert buf.lines() == []
        assert buf.size == 0

    def test_both_caps_hold_after_every_chunk(self) -> None:
        buf = OutputBuffer(max_lines=50, max_bytes=300)
        for i in range(500):
            buf.append_text(f"chunk {i}\n" * (i % 7))
            assert buf.line_count <= 50
            assert buf.size <= 300

    def test_size_tracking_stays_exact_after_eviction(self) -> None:
        buf = OutputBuffer(max_lines=7, max_bytes=40)
        for i in range(100):
            buf.append_text(f"{i}é\n{i * 3}")
            assert buf.size == len("\n".join(buf.lines()).encode("utf-8"))
