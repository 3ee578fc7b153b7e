"""ChannelListener unit tests.

Test coverage:
- Line decoding
- Rescanning after end-of-data, pausing when a scan reads nothing
- Line length limit
- Permanent stop on read error, reported once
- Ordered delivery across real writer sessions on a FIFO, with and without
  a held write end
"""

from __future__ import annotations

import io
import itertools
import queue
import time
from pathlib import Path

import pytest

from console_relay.errors import ListenerReadError
from console_relay.runtime.channel import acquire_channel
from console_relay.runtime.listener import MAX_LINE_BYTES, ChannelListener, decode_line


class ScriptedStream:
    """readline() returns scripted chunks; b"" simulates end-of-data.

    Raises OSError once the script is exhausted.
    """

    def __init__(self, script: list[bytes | Exception]) -> None:
        self._script = list(script)
        self.calls = 0
        self.sizes: list[int] = []

    def readline(self, size: int = -1) -> bytes:
        self.calls += 1
        self.sizes.append(size)
        if not self._script:
            raise OSError(5, "Input/output error")
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def collect(listener: ChannelListener) -> tuple[list[str], ListenerReadError | None]:
    lines: list[str] = []
    try:
        for line in listener.lines():
            lines.append(line)
    except ListenerReadError as e:
        return lines, e
    return lines, None


# =============================================================================
# decode_line
# =============================================================================


class TestDecodeLine:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (b"say hello\n", "say hello"),
            (b"say hello\r\n", "say hello"),
            (b"partial", "partial"),
            (b"\n", ""),
            (b"a\rb\n", "a\rb"),
            ("grüße\n".encode("utf-8"), "grüße"),
        ],
    )
    def test_decode(self, raw: bytes, expected: str):
        assert decode_line(raw) == expected

    def test_invalid_utf8_replaced(self):
        assert decode_line(b"bad \xff byte\n") == "bad � byte"


# =============================================================================
# lines()
# =============================================================================


class TestLines:
    def test_rescans_after_end_of_data(self):
        """End-of-data ends one scan; lines from later sessions still arrive."""
        stream = ScriptedStream([b"hello\n", b"", b"", b"world\n", b""])
        listener = ChannelListener(stream, on_line=lambda line: None)

        lines, error = collect(listener)

        assert lines == ["hello", "world"]
        assert isinstance(error, ListenerReadError)
        assert listener.scans == 4

    def test_partial_line_at_end_of_data(self):
        """An unterminated fragment at end-of-data is its own line."""
        stream = ScriptedStream([b"say hi\n", b"list", b"", b"stop\n"])
        listener = ChannelListener(stream, on_line=lambda line: None)

        lines, _ = collect(listener)

        assert lines == ["say hi", "list", "stop"]

    def test_read_error_chains_cause(self):
        cause = OSError(9, "Bad file descriptor")
        stream = ScriptedStream([b"one\n", cause])
        listener = ChannelListener(stream, on_line=lambda line: None)

        lines, error = collect(listener)

        assert lines == ["one"]
        assert error is not None
        assert error.__cause__ is cause

    def test_closed_stream_is_read_error(self):
        """A closed stream raises ValueError, which also ends the listener."""
        stream = io.BytesIO(b"")
        stream.close()
        listener = ChannelListener(stream, on_line=lambda line: None)

        lines, error = collect(listener)

        assert lines == []
        assert isinstance(error, ListenerReadError)

    def test_pauses_when_scan_reads_nothing(self):
        """Repeated end-of-data with no writer does not spin."""
        stream = ScriptedStream([b"", b"", b""])
        listener = ChannelListener(stream, on_line=lambda line: None, idle_interval=0.05)

        started = time.monotonic()
        lines, error = collect(listener)
        elapsed = time.monotonic() - started

        assert lines == []
        assert isinstance(error, ListenerReadError)
        assert elapsed >= 0.1
        assert stream.calls == 4

    def test_no_pause_after_scan_with_lines(self):
        stream = ScriptedStream([b"a\n", b"", b"b\n", b""])
        listener = ChannelListener(stream, on_line=lambda line: None, idle_interval=10.0)

        started = time.monotonic()
        lines, _ = collect(listener)

        assert lines == ["a", "b"]
        assert time.monotonic() - started < 5.0


class TestLineLimit:
    def test_readline_is_bounded(self):
        stream = ScriptedStream([b"a\n"])
        listener = ChannelListener(stream, on_line=lambda line: None)

        collect(listener)

        assert stream.sizes[0] == MAX_LINE_BYTES + 1

    def test_line_at_limit_accepted(self):
        stream = io.BytesIO(b"x" * MAX_LINE_BYTES + b"\nnext\n")
        listener = ChannelListener(stream, on_line=lambda line: None, idle_interval=0)

        lines = list(itertools.islice(listener.lines(), 2))

        assert lines == ["x" * MAX_LINE_BYTES, "next"]

    def test_overlong_line_is_read_error(self):
        stream = io.BytesIO(b"ok\n" + b"y" * (MAX_LINE_BYTES + 1) + b"\n")
        listener = ChannelListener(stream, on_line=lambda line: None, idle_interval=0)

        lines, error = collect(listener)

        assert lines == ["ok"]
        assert isinstance(error, ListenerReadError)
        assert "longer than" in str(error)

    def test_custom_limit(self):
        stream = io.BytesIO(b"12345678\n123456789\n")
        listener = ChannelListener(
            stream, on_line=lambda line: None, idle_interval=0, max_line_bytes=8
        )

        lines, error = collect(listener)

        assert lines == ["12345678"]
        assert isinstance(error, ListenerReadError)

    def test_overlong_line_stops_thread_once(self):
        errors: list[ListenerReadError] = []
        stream = io.BytesIO(b"z" * (MAX_LINE_BYTES * 2))
        listener = ChannelListener(stream, on_line=lambda line: None, on_error=errors.append)
        listener.start()

        assert listener.wait(timeout=5.0) is True
        assert len(errors) == 1


# =============================================================================
# Background thread
# =============================================================================


class TestThread:
    def test_forwards_lines_then_reports_error_once(self):
        received: list[str] = []
        errors: list[ListenerReadError] = []
        stream = ScriptedStream([b"a\n", b"b\n", b"", b"c\n"])

        listener = ChannelListener(stream, on_line=received.append, on_error=errors.append)
        listener.start()

        assert listener.wait(timeout=5.0) is True
        assert received == ["a", "b", "c"]
        assert len(errors) == 1
        assert listener.error is errors[0]
        assert listener.is_running is False

    def test_start_twice_is_noop(self):
        stream = ScriptedStream([])
        listener = ChannelListener(stream, on_line=lambda line: None)

        listener.start()
        listener.start()

        assert listener.wait(timeout=5.0) is True
        # One thread, so the stream was read exactly once before the error
        assert stream.calls == 1

    def test_multiple_writer_sessions_on_fifo(self, fifo_path: Path):
        """Lines from independent writers arrive in order, one event each."""
        received: queue.Queue[str] = queue.Queue()

        channel = acquire_channel(str(fifo_path))
        channel.hold_open()
        listener = ChannelListener(channel.reader(), on_line=received.put)
        listener.start()

        for session in ([b"c1\n"], [b"c2\n", b"c3\n"], [b"c4\nc5\n"]):
            with open(fifo_path, "wb") as writer:
                for chunk in session:
                    writer.write(chunk)
                    writer.flush()

        got = [received.get(timeout=5.0) for _ in range(5)]

        assert got == ["c1", "c2", "c3", "c4", "c5"]
        assert received.empty()
        assert listener.is_running is True

    def test_fragments_from_separate_writers_on_fifo(self, fifo_path: Path):
        """Without a held write end, each writer's unterminated text is a line."""
        received: queue.Queue[str] = queue.Queue()

        channel = acquire_channel(str(fifo_path))
        listener = ChannelListener(channel.reader(), on_line=received.put)
        listener.start()

        for text in (b"hello", b"world"):
            with open(fifo_path, "wb") as writer:
                writer.write(text)
            assert received.get(timeout=5.0) == text.decode()

        assert received.empty()
        assert listener.is_running is True
