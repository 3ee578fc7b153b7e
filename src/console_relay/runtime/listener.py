"""Line listener for the control channel.

console-relay runtime module

The listener turns a blocking binary stream into a lazy, infinite,
restartable sequence of command lines:

- Each complete line is delivered as soon as it is read
- End-of-data (every writer disconnected) ends one scan; a fragment left
  without a newline is delivered as a line of its own
- The next scan starts on the same handle, so a later writer is still observed
- A scan that read nothing is followed by a short pause: a FIFO with no
  writer reports end-of-data immediately, again and again
- A line longer than ``MAX_LINE_BYTES`` is a read error
- Only a read error ends the sequence, and it ends it for good

The blocking reads run in a daemon thread: they cannot be cancelled, and a
daemon thread does not keep the process alive once the supervisor decides
to exit.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from typing import BinaryIO

from ..errors import ListenerReadError

__all__ = [
    "ChannelListener",
    "IDLE_INTERVAL",
    "MAX_LINE_BYTES",
    "decode_line",
]

logger = logging.getLogger(__name__)

# Longest accepted line, terminator excluded
MAX_LINE_BYTES = 64 * 1024

# Pause after a scan that found no writer data (seconds)
IDLE_INTERVAL = 0.05


def decode_line(raw: bytes) -> str:
    """Strip one line terminator (``\\n`` or ``\\r\\n``) and decode as UTF-8."""
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


class ChannelListener:
    """Background reader that forwards each line of a stream.

    Example:
        listener = ChannelListener(
            channel.reader(),
            on_line=lambda line: print(line),
            on_error=lambda err: print(err),
        )
        listener.start()
    """

    def __init__(
        self,
        stream: BinaryIO,
        on_line: Callable[[str], None],
        on_error: Callable[[ListenerReadError], None] | None = None,
        *,
        name: str = "channel-listener",
        idle_interval: float = IDLE_INTERVAL,
        max_line_bytes: int = MAX_LINE_BYTES,
    ) -> None:
        self._stream = stream
        self._on_line = on_line
        self._on_error = on_error
        self._name = name
        self._idle_interval = idle_interval
        self._max_line_bytes = max_line_bytes
        self._thread: threading.Thread | None = None
        self._finished = threading.Event()
        self.error: ListenerReadError | None = None
        self.scans = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and not self._finished.is_set()

    def lines(self) -> Iterator[str]:
        """Yield command lines forever, rescanning after end-of-data.

        Raises:
            ListenerReadError: When the underlying stream fails or a line is
                longer than the limit
        """
        # one byte over the limit, so an overlong line is told apart from
        # a line of exactly the limit plus its newline
        limit = self._max_line_bytes + 1
        while True:
            self.scans += 1
            count = 0
            try:
                for raw in iter(lambda: self._stream.readline(limit), b""):
                    if len(raw) > self._max_line_bytes and not raw.endswith(b"\n"):
                        raise ListenerReadError(
                            f"control channel line longer than {self._max_line_bytes} bytes"
                        )
                    count += 1
                    yield decode_line(raw)
            except (OSError, ValueError) as e:
                raise ListenerReadError(f"control channel read failed: {e}") from e

            if count:
                logger.debug(f"Control channel reached end of data after {count} lines")
            elif self._idle_interval > 0:
                time.sleep(self._idle_interval)

    def start(self) -> None:
        """Start the read loop in a daemon thread."""
        if self._thread is not None:
            logger.warning("ChannelListener already started")
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.debug(f"ChannelListener started thread={self._name}")

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for the read loop to finish. Returns True if it has."""
        return self._finished.wait(timeout)

    def _run(self) -> None:
        try:
            for line in self.lines():
                self._on_line(line)
        except ListenerReadError as e:
            self.error = e
            logger.error(f"ChannelListener stopped: {e}")
            if self._on_error:
                self._on_error(e)
        finally:
            self._finished.set()
