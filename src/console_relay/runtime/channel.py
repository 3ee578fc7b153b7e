"""Durable control channel backed by a named pipe (FIFO).

console-relay runtime module

This module provides:
- Idempotent "ensure the FIFO exists and is a FIFO" acquisition
- Opening the read end without waiting for a writer, then switching the
  descriptor back to blocking mode so reads wait for data
- An optional write end held by the supervisor itself, so the read end does
  not report end-of-data every time the last external writer disconnects
  (off unless requested)

Key design points:
- The FIFO outlives the supervisor and is reused on the next run
- A pre-existing object that is not a FIFO is never deleted or overwritten
- The mkfifo/open race between two supervisors is accepted: EEXIST is the
  normal steady-state outcome, not an error
"""

from __future__ import annotations

import enum
import io
import logging
import os
import stat
from dataclasses import dataclass, field

from ..errors import ChannelAccessError, ChannelTypeError

__all__ = [
    "ChannelState",
    "ControlChannel",
    "acquire_channel",
]

logger = logging.getLogger(__name__)


class ChannelState(enum.Enum):
    """Outcome of a successful acquisition."""

    CREATED = "created"
    REUSED = "reused"


@dataclass
class ControlChannel:
    """An open control channel.

    Attributes:
        path: Filesystem path of the FIFO
        fd: Read descriptor (blocking mode)
        state: Whether the FIFO was created by this run or reused

    Example:
        with acquire_channel("minecraft.control") as channel:
            channel.hold_open()
            for line in channel.reader():
                ...
    """

    path: str
    fd: int
    state: ChannelState
    _reader: io.BufferedReader | None = field(default=None, init=False, repr=False)
    _keepalive_fd: int | None = field(default=None, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def holding_open(self) -> bool:
        return self._keepalive_fd is not None

    def reader(self) -> io.BufferedReader:
        """Return a buffered binary reader over the read descriptor.

        The reader takes ownership of the descriptor; repeated calls return
        the same object so there is only ever one read handle.
        """
        if self._closed:
            raise ValueError("control channel is closed")
        if self._reader is None:
            self._reader = open(self.fd, "rb", closefd=True)
        return self._reader

    def hold_open(self) -> None:
        """Open and keep a write end of the FIFO.

        While held, the pipe always has at least one writer, so a blocking
        read waits for the next external writer instead of returning
        end-of-data. A fragment written without a newline then stays in
        the pipe until a later writer completes the line.

        Raises:
            ChannelAccessError: If the write end cannot be opened
        """
        if self._keepalive_fd is not None:
            return
        try:
            # Non-blocking so this never waits; the read end is already open.
            fd = os.open(self.path, os.O_WRONLY | os.O_NONBLOCK)
        except OSError as e:
            raise ChannelAccessError(self.path, str(e)) from e
        self._keepalive_fd = fd
        logger.debug(f"Holding write end of {self.path} open fd={fd}")

    def close(self) -> None:
        """Close every descriptor held by this channel. The FIFO stays on disk."""
        if self._closed:
            return
        self._closed = True

        if self._keepalive_fd is not None:
            try:
                os.close(self._keepalive_fd)
            except OSError as e:
                logger.debug(f"Error closing write end of {self.path}: {e}")
            self._keepalive_fd = None

        try:
            if self._reader is not None:
                self._reader.close()
            else:
                os.close(self.fd)
        except OSError as e:
            logger.debug(f"Error closing read end of {self.path}: {e}")

    def __enter__(self) -> "ControlChannel":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def acquire_channel(path: str, mode: int = 0o660) -> ControlChannel:
    """Ensure a FIFO exists at ``path`` and open its read end.

    Steps:
    1. mkfifo; EEXIST means the FIFO (or something else) was already there
    2. Open O_RDONLY | O_NONBLOCK, so the open does not block until a writer
       appears, then switch the descriptor to blocking mode
    3. If the path pre-existed, fstat the open descriptor and require a FIFO

    Args:
        path: FIFO path
        mode: Permission bits used when the FIFO is created

    Returns:
        The open ControlChannel

    Raises:
        ChannelTypeError: The path exists and is not a FIFO
        ChannelAccessError: Any other creation/open failure
    """
    existed = False
    try:
        os.mkfifo(path, mode)
        logger.debug(f"Created control channel {path} mode={mode:04o}")
    except FileExistsError:
        existed = True
    except OSError as e:
        raise ChannelAccessError(path, str(e)) from e

    try:
        fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
    except OSError as e:
        raise ChannelAccessError(path, str(e)) from e

    try:
        os.set_blocking(fd, True)
        if existed:
            info = os.fstat(fd)
            if not stat.S_ISFIFO(info.st_mode):
                raise ChannelTypeError(path)
    except ChannelTypeError:
        os.close(fd)
        raise
    except OSError as e:
        os.close(fd)
        raise ChannelAccessError(path, str(e)) from e

    state = ChannelState.REUSED if existed else ChannelState.CREATED
    logger.info(f"Control channel {path} ready ({state.value})")
    return ControlChannel(path=path, fd=fd, state=state)
