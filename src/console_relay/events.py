"""Supervisor events and the single-consumer event bus.

Every producer (signal handlers, the child waiter, the channel listener
thread) publishes into one unbounded anyio memory object stream; the
supervisor is its only receiver, so events are handled one at a time in
arrival order.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Union

import anyio

__all__ = [
    "ChildExited",
    "CommandReceived",
    "Event",
    "EventBus",
    "ListenerFailed",
    "ShutdownRequested",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandReceived:
    """A complete line read from the control channel."""

    line: str


@dataclass(frozen=True)
class ChildExited:
    """The supervised process terminated."""

    returncode: int


@dataclass(frozen=True)
class ShutdownRequested:
    """A host termination signal (or a programmatic request) arrived."""

    signal_name: str


@dataclass(frozen=True)
class ListenerFailed:
    """The channel listener stopped after a read error."""

    error: Exception


Event = Union[CommandReceived, ChildExited, ShutdownRequested, ListenerFailed]


class EventBus:
    """Unbounded, ordered event channel with one receiver.

    ``publish`` must be called from the event loop thread;
    ``publish_threadsafe`` may be called from any thread once the bus is
    bound to a running loop.

    Example:
        bus = EventBus()
        bus.bind()
        bus.publish(ChildExited(0))
        async for event in bus:
            ...
    """

    def __init__(self) -> None:
        self._send, self._receive = anyio.create_memory_object_stream(max_buffer_size=math.inf)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def bind(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Remember the loop that owns the bus. Must run inside that loop if ``loop`` is None."""
        self._loop = loop if loop is not None else asyncio.get_running_loop()

    def publish(self, event: Event) -> None:
        """Queue an event. Events published after close() are dropped with a debug log."""
        try:
            self._send.send_nowait(event)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.debug(f"Event bus closed, dropping {event}")

    def publish_threadsafe(self, event: Event) -> None:
        """Queue an event from a foreign thread."""
        if self._loop is None:
            raise RuntimeError("EventBus is not bound to an event loop")
        try:
            self._loop.call_soon_threadsafe(self.publish, event)
        except RuntimeError:
            # loop already closed: the supervisor has exited
            logger.debug(f"Event loop closed, dropping {event}")

    async def receive(self) -> Event:
        """Return the next event, waiting if none is queued."""
        return await self._receive.receive()

    def close(self) -> None:
        """Close both ends. Call once the receiver is done; later events are dropped."""
        if self._closed:
            return
        self._closed = True
        self._send.close()
        self._receive.close()

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._receive.__aiter__()
