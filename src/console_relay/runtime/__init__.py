"""Runtime module for the control channel and the supervised process.

This module provides the FIFO-backed control channel, its line listener
and the child process runner.
"""

from __future__ import annotations

from .channel import ChannelState, ControlChannel, acquire_channel
from .listener import ChannelListener
from .process_runner import ChildProcess, ProcessRunner, ProcessSpec

__all__ = [
    "ChannelListener",
    "ChannelState",
    "ChildProcess",
    "ControlChannel",
    "ProcessRunner",
    "ProcessSpec",
    "acquire_channel",
]
