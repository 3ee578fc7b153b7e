"""Child process supervision with a writable stdin.

console-relay runtime module

This module provides:
- Spawning the supervised server with stdout/stderr inherited unmodified
- A write-only stdin handle, written line by line
- A background waiter that reports the child's exit exactly once

Key design points:
- POSIX: start_new_session=True (optional) keeps a terminal Ctrl+C away from
  the child, so it is stopped by the stop command rather than by SIGINT
- The exit code is reported, never interpreted
- Writes to a child that already exited surface as ChildInputClosed; the exit
  itself arrives through the waiter
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import ChildInputClosed, SpawnError

__all__ = [
    "ChildProcess",
    "ProcessRunner",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for the supervised process.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit)
        env: Environment variables (None = inherit parent)
        isolate: Start the process in a new session
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    isolate: bool = True


class ChildProcess:
    """A running child with an open stdin pipe.

    Only one task may write to stdin; the supervisor's event loop is that
    task, so no locking is done here.
    """

    def __init__(self, process: asyncio.subprocess.Process, argv: list[str]) -> None:
        self._process = process
        self.argv = list(argv)
        self._stdin_closed = False
        self._waiter: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def stdin_closed(self) -> bool:
        return self._stdin_closed

    async def write_line(self, text: str) -> None:
        """Write ``text`` plus a newline to the child's stdin.

        Raises:
            ChildInputClosed: stdin was closed or the child is gone
        """
        stdin = self._process.stdin
        if self._stdin_closed or stdin is None or stdin.is_closing():
            raise ChildInputClosed(f"stdin of pid={self.pid} is closed")
        try:
            stdin.write(f"{text}\n".encode("utf-8"))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise ChildInputClosed(f"stdin of pid={self.pid} is closed: {e}") from e

    async def close_stdin(self) -> None:
        """Close the child's stdin, signalling end-of-input. Idempotent."""
        if self._stdin_closed:
            return
        self._stdin_closed = True
        stdin = self._process.stdin
        if stdin is None:
            return
        stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"stdin of pid={self.pid} closed with error: {e}")
        logger.debug(f"Closed stdin of pid={self.pid}")

    def watch(self, on_exit: Callable[[int], None]) -> asyncio.Task[None]:
        """Start the termination waiter.

        ``on_exit`` is called exactly once with the exit code.

        Raises:
            RuntimeError: If the waiter was already started
        """
        if self._waiter is not None:
            raise RuntimeError(f"pid={self.pid} is already being watched")
        self._waiter = asyncio.create_task(
            self._wait_and_report(on_exit), name=f"child-waiter-{self.pid}"
        )
        return self._waiter

    async def wait(self) -> int:
        return await self._process.wait()

    async def _wait_and_report(self, on_exit: Callable[[int], None]) -> None:
        returncode = await self._process.wait()
        logger.info(f"Child exited pid={self.pid} returncode={returncode}")
        on_exit(returncode)


@dataclass
class ProcessRunner:
    """Spawns the supervised process.

    Example:
        runner = ProcessRunner()
        child = await runner.spawn(ProcessSpec(argv=["java", "-jar", "server.jar"]))
        child.watch(lambda code: print("exited", code))
        await child.write_line("say hello")
    """

    async def spawn(self, spec: ProcessSpec) -> ChildProcess:
        """Start the child with a stdin pipe and inherited stdout/stderr.

        Args:
            spec: Process specification

        Returns:
            The running ChildProcess

        Raises:
            SpawnError: If the process cannot be started or has no stdin pipe
        """
        if not spec.argv:
            raise SpawnError(spec.argv, "empty command line")

        kwargs = self._build_subprocess_kwargs(spec)

        try:
            # stdout/stderr=None: the child writes straight to our own streams
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=None,
                stderr=None,
                **kwargs,
            )
        except (OSError, ValueError) as e:
            raise SpawnError(spec.argv, str(e)) from e

        if process.stdin is None:
            raise SpawnError(spec.argv, "could not connect to subprocess stdin")

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd or '.'} isolate={spec.isolate}"
        )
        return ChildProcess(process, spec.argv)

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build subprocess kwargs.

        Args:
            spec: Process specification

        Returns:
            Dict of kwargs for asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {}

        if spec.cwd is not None:
            kwargs["cwd"] = spec.cwd

        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        if spec.isolate:
            # equivalent to setsid
            kwargs["start_new_session"] = True

        return kwargs
