"""Supervisor 事件循环。

单一消费者，按到达顺序依次处理三类事件来源：
- ChildExited: 子进程自行退出 -> 打印 "Console exit"，以状态 0 结束
- ShutdownRequested: 终止信号 -> 写入 stop、关闭 stdin、等待子进程退出，以状态 0 结束
- CommandReceived: 控制通道的一行 -> 回显并写入子进程 stdin

状态机: RUNNING -> SHUTTING_DOWN -> TERMINATED，或 RUNNING -> TERMINATED。

关闭期间（SHUTTING_DOWN）继续按顺序读取事件：命令被丢弃（记录日志，
不写入子进程），重复信号被忽略，直到收到 ChildExited。
"""

from __future__ import annotations

import enum
import logging

from .config import DEFAULT_STOP_COMMAND
from .errors import ChildInputClosed
from .events import (
    ChildExited,
    CommandReceived,
    Event,
    EventBus,
    ListenerFailed,
    ShutdownRequested,
)
from .runtime.process_runner import ChildProcess

__all__ = ["Supervisor", "SupervisorState"]

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0


class SupervisorState(enum.Enum):
    """Supervisor 状态。"""

    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class Supervisor:
    """事件循环与关闭协议。

    子进程 stdin 只由本对象所在的任务写入，因此不需要加锁。

    Attributes:
        child: 被监督的子进程
        bus: 事件总线（本对象是唯一的接收方）
        stop_command: 关闭时写入的命令
        echo: 是否回显转发的命令
    """

    def __init__(
        self,
        child: ChildProcess,
        bus: EventBus,
        *,
        stop_command: str = DEFAULT_STOP_COMMAND,
        echo: bool = True,
    ) -> None:
        self.child = child
        self.bus = bus
        self.stop_command = stop_command
        self.echo = echo

        self.state = SupervisorState.RUNNING
        self.relayed_count = 0
        self.dropped_count = 0
        self.exit_code: int | None = None

    async def run(self) -> int:
        """处理事件直到 TERMINATED。

        Returns:
            进程退出码（两条正常退出路径都是 0）

        Raises:
            RuntimeError: 事件总线在子进程退出前被关闭
        """
        logger.debug(f"Supervisor loop started for pid={self.child.pid}")
        async for event in self.bus:
            exit_code = await self.handle(event)
            if exit_code is not None:
                return exit_code

        raise RuntimeError("event bus closed before the child exited")

    async def handle(self, event: Event) -> int | None:
        """处理单个事件。

        Returns:
            进入 TERMINATED 时返回进程退出码，否则返回 None
        """
        if self.state is SupervisorState.TERMINATED:
            logger.debug(f"Ignoring {event} after termination")
            return None

        if isinstance(event, ChildExited):
            return self._on_child_exited(event)
        elif isinstance(event, ShutdownRequested):
            await self._on_shutdown_requested(event)
        elif isinstance(event, CommandReceived):
            await self._on_command(event)
        elif isinstance(event, ListenerFailed):
            logger.error(
                f"Command relaying stopped, still supervising pid={self.child.pid}: "
                f"{event.error}"
            )
        else:
            raise TypeError(f"Unknown event: {event!r}")
        return None

    def _on_child_exited(self, event: ChildExited) -> int:
        if self.state is SupervisorState.RUNNING:
            print("Console exit", flush=True)
        logger.info(
            f"Child pid={self.child.pid} exited with {event.returncode} "
            f"(state={self.state.value})"
        )
        self.state = SupervisorState.TERMINATED
        self.exit_code = EXIT_SUCCESS
        return self.exit_code

    async def _on_shutdown_requested(self, event: ShutdownRequested) -> None:
        if self.state is SupervisorState.SHUTTING_DOWN:
            logger.info(f"Ignoring {event.signal_name}, waiting for child to exit")
            return

        print("Signal exit", flush=True)
        self.state = SupervisorState.SHUTTING_DOWN
        logger.info(
            f"Sending {self.stop_command!r} to pid={self.child.pid} "
            f"after {event.signal_name}"
        )
        try:
            await self.child.write_line(self.stop_command)
        except ChildInputClosed as e:
            logger.warning(f"Could not send stop command: {e}")
        await self.child.close_stdin()

    async def _on_command(self, event: CommandReceived) -> None:
        if self.state is SupervisorState.SHUTTING_DOWN:
            self.dropped_count += 1
            logger.warning(f"Dropping command during shutdown: {event.line!r}")
            return

        if self.echo:
            print(f"{event.line}:", flush=True)
        try:
            await self.child.write_line(event.line)
        except ChildInputClosed as e:
            logger.warning(f"Could not relay {event.line!r}: {e}")
            return
        self.relayed_count += 1
