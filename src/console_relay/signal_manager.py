"""信号管理模块。

把 OS 信号转换为事件总线上的 ShutdownRequested 事件：
- SIGINT / SIGTERM: 都触发关闭流程（发送 stop 命令、关闭 stdin、等待子进程退出）

没有全局标志位：信号只是 supervisor 阻塞等待的另一个事件来源。
重复信号同样会进入总线，是否生效由 supervisor 的状态机决定。
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from .events import EventBus, ShutdownRequested

__all__ = ["SignalManager", "HANDLED_SIGNALS"]

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SignalManager:
    """信号管理器。

    Example:
        ```python
        bus = EventBus()
        signal_manager = SignalManager(bus)

        async def main():
            bus.bind()
            await signal_manager.start()
            try:
                await supervisor.run()
            finally:
                await signal_manager.stop()

        asyncio.run(main())
        ```

    Attributes:
        bus: 事件总线
    """

    def __init__(self, bus: EventBus) -> None:
        """初始化信号管理器。

        Args:
            bus: 事件总线
        """
        self.bus = bus

        # 内部状态
        self._signal_count: int = 0
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def signal_count(self) -> int:
        """收到的信号数量。"""
        return self._signal_count

    async def start(self) -> None:
        """启动信号监听。

        必须在 asyncio 事件循环中调用。
        """
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._running = True

        for signum in HANDLED_SIGNALS:
            self._loop.add_signal_handler(signum, self._handle_signal, signum)
        logger.debug("Signal handlers installed (SIGINT, SIGTERM)")

    async def stop(self) -> None:
        """停止信号监听，恢复默认处理器。"""
        if not self._running:
            return

        self._running = False

        if self._loop:
            for signum in HANDLED_SIGNALS:
                try:
                    self._loop.remove_signal_handler(signum)
                except (ValueError, RuntimeError) as e:
                    logger.debug(f"Error removing handler for {signum}: {e}")

        logger.debug("Signal handlers removed")

    def _handle_signal(self, signum: int) -> None:
        """处理 SIGINT / SIGTERM。"""
        self._signal_count += 1
        name = signal.Signals(signum).name

        if self._signal_count > 1:
            logger.warning(f"{name} received again, shutdown already in progress")
        else:
            logger.info(f"{name} received, initiating graceful shutdown")

        self.bus.publish(ShutdownRequested(name))
