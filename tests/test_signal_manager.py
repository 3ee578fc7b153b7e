"""SignalManager 模块测试。

测试信号管理器的基本功能：
- 信号转换为 ShutdownRequested 事件
- 重复信号
- 重复信号的日志级别
- 真实信号处理器的安装与移除
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal

import pytest

from console_relay.events import EventBus, ShutdownRequested
from console_relay.signal_manager import HANDLED_SIGNALS, SignalManager


class TestSignalManagerInit:
    """SignalManager 初始化测试。"""

    def test_init(self):
        bus = EventBus()
        manager = SignalManager(bus)

        assert manager.bus is bus
        assert manager.signal_count == 0

    def test_handled_signals(self):
        assert set(HANDLED_SIGNALS) == {signal.SIGINT, signal.SIGTERM}


class TestSignalHandling:
    """信号处理测试。"""

    @pytest.mark.asyncio
    async def test_sigterm_publishes_shutdown(self):
        """SIGTERM 产生一个 ShutdownRequested 事件。"""
        bus = EventBus()
        manager = SignalManager(bus)

        manager._handle_signal(signal.SIGTERM)

        assert manager.signal_count == 1
        assert await bus.receive() == ShutdownRequested("SIGTERM")

    @pytest.mark.asyncio
    async def test_sigint_publishes_shutdown(self):
        bus = EventBus()
        manager = SignalManager(bus)

        manager._handle_signal(signal.SIGINT)

        assert await bus.receive() == ShutdownRequested("SIGINT")

    @pytest.mark.asyncio
    async def test_repeated_signals_all_published(self):
        """重复信号也进入总线，由 supervisor 决定是否忽略。"""
        bus = EventBus()
        manager = SignalManager(bus)

        manager._handle_signal(signal.SIGINT)
        manager._handle_signal(signal.SIGTERM)

        assert manager.signal_count == 2
        assert await bus.receive() == ShutdownRequested("SIGINT")
        assert await bus.receive() == ShutdownRequested("SIGTERM")

    def test_repeated_signal_logged_as_warning(self, caplog):
        manager = SignalManager(EventBus())

        with caplog.at_level(logging.INFO, logger="console_relay.signal_manager"):
            manager._handle_signal(signal.SIGTERM)
            manager._handle_signal(signal.SIGTERM)

        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.INFO, logging.WARNING]
        assert "again" in caplog.records[1].getMessage()

    def test_publish_after_bus_closed_is_dropped(self):
        """总线关闭后收到的信号只计数，不抛出异常。"""
        bus = EventBus()
        bus.close()
        manager = SignalManager(bus)

        manager._handle_signal(signal.SIGTERM)

        assert manager.signal_count == 1


class TestSignalManagerLifecycle:
    """启动/停止测试。"""

    @pytest.mark.asyncio
    async def test_real_signal_delivered(self):
        """安装处理器后，真实的 SIGTERM 进入事件总线，而不是终止进程。"""
        bus = EventBus()
        manager = SignalManager(bus)
        await manager.start()
        try:
            os.kill(os.getpid(), signal.SIGTERM)
            event = await asyncio.wait_for(bus.receive(), timeout=5)
        finally:
            await manager.stop()

        assert event == ShutdownRequested("SIGTERM")

    @pytest.mark.asyncio
    async def test_start_twice_and_stop_twice(self):
        bus = EventBus()
        manager = SignalManager(bus)

        await manager.start()
        await manager.start()
        await manager.stop()
        await manager.stop()

        assert signal.getsignal(signal.SIGTERM) == signal.SIG_DFL

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        manager = SignalManager(EventBus())

        await manager.stop()
