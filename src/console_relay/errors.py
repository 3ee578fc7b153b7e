"""console-relay 异常类。

所有异常都继承自 SupervisorError。致命错误（通道、子进程启动）由
app.main 捕获后以退出码 1 结束进程；监听器读取错误和子进程 stdin
关闭只记录日志，不中断监督。
"""

from __future__ import annotations

__all__ = [
    "SupervisorError",
    "UsageError",
    "ChannelTypeError",
    "ChannelAccessError",
    "SpawnError",
    "ListenerReadError",
    "ChildInputClosed",
]


class SupervisorError(Exception):
    """console-relay 基础异常。"""
    pass


class UsageError(SupervisorError):
    """命令行参数不合法。"""
    pass


class ChannelTypeError(SupervisorError):
    """控制通道路径已存在，但不是命名管道。

    Attributes:
        path: 控制通道路径
    """

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"{path} exists and is not a pipe.")


class ChannelAccessError(SupervisorError):
    """创建或打开控制通道失败（类型错误以外的文件系统错误）。

    Attributes:
        path: 控制通道路径
        reason: 底层错误描述
    """

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        message = f"Could not open {path} for reading."
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class SpawnError(SupervisorError):
    """子进程无法启动，或无法获取其 stdin。

    Attributes:
        argv: 启动参数
    """

    def __init__(self, argv: list[str], reason: str = "") -> None:
        self.argv = list(argv)
        message = f"Could not start {argv[0] if argv else '<empty>'}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ListenerReadError(SupervisorError):
    """控制通道读取失败，监听器永久停止。"""
    pass


class ChildInputClosed(SupervisorError):
    """子进程 stdin 已关闭（通常是子进程已经退出）。"""
    pass
