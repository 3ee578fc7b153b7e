"""console-relay 环境变量配置管理。

环境变量:
    RELAY_CONTROL_PATH: 控制通道（命名管道）路径
        - 默认 minecraft.control（当前工作目录下）

    RELAY_CONTROL_MODE: 新建命名管道的权限位（八进制）
        - 默认 0660
        - 无效值回退到默认值

    RELAY_STOP_COMMAND: 收到终止信号时写入子进程 stdin 的命令
        - 默认 stop

    RELAY_HOLD_OPEN: 是否由 supervisor 自己持有一个写端
        - false/0/no = 不持有 (默认，每个写入方断开后都能读到 EOF，末尾不带换行的片段照常转发)
        - true/1/yes = 持有 (写入方断开后读取阻塞等待；不带换行的片段一直等到下一个换行)

    RELAY_ISOLATE_CHILD: 是否在新 session 中启动子进程
        - true/1/yes = 隔离 (默认，终端 Ctrl+C 只发给 supervisor)
        - false/0/no = 不隔离

    RELAY_ECHO: 是否把转发的命令回显到 stdout
        - true/1/yes = 回显 (默认)
        - false/0/no = 不回显

    RELAY_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reload_config",
    "DEFAULT_CONTROL_PATH",
    "DEFAULT_CONTROL_MODE",
    "DEFAULT_STOP_COMMAND",
]

DEFAULT_CONTROL_PATH = "minecraft.control"
DEFAULT_CONTROL_MODE = 0o660
DEFAULT_STOP_COMMAND = "stop"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_mode(value: str | None) -> int:
    """解析八进制权限位。

    Args:
        value: 例如 "0660" 或 "660"

    Returns:
        权限位，无效值返回 DEFAULT_CONTROL_MODE
    """
    if not value or not value.strip():
        return DEFAULT_CONTROL_MODE
    try:
        mode = int(value.strip(), 8)
    except ValueError:
        return DEFAULT_CONTROL_MODE
    if mode < 0 or mode > 0o777:
        return DEFAULT_CONTROL_MODE
    return mode


def _parse_command(value: str | None) -> str:
    """解析停止命令，去掉换行符，空值使用默认命令。"""
    if value is None:
        return DEFAULT_STOP_COMMAND
    command = value.strip("\r\n")
    return command or DEFAULT_STOP_COMMAND


@dataclass
class Config:
    """console-relay 配置。

    Attributes:
        control_path: 控制通道路径
        control_mode: 新建命名管道的权限位
        stop_command: 关闭时发送给子进程的命令
        hold_open: 是否持有控制通道写端（默认关闭，开启后不带换行的片段不会被转发）
        isolate_child: 是否在新 session 中启动子进程
        echo: 是否回显转发的命令
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    control_path: str = DEFAULT_CONTROL_PATH
    control_mode: int = DEFAULT_CONTROL_MODE
    stop_command: str = DEFAULT_STOP_COMMAND
    hold_open: bool = False
    isolate_child: bool = True
    echo: bool = True
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(control_path={self.control_path}, "
            f"control_mode={self.control_mode:04o}, "
            f"stop_command={self.stop_command!r}, "
            f"hold_open={self.hold_open}, "
            f"isolate_child={self.isolate_child}, "
            f"echo={self.echo}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "console-relay"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"relay_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("RELAY_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        control_path=os.environ.get("RELAY_CONTROL_PATH") or DEFAULT_CONTROL_PATH,
        control_mode=_parse_mode(os.environ.get("RELAY_CONTROL_MODE")),
        stop_command=_parse_command(os.environ.get("RELAY_STOP_COMMAND")),
        hold_open=_parse_bool(os.environ.get("RELAY_HOLD_OPEN"), default=False),
        isolate_child=_parse_bool(os.environ.get("RELAY_ISOLATE_CHILD"), default=True),
        echo=_parse_bool(os.environ.get("RELAY_ECHO"), default=True),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
