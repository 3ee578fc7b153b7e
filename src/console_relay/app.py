"""console-relay 应用入口。

包含参数检查、日志配置、组件装配和退出码处理。
"""

from __future__ import annotations

import asyncio
import logging
import sys

from .config import Config, get_config
from .errors import SupervisorError, UsageError
from .events import ChildExited, CommandReceived, EventBus, ListenerFailed
from .runtime.channel import ControlChannel, acquire_channel
from .runtime.listener import ChannelListener
from .runtime.process_runner import ProcessRunner, ProcessSpec
from .signal_manager import SignalManager
from .supervisor import Supervisor

__all__ = ["run_supervisor", "parse_arguments", "main"]

logger = logging.getLogger(__name__)

EXIT_USAGE = 1
EXIT_FATAL = 1

HELP_FLAGS = ("-h", "--help")


def usage(prog: str) -> str:
    return f"Usage:\n{prog} /path/to/java -jar /path/to/server.jar [-arguments...]\n"


def parse_arguments(argv: list[str]) -> list[str]:
    """从 argv 中取出子进程命令行。

    参数原样透传，不做选项解析（避免吞掉子进程自己的参数）。

    Args:
        argv: 完整的 sys.argv（第一个元素是程序名）

    Returns:
        子进程命令行（可执行文件 + 参数）

    Raises:
        UsageError: 参数少于两个，或第一个参数是帮助选项
    """
    command = list(argv[1:])
    if len(command) < 2 or command[0] in HELP_FLAGS:
        raise UsageError("expected an executable and at least one argument")
    return command


async def run_supervisor(command: list[str], config: Config) -> int:
    """运行 supervisor，直到子进程退出。

    顺序：
    1. 安装信号处理器（之后的信号都会排队，不会丢失）
    2. 获取控制通道（失败则不启动子进程）
    3. 启动子进程并开始等待其退出
    4. 启动控制通道监听线程
    5. 运行事件循环

    Returns:
        进程退出码

    Raises:
        SupervisorError: 控制通道或子进程启动失败
    """
    logger.info(f"Starting console relay: {config}")

    bus = EventBus()
    bus.bind()
    signal_manager = SignalManager(bus)
    channel: ControlChannel | None = None
    listener: ChannelListener | None = None

    try:
        await signal_manager.start()

        channel = acquire_channel(config.control_path, config.control_mode)
        if config.hold_open:
            channel.hold_open()

        runner = ProcessRunner()
        child = await runner.spawn(
            ProcessSpec(argv=command, isolate=config.isolate_child)
        )
        child.watch(lambda returncode: bus.publish(ChildExited(returncode)))

        listener = ChannelListener(
            channel.reader(),
            on_line=lambda line: bus.publish_threadsafe(CommandReceived(line)),
            on_error=lambda error: bus.publish_threadsafe(ListenerFailed(error)),
        )
        listener.start()

        print("Started", flush=True)
        supervisor = Supervisor(
            child,
            bus,
            stop_command=config.stop_command,
            echo=config.echo,
        )
        exit_code = await supervisor.run()
        logger.info(
            f"Supervisor finished: relayed={supervisor.relayed_count} "
            f"dropped={supervisor.dropped_count} exit_code={exit_code}"
        )
        return exit_code

    finally:
        await signal_manager.stop()
        bus.close()
        # 监听线程启动后一直持有读端直到进程退出；阻塞中的 readline 持有缓冲区锁，不能在这里关闭
        if channel is not None and listener is None:
            channel.close()


def _configure_logging(config: Config) -> None:
    """配置日志输出。"""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 console_relay 命名空间启用详细日志
    logging.getLogger("console_relay").setLevel(log_level)


def main(argv: list[str] | None = None) -> None:
    """主入口点。"""
    argv = list(sys.argv if argv is None else argv)

    try:
        command = parse_arguments(argv)
    except UsageError:
        print(usage(argv[0] if argv else "console-relay"), end="", flush=True)
        sys.exit(EXIT_USAGE)

    config = get_config()
    _configure_logging(config)

    try:
        exit_code = asyncio.run(run_supervisor(command, config))
    except SupervisorError as e:
        logger.error(f"Fatal: {type(e).__name__}: {e}")
        print(f"ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(EXIT_FATAL)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
