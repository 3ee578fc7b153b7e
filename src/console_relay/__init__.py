"""console-relay - 命名管道命令转发 supervisor。

启动长期运行的服务器进程，把控制通道（命名管道）中的每一行转发到
子进程的 stdin；收到 SIGINT/SIGTERM 时发送 stop 命令并等待子进程退出。

环境变量:
    RELAY_CONTROL_PATH: 控制通道路径 (默认 minecraft.control)
    RELAY_STOP_COMMAND: 关闭命令 (默认 stop)
    RELAY_LOG_DEBUG: 日志输出到临时文件 (默认 false)

用法:
    console-relay /path/to/java -jar /path/to/server.jar [-arguments...]
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
