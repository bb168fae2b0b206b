"""logshell 异常类。

只有进程级别的问题（配置错误、启动失败、非零退出）会抛给调用方；
投递相关的错误在 Delivery Client 内部消化。
"""

from __future__ import annotations

from collections.abc import Sequence

__all__ = [
    "ShellError",
    "ShellConfigError",
    "ProcessStartError",
    "ProcessExitError",
    "DeliveryError",
]


class ShellError(Exception):
    """logshell 基础异常。"""
    pass


class ShellConfigError(ShellError):
    """配置错误（如未指定命令）。"""
    pass


class ProcessStartError(ShellError):
    """进程启动失败（找不到可执行文件、无权限等）。

    Attributes:
        argv: 启动时使用的命令行
        reason: 底层错误描述
    """

    def __init__(self, argv: Sequence[str], reason: str) -> None:
        self.argv = list(argv)
        self.reason = reason
        command = self.argv[0] if self.argv else "(empty)"
        super().__init__(f"failed to start command {command!r}: {reason}")


class ProcessExitError(ShellError):
    """进程以非零状态码退出。

    这是正常的执行结果而不是崩溃，异常携带已捕获的输出。

    Attributes:
        returncode: 退出码
        stdout: 捕获的标准输出（已去除首尾空白）
        stderr: 捕获的标准错误（已去除首尾空白）
    """

    def __init__(self, returncode: int, stdout: str = "", stderr: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"command exited with status {returncode}"
        if stderr:
            message = f"{message}: {stderr.splitlines()[-1]}"
        super().__init__(message)


class DeliveryError(ShellError):
    """单条记录投递失败（仅在 Delivery Client 内部使用）。

    Attributes:
        status_code: HTTP 状态码（网络错误时为 0）
        message: 错误消息
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"[{status_code}] {message}")
