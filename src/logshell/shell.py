"""Shell 命令构建与执行。

Shell 是不可变的：每个构建方法都返回一个新的 Shell，
原对象不变，因此同一个基础配置可以安全地派生出多条命令。

用法:
    out = await Shell().args("echo", "hello").exec()

    await (
        Shell("make", "test")
        .dir("/workspace")
        .env("CI", "1")
        .log_kv("job", "unit")
        .with_http_stream("http://localhost:8080/logs")
        .http_header("Authorization", "Bearer abc")
        .stream()
    )
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path

import anyio

from .config import DEFAULT_HTTP_TIMEOUT
from .errors import ProcessExitError, ShellConfigError
from .runtime import CaptureMode, CaptureResult, CaptureState, ProcessRunner, ProcessSpec, StreamCapture
from .shared.records import (
    DEFAULT_FORMAT,
    ConsoleWriter,
    FanoutWriter,
    RecordFormat,
    RecordLogger,
    RecordSink,
)
from .shared.transport import DeliveryClient, DispatchWriter

__all__ = ["Shell", "ShellSpec"]

logger = logging.getLogger(__name__)

Pairs = tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class ShellSpec:
    """命令执行配置（执行开始后只读）。

    Attributes:
        command: 可执行文件
        args: 参数列表
        directory: 工作目录（None = 当前目录）
        env: 追加到父进程环境变量之后的变量
        http_url: 日志收集端点 URL（空 = 不转发）
        http_only: 只发送到 HTTP 端点，不输出到控制台
        http_headers: 附加的 HTTP 请求头
        log_kvs: 每条记录附带的静态属性
        http_timeout: 单次投递超时时间（秒）
        record_logger: 调用方注入的 logger（None = 使用控制台 logger）
        record_format: 记录字段名格式
    """

    command: str = ""
    args: tuple[str, ...] = ()
    directory: Path | None = None
    env: Pairs = ()
    http_url: str = ""
    http_only: bool = False
    http_headers: Pairs = ()
    log_kvs: Pairs = ()
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    record_logger: RecordLogger | None = None
    record_format: RecordFormat = DEFAULT_FORMAT

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]

    @property
    def attributes(self) -> dict[str, str]:
        return dict(self.log_kvs)

    @property
    def headers(self) -> dict[str, str]:
        return dict(self.http_headers)

    def validate(self) -> None:
        """在任何进程/网络活动之前检查配置。

        Raises:
            ShellConfigError: 未指定命令
        """
        if not self.command:
            raise ShellConfigError(
                "no command specified - use arg(), args() or command() to set the command"
            )

    def process_spec(self) -> ProcessSpec:
        env = None
        if self.env:
            env = {**os.environ, **dict(self.env)}
        return ProcessSpec(argv=self.argv, cwd=self.directory, env=env)


class Shell:
    """不可变的命令构建器。

    第一次调用 arg() 设置命令，之后的调用追加参数。
    """

    def __init__(
        self,
        *argv: str,
        spec: ShellSpec | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        self._spec = spec or ShellSpec()
        self._runner = runner or ProcessRunner()
        if argv:
            self._spec = self.args(*argv)._spec

    @property
    def spec(self) -> ShellSpec:
        return self._spec

    def _derive(self, **changes) -> Shell:
        return Shell(spec=replace(self._spec, **changes), runner=self._runner)

    def __repr__(self) -> str:
        return f"Shell(argv={self._spec.argv!r}, http_url={self._spec.http_url or None!r})"

    # ------------------------------------------------------------------
    # 构建方法
    # ------------------------------------------------------------------

    def arg(self, arg: str) -> Shell:
        """第一次调用设置命令，之后追加参数。"""
        if not self._spec.command:
            return self._derive(command=arg)
        return self._derive(args=(*self._spec.args, arg))

    def args(self, *args: str) -> Shell:
        """追加多个参数；尚未设置命令时第一个参数作为命令。"""
        if not args:
            return self
        if not self._spec.command:
            return self._derive(command=args[0], args=(*self._spec.args, *args[1:]))
        return self._derive(args=(*self._spec.args, *args))

    def command(self, command: str) -> Shell:
        """显式设置命令（保留已有参数）。"""
        return self._derive(command=command)

    def dir(self, path: str | os.PathLike[str]) -> Shell:
        """设置工作目录。"""
        return self._derive(directory=Path(path))

    def env(self, key: str, value: str) -> Shell:
        """追加环境变量（在父进程环境之上）。"""
        return self._derive(env=(*self._spec.env, (key, value)))

    def log_kv(self, key: str, value: str) -> Shell:
        """为每条记录添加静态属性，同名 key 后写入者胜出。"""
        return self._derive(log_kvs=(*self._spec.log_kvs, (key, value)))

    def clear_log_kv(self) -> Shell:
        return self._derive(log_kvs=())

    def logger(self, record_logger: RecordLogger) -> Shell:
        """注入自定义 logger，覆盖默认的控制台 logger。

        注入的 logger 在执行结束时只会被排空，不会被关闭。
        """
        return self._derive(record_logger=record_logger)

    def record_format(self, fmt: RecordFormat) -> Shell:
        return self._derive(record_format=fmt)

    def with_http_stream(self, url: str) -> Shell:
        """同时输出到控制台和 HTTP 端点。"""
        return self._derive(http_url=url, http_only=False)

    def with_http_stream_only(self, url: str) -> Shell:
        """只输出到 HTTP 端点。"""
        return self._derive(http_url=url, http_only=True)

    def http_header(self, key: str, value: str) -> Shell:
        """添加 HTTP 请求头，同名请求头后写入者胜出。"""
        return self._derive(http_headers=(*self._spec.http_headers, (key, value)))

    def timeout(self, seconds: float) -> Shell:
        """设置单次投递的超时时间。"""
        return self._derive(http_timeout=seconds)

    # ------------------------------------------------------------------
    # 执行
    # ------------------------------------------------------------------

    def _build_logger(self) -> tuple[RecordLogger, DispatchWriter | None, bool]:
        """构建本次执行使用的 logger。

        Returns:
            (logger, dispatch_writer, owned) 元组；owned 表示 sink 由本次执行创建，
            结束时关闭
        """
        spec = self._spec
        injected = spec.record_logger
        base: RecordSink = injected.sink if injected is not None else ConsoleWriter()

        writer: DispatchWriter | None = None
        sink = base
        if spec.http_url:
            writer = DispatchWriter(
                DeliveryClient(spec.http_url, spec.headers, spec.http_timeout)
            )
            sink = writer if spec.http_only else FanoutWriter(base, writer)

        if injected is not None:
            attributes = {**injected.attributes, **spec.attributes}
            record_logger = RecordLogger(sink, fmt=injected.format, attributes=attributes)
            return record_logger, writer, False

        record_logger = RecordLogger(sink, fmt=spec.record_format, attributes=spec.attributes)
        return record_logger, writer, True

    async def _execute(self, mode: CaptureMode) -> CaptureResult:
        spec = self._spec
        spec.validate()

        record_logger, writer, owned = self._build_logger()
        capture = StreamCapture(record_logger, mode=mode, close_sink=owned)
        logger.debug(f"Executing {spec.argv!r} mode={mode.value} http={bool(writer)}")

        try:
            result = await self._runner.run(spec.process_spec(), capture)
        finally:
            # 启动失败或被取消时，仍然要投递并排空已接受的记录
            if capture.state is not CaptureState.COMPLETED:
                if owned:
                    await record_logger.close()
                else:
                    await record_logger.drain()
            if writer is not None:
                await writer.close()

        if not result.ok:
            raise ProcessExitError(result.returncode, result.stdout, result.stderr)
        return result

    async def exec(self) -> str:
        """执行命令并返回去除首尾空白的 stdout。

        两个输出流并发读取；结束后 stderr（如有）整体记录为一条 error，
        stdout（如有）整体记录为一条 info。

        Raises:
            ShellConfigError: 未指定命令
            ProcessStartError: 进程无法启动
            ProcessExitError: 非零退出（携带捕获的输出）
        """
        result = await self._execute(CaptureMode.SUMMARY)
        return result.stdout

    async def stream(self) -> CaptureResult:
        """执行命令，实时把每一行输出记录为一条日志。

        stdout 的行记录为 info，stderr 的行记录为 error。

        Raises:
            ShellConfigError: 未指定命令
            ProcessStartError: 进程无法启动
            ProcessExitError: 非零退出（携带捕获的输出）
        """
        return await self._execute(CaptureMode.LINES)

    def exec_sync(self) -> str:
        """exec() 的同步版本。"""
        return anyio.run(self.exec)

    def stream_sync(self) -> CaptureResult:
        """stream() 的同步版本。"""
        return anyio.run(self.stream)
