"""结构化记录 logger。

logshell shared/records v0.1.0
同步日期: 2026-10-12

把消息包装为 LogRecord，序列化为 JSON 行后写入 sink。
格式和静态属性都在构造时显式传入。
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping

from .models import DEFAULT_FORMAT, Level, LogRecord, RecordFormat
from .sinks import ConsoleWriter, RecordSink

__all__ = ["RecordLogger"]


class RecordLogger:
    """写入 JSON 行的结构化 logger。

    Example:
        log = RecordLogger(ConsoleWriter(), attributes={"job": "build"})
        log.info("hello world")
        # {"timestamp":1760000000,"level":"info","job":"build","msg":"hello world"}
    """

    def __init__(
        self,
        sink: RecordSink | None = None,
        *,
        fmt: RecordFormat = DEFAULT_FORMAT,
        attributes: Mapping[str, str] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sink = sink if sink is not None else ConsoleWriter()
        self._fmt = fmt
        self._attributes = dict(attributes or {})
        self._clock = clock

    @property
    def sink(self) -> RecordSink:
        return self._sink

    @property
    def format(self) -> RecordFormat:
        return self._fmt

    @property
    def attributes(self) -> dict[str, str]:
        return dict(self._attributes)

    def with_attributes(self, attributes: Mapping[str, str]) -> RecordLogger:
        """返回共享同一 sink、合并了额外静态属性的新 logger。"""
        merged = {**self._attributes, **attributes}
        return RecordLogger(self._sink, fmt=self._fmt, attributes=merged, clock=self._clock)

    def log(self, level: Level, message: str) -> LogRecord:
        record = LogRecord(
            timestamp=int(self._clock()),
            level=level,
            message=message,
            attributes=self._attributes,
        )
        self._sink.write(record.serialize(self._fmt))
        return record

    def info(self, message: str) -> LogRecord:
        return self.log(Level.INFO, message)

    def error(self, message: str) -> LogRecord:
        return self.log(Level.ERROR, message)

    async def drain(self) -> None:
        """等待 sink 中已接受的写入完成，logger 仍可继续使用。"""
        await self._sink.drain()

    async def close(self) -> None:
        """关闭 sink（对 Dispatch Writer 即排空所有在途投递）。"""
        await self._sink.close()
