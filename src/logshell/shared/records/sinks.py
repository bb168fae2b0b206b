"""本地写入端与扇出。

logshell shared/records v0.1.0
同步日期: 2026-10-12

所有写入端都满足同一个最小接口：
    write(data: bytes) -> int      同步写入，返回写入的字节数
    async drain() -> None          等待已接受的写入完成（写入端仍可用）
    async close() -> None          刷新/排空并释放资源
"""

from __future__ import annotations

import asyncio
import sys
import threading
from typing import BinaryIO, Protocol, runtime_checkable

__all__ = [
    "RecordSink",
    "ConsoleWriter",
    "MemoryWriter",
    "FanoutWriter",
]


@runtime_checkable
class RecordSink(Protocol):
    """记录写入端接口。"""

    def write(self, data: bytes) -> int: ...

    async def drain(self) -> None: ...

    async def close(self) -> None: ...


class ConsoleWriter:
    """写入二进制流（默认 stdout），每次写入后刷新。"""

    def __init__(self, stream: BinaryIO | None = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    @property
    def stream(self) -> BinaryIO:
        # 延迟解析 sys.stdout，便于测试中替换
        return self._stream if self._stream is not None else sys.stdout.buffer

    def write(self, data: bytes) -> int:
        with self._lock:
            stream = self.stream
            stream.write(data)
            stream.flush()
        return len(data)

    async def drain(self) -> None:
        with self._lock:
            self.stream.flush()

    async def close(self) -> None:
        with self._lock:
            self.stream.flush()


class MemoryWriter:
    """把写入累积在内存中（用于测试和 exec 结果检查）。"""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self._lock = threading.Lock()
        self.closed = False

    def write(self, data: bytes) -> int:
        with self._lock:
            self._chunks.append(bytes(data))
        return len(data)

    async def drain(self) -> None:
        pass

    async def close(self) -> None:
        self.closed = True

    def getvalue(self) -> bytes:
        with self._lock:
            return b"".join(self._chunks)

    def lines(self) -> list[bytes]:
        return [line for line in self.getvalue().split(b"\n") if line]


class FanoutWriter:
    """把每次写入原样复制到所有写入端。

    各写入端独立成帧/投递，彼此之间没有顺序保证。
    """

    def __init__(self, *sinks: RecordSink) -> None:
        self._sinks = list(sinks)

    @property
    def sinks(self) -> list[RecordSink]:
        return list(self._sinks)

    def write(self, data: bytes) -> int:
        for sink in self._sinks:
            sink.write(data)
        return len(data)

    async def drain(self) -> None:
        await asyncio.gather(*(sink.drain() for sink in self._sinks))

    async def close(self) -> None:
        await asyncio.gather(*(sink.close() for sink in self._sinks))
