"""把记录转发到收集端点的 Dispatch Writer。

logshell shared/transport v0.1.0
同步日期: 2026-10-12

对日志层暴露的写入端：接收字节写入，按换行切分记录，
每条完整记录启动一个独立的异步投递任务。close() 是唯一的同步点，
返回时所有已启动的投递（包括最后的残余片段）都已结束。
"""

from __future__ import annotations

import asyncio
import logging
import threading

from .client import DeliveryClient
from .framer import RecordFramer

__all__ = ["DispatchWriter"]

logger = logging.getLogger(__name__)


class DispatchWriter:
    """换行成帧 + 异步投递的写入端。

    write() 可以从任意线程调用；投递任务总是运行在 writer 绑定的事件循环上
    （构造时的运行中循环，或首次在循环内调用 write() 时的循环）。

    Example:
        writer = DispatchWriter(DeliveryClient("http://localhost:8080/logs"))
        writer.write(b'{"level":"info","msg":"hello"}\\n')
        await writer.close()
    """

    def __init__(
        self,
        client: DeliveryClient,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._client = client
        self._framer = RecordFramer()
        self._write_lock = threading.Lock()
        self._count_lock = threading.Lock()
        self._in_flight = 0
        self._closed = False
        self._loop = loop
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                pass
        # 只用于保持任务的强引用，不对外暴露
        self._tasks: set[asyncio.Task[bool]] = set()
        # drain() 的等待者：(所在循环, Event)
        self._waiters: set[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = set()

    @property
    def client(self) -> DeliveryClient:
        return self._client

    @property
    def in_flight(self) -> int:
        """尚未结束的投递数量。"""
        with self._count_lock:
            return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        """接收一次写入，总是报告全部字节已写入。

        写入是否被接受与投递结果无关。

        Args:
            data: 任意字节（通常是一条或多条 JSON 行）

        Returns:
            len(data)
        """
        loop, on_loop = self._resolve_loop()
        with self._write_lock:
            if self._closed:
                logger.warning(f"Dropping {len(data)} bytes written after close")
                return len(data)
            for record in self._framer.feed(data):
                if not record:
                    continue
                if loop is None:
                    logger.warning("No event loop available, dropping log record")
                    continue
                self._launch(record, loop, on_loop)
        return len(data)

    def _resolve_loop(self) -> tuple[asyncio.AbstractEventLoop | None, bool]:
        """返回投递任务所在的循环，以及当前线程是否正运行在该循环上。

        绑定的循环已关闭时（如两次 anyio.run 之间复用同一个 writer），
        改绑到当前运行中的循环。
        """
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None or (self._loop.is_closed() and running is not None):
            if self._loop is not None:
                self._rebind()
            self._loop = running
        return self._loop, running is not None and running is self._loop

    def _rebind(self) -> None:
        # 已关闭循环上的任务永远不会结束，不再计入在途数量
        with self._count_lock:
            if self._in_flight:
                logger.warning(
                    f"Discarding {self._in_flight} deliveries left on a closed event loop"
                )
            self._in_flight = 0
            self._tasks.clear()
            self._waiters.clear()
        logger.debug("Dispatch writer rebound to the running event loop")

    def _launch(
        self,
        record: bytes,
        loop: asyncio.AbstractEventLoop,
        on_loop: bool,
    ) -> None:
        with self._count_lock:
            self._in_flight += 1
        try:
            if on_loop:
                self._start_task(record)
            else:
                loop.call_soon_threadsafe(self._start_task, record)
        except RuntimeError as e:
            # 循环已关闭：丢弃这条记录，不影响写入方
            logger.warning(f"Cannot schedule log delivery, dropping record: {e}")
            self._finish_one()

    def _start_task(self, record: bytes) -> None:
        task = asyncio.get_running_loop().create_task(self._client.send(record))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[bool]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Log delivery task failed: {task.exception()}")
        self._finish_one()

    def _finish_one(self) -> None:
        with self._count_lock:
            self._in_flight = max(self._in_flight - 1, 0)
            if self._in_flight:
                return
            waiters = list(self._waiters)
            self._waiters.clear()
        for loop, event in waiters:
            self._wake(loop, event)

    @staticmethod
    def _wake(loop: asyncio.AbstractEventLoop, event: asyncio.Event) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
        elif not loop.is_closed():
            loop.call_soon_threadsafe(event.set)

    async def close(self) -> None:
        """投递残余片段，并等待所有投递结束。

        可重复调用；第二次调用只等待尚未结束的投递。
        """
        loop, on_loop = self._resolve_loop()

        with self._write_lock:
            already_closed = self._closed
            self._closed = True
            remaining = self._framer.flush()

        if remaining and not already_closed and loop is not None:
            logger.debug(f"Flushing {len(remaining)} trailing bytes")
            self._launch(remaining, loop, on_loop)

        await self.drain()
        await self._client.close()

    async def drain(self) -> None:
        """等待在途投递数量归零。

        每次等待都在调用方的循环上创建新的 Event，因此 writer 可以跨多次
        anyio.run 复用。
        """
        self._resolve_loop()
        loop = asyncio.get_running_loop()
        while True:
            event = asyncio.Event()
            with self._count_lock:
                if self._in_flight == 0:
                    return
                self._waiters.add((loop, event))
            await event.wait()
