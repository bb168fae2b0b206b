"""Concurrent stdout/stderr capture for a running subprocess.

logshell runtime module v0.1.0

Each output pipe gets its own reader task. Reading both pipes from a single
sequential loop can deadlock: the child blocks writing to a full stderr pipe
while the parent waits for stdout.

Capture lifecycle (one StreamCapture per invocation):

    NOT_STARTED -> STARTED -> STREAMS_OPEN -> DRAINING -> COMPLETED

- STARTED: attached to a started process
- STREAMS_OPEN: both reader tasks are running
- DRAINING: both pipes reported end-of-stream (the child closed its output)
- COMPLETED: exit status collected and the record sink has drained
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum

from ..shared.records import Level, RecordLogger

__all__ = [
    "CaptureMode",
    "CaptureResult",
    "CaptureState",
    "StreamCapture",
    "read_lines",
]

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    """Capture lifecycle state."""

    NOT_STARTED = "not_started"
    STARTED = "started"
    STREAMS_OPEN = "streams_open"
    DRAINING = "draining"
    COMPLETED = "completed"


_TRANSITIONS: dict[CaptureState, CaptureState] = {
    CaptureState.NOT_STARTED: CaptureState.STARTED,
    CaptureState.STARTED: CaptureState.STREAMS_OPEN,
    CaptureState.STREAMS_OPEN: CaptureState.DRAINING,
    CaptureState.DRAINING: CaptureState.COMPLETED,
}


class CaptureMode(str, Enum):
    """How captured lines become records.

    - LINES: every non-empty line is emitted as soon as it is read
    - SUMMARY: after exit, all of stderr becomes one error record and all of
      stdout one info record
    """

    LINES = "lines"
    SUMMARY = "summary"


@dataclass
class CaptureResult:
    """Captured output and exit status of one invocation."""

    returncode: int
    stdout_lines: list[str] = field(default_factory=list)
    stderr_lines: list[str] = field(default_factory=list)

    @property
    def stdout(self) -> str:
        return "\n".join(self.stdout_lines).strip()

    @property
    def stderr(self) -> str:
        return "\n".join(self.stderr_lines).strip()

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _decode_line(data: bytes | bytearray) -> str:
    return bytes(data).decode("utf-8", errors="replace").rstrip("\r\n")


async def read_lines(stream: asyncio.StreamReader) -> AsyncIterator[str]:
    """Yield text lines from a stream until end-of-stream.

    Lines longer than the reader's buffer limit are reassembled rather than
    truncated. A trailing fragment without a newline is yielded last.
    """
    pending = bytearray()
    while True:
        try:
            chunk = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            pending.extend(e.partial)
            if pending:
                yield _decode_line(pending)
            return
        except asyncio.LimitOverrunError as e:
            pending.extend(await stream.read(e.consumed))
            continue
        pending.extend(chunk)
        line = _decode_line(pending)
        pending.clear()
        yield line


class StreamCapture:
    """Turns the two output pipes of a process into log records.

    Example:
        capture = StreamCapture(RecordLogger(ConsoleWriter()))
        result = await capture.run(process)
        assert capture.state is CaptureState.COMPLETED
    """

    def __init__(
        self,
        record_logger: RecordLogger,
        *,
        mode: CaptureMode = CaptureMode.LINES,
        close_sink: bool = True,
    ) -> None:
        """
        Args:
            record_logger: Logger receiving one record per line
            mode: LINES (emit while reading) or SUMMARY (emit after exit)
            close_sink: Close the logger's sink when done; otherwise only
                drain in-flight work so the logger stays usable
        """
        self._logger = record_logger
        self._mode = mode
        self._close_sink = close_sink
        self._state = CaptureState.NOT_STARTED

    @property
    def state(self) -> CaptureState:
        return self._state

    def _transition(self, target: CaptureState) -> None:
        if _TRANSITIONS.get(self._state) is not target:
            raise RuntimeError(
                f"Invalid capture transition {self._state.value} -> {target.value}"
            )
        logger.debug(f"Capture state {self._state.value} -> {target.value}")
        self._state = target

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        level: Level,
        lines: list[str],
    ) -> None:
        if stream is None:
            return
        async for line in read_lines(stream):
            # Blank lines stay in the captured output but produce no record
            lines.append(line)
            if line and self._mode is CaptureMode.LINES:
                self._logger.log(level, line)

    async def run(self, process: asyncio.subprocess.Process) -> CaptureResult:
        """Capture both pipes, wait for exit, then drain the sink.

        Args:
            process: A started process whose stdout/stderr are pipes

        Returns:
            CaptureResult with the collected lines and exit status
        """
        self._transition(CaptureState.STARTED)
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        tasks = [
            asyncio.create_task(
                self._pump(process.stdout, Level.INFO, stdout_lines),
                name=f"capture-stdout-{process.pid}",
            ),
            asyncio.create_task(
                self._pump(process.stderr, Level.ERROR, stderr_lines),
                name=f"capture-stderr-{process.pid}",
            ),
        ]
        self._transition(CaptureState.STREAMS_OPEN)

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        # Pipes can hold data after exit; output is complete only at EOF on both
        self._transition(CaptureState.DRAINING)
        returncode = await process.wait()

        result = CaptureResult(
            returncode=returncode,
            stdout_lines=stdout_lines,
            stderr_lines=stderr_lines,
        )
        if self._mode is CaptureMode.SUMMARY:
            if result.stderr:
                self._logger.error(result.stderr)
            if result.stdout:
                self._logger.info(result.stdout)

        if self._close_sink:
            await self._logger.close()
        else:
            await self._logger.drain()

        self._transition(CaptureState.COMPLETED)
        return result
