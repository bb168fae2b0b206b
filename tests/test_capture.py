"""StreamCapture unit tests.

Test coverage:
- Level mapping (stdout -> info, stderr -> error)
- Dual-stream capture without deadlock
- Per-stream ordering
- Trailing fragment and over-limit lines
- Capture state machine
- Summary mode
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import anyio
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from logshell.runtime import (
    CaptureMode,
    CaptureState,
    ProcessRunner,
    ProcessSpec,
    StreamCapture,
    read_lines,
)
from logshell.shared.records import MemoryWriter, RecordLogger


# =============================================================================
# Helpers
# =============================================================================


def _records(sink: MemoryWriter) -> list[dict]:
    return [json.loads(line) for line in sink.lines()]


async def _capture(argv: list[str], record_logger: RecordLogger, **kwargs):
    runner = ProcessRunner(term_timeout=0.5, kill_timeout=0.3)
    capture = StreamCapture(record_logger, **kwargs)
    result = await runner.run(ProcessSpec(argv=argv), capture)
    return capture, result


def _stream_of(data: bytes, limit: int = 2**16) -> asyncio.StreamReader:
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(data)
    reader.feed_eof()
    return reader


# =============================================================================
# read_lines Tests
# =============================================================================


class TestReadLines:
    """Test the line reader."""

    @pytest.mark.asyncio
    async def test_splits_lines(self):
        lines = [line async for line in read_lines(_stream_of(b"a\nb\r\nc\n"))]
        assert lines == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_trailing_fragment(self):
        lines = [line async for line in read_lines(_stream_of(b"a\nno newline"))]
        assert lines == ["a", "no newline"]

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        assert [line async for line in read_lines(_stream_of(b""))] == []

    @pytest.mark.asyncio
    async def test_line_longer_than_limit(self):
        """Over-limit lines are reassembled, not truncated."""
        long_line = b"x" * 1000
        lines = [
            line async for line in read_lines(_stream_of(long_line + b"\nshort\n", limit=64))
        ]
        assert lines == ["x" * 1000, "short"]

    @pytest.mark.asyncio
    async def test_invalid_utf8_replaced(self):
        lines = [line async for line in read_lines(_stream_of(b"bad \xff byte\n"))]
        assert lines == ["bad � byte"]


# =============================================================================
# Level Mapping Tests
# =============================================================================


class TestLevelMapping:
    """Test stdout/stderr level mapping."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_stdout_is_info(self, memory_sink: MemoryWriter, memory_logger: RecordLogger):
        await _capture([sys.executable, "-c", "print('hello world')"], memory_logger)
        assert _records(memory_sink) == [
            {"timestamp": 1700000000, "level": "info", "msg": "hello world"},
        ]

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_stderr_is_error(self, memory_sink: MemoryWriter, memory_logger: RecordLogger):
        argv = [sys.executable, "-c", "import sys; print('no such file', file=sys.stderr)"]
        await _capture(argv, memory_logger)
        assert _records(memory_sink) == [
            {"timestamp": 1700000000, "level": "error", "msg": "no such file"},
        ]

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_static_attributes_merged(self, memory_sink: MemoryWriter):
        record_logger = RecordLogger(memory_sink, attributes={"job": "unit"})
        await _capture([sys.executable, "-c", "print('x')"], record_logger)
        (record,) = _records(memory_sink)
        assert record["job"] == "unit"
        assert record["level"] == "info"

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_empty_lines_not_logged_but_kept(
        self, memory_sink: MemoryWriter, memory_logger: RecordLogger
    ):
        """Blank lines produce no record but remain part of the captured output."""
        argv = [sys.executable, "-c", "print('a'); print(); print(''); print('b')"]
        _, result = await _capture(argv, memory_logger)
        assert [r["msg"] for r in _records(memory_sink)] == ["a", "b"]
        assert result.stdout_lines == ["a", "", "", "b"]
        assert result.stdout == "a\n\n\nb"

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_summary_keeps_interior_blank_lines(
        self, memory_sink: MemoryWriter, memory_logger: RecordLogger
    ):
        argv = [sys.executable, "-c", "import sys; sys.stdout.write('\\n a\\n\\nb\\n\\n')"]
        _, result = await _capture(argv, memory_logger, mode=CaptureMode.SUMMARY)
        assert result.stdout == "a\n\nb"
        assert [r["msg"] for r in _records(memory_sink)] == ["a\n\nb"]


# =============================================================================
# Dual-stream Tests
# =============================================================================


class TestDualStream:
    """Test concurrent capture of both pipes."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_stderr_flood_does_not_deadlock(
        self, noisy_cli: list[str], memory_sink: MemoryWriter, memory_logger: RecordLogger
    ):
        """More than a pipe buffer on stderr while stdout is idle still completes."""
        argv = [*noisy_cli, "--flood-stderr", str(1024 * 1024), "--stdout", "3"]
        with anyio.fail_after(20):
            _, result = await _capture(argv, memory_logger)

        assert result.returncode == 0
        assert result.stdout_lines == ["out 0", "out 1", "out 2"]
        assert sum(len(line) + 1 for line in result.stderr_lines) >= 1024 * 1024

    @pytest.mark.asyncio
    @pytest.mark.timeout(20)
    async def test_per_stream_order_preserved(
        self, noisy_cli: list[str], memory_sink: MemoryWriter, memory_logger: RecordLogger
    ):
        argv = [*noisy_cli, "--stdout", "200", "--stderr", "200"]
        _, result = await _capture(argv, memory_logger)

        records = _records(memory_sink)
        info = [r["msg"] for r in records if r["level"] == "info"]
        error = [r["msg"] for r in records if r["level"] == "error"]
        assert info == [f"out {i}" for i in range(200)]
        assert error == [f"err {i}" for i in range(200)]
        assert result.stdout_lines == info

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_trailing_partial_line_captured(
        self, noisy_cli: list[str], memory_sink: MemoryWriter, memory_logger: RecordLogger
    ):
        argv = [*noisy_cli, "--stdout", "1", "--partial", "no newline at end"]
        _, result = await _capture(argv, memory_logger)
        assert result.stdout_lines == ["out 0", "no newline at end"]

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_long_line_not_truncated(
        self, noisy_cli: list[str], memory_sink: MemoryWriter, memory_logger: RecordLogger
    ):
        argv = [*noisy_cli, "--long-line", str(200_000)]
        _, result = await _capture(argv, memory_logger)
        assert result.stdout_lines == ["x" * 200_000]

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_exit_code_reported(
        self, noisy_cli: list[str], memory_logger: RecordLogger
    ):
        argv = [*noisy_cli, "--stderr", "1", "--exit-code", "3"]
        _, result = await _capture(argv, memory_logger)
        assert result.returncode == 3
        assert result.ok is False
        assert result.stderr == "err 0"


# =============================================================================
# State Machine Tests
# =============================================================================


class TestStateMachine:
    """Test the capture lifecycle."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_completed_after_run(self, memory_logger: RecordLogger):
        capture = StreamCapture(memory_logger)
        assert capture.state is CaptureState.NOT_STARTED

        runner = ProcessRunner()
        await runner.run(ProcessSpec(argv=[sys.executable, "-c", "print(1)"]), capture)
        assert capture.state is CaptureState.COMPLETED

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_capture_cannot_be_reused(self, memory_logger: RecordLogger):
        capture = StreamCapture(memory_logger, close_sink=False)
        runner = ProcessRunner()
        spec = ProcessSpec(argv=[sys.executable, "-c", "print(1)"])
        await runner.run(spec, capture)

        with pytest.raises(RuntimeError, match="Invalid capture transition"):
            await runner.run(spec, capture)

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_sink_closed_when_owned(self, memory_sink: MemoryWriter, memory_logger: RecordLogger):
        await _capture([sys.executable, "-c", "print(1)"], memory_logger)
        assert memory_sink.closed is True

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_sink_left_open_when_not_owned(
        self, memory_sink: MemoryWriter, memory_logger: RecordLogger
    ):
        await _capture([sys.executable, "-c", "print(1)"], memory_logger, close_sink=False)
        assert memory_sink.closed is False

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_cancellation_stops_readers(self, memory_logger: RecordLogger):
        """Cancelling the capture terminates the process and never completes."""
        capture = StreamCapture(memory_logger)
        runner = ProcessRunner(term_timeout=0.5, kill_timeout=0.3)
        spec = ProcessSpec(argv=[sys.executable, "-c", "import time; print('up', flush=True); time.sleep(30)"])

        task = asyncio.create_task(runner.run(spec, capture))
        await asyncio.sleep(0.5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert capture.state is CaptureState.STREAMS_OPEN


# =============================================================================
# Summary Mode Tests
# =============================================================================


class TestSummaryMode:
    """Test SUMMARY mode."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_one_record_per_stream(
        self, noisy_cli: list[str], memory_sink: MemoryWriter, memory_logger: RecordLogger
    ):
        argv = [*noisy_cli, "--stdout", "2", "--stderr", "2"]
        await _capture(argv, memory_logger, mode=CaptureMode.SUMMARY)
        assert _records(memory_sink) == [
            {"timestamp": 1700000000, "level": "error", "msg": "err 0\nerr 1"},
            {"timestamp": 1700000000, "level": "info", "msg": "out 0\nout 1"},
        ]

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_silent_process_logs_nothing(
        self, memory_sink: MemoryWriter, memory_logger: RecordLogger
    ):
        await _capture([sys.executable, "-c", "pass"], memory_logger, mode=CaptureMode.SUMMARY)
        assert memory_sink.lines() == []
