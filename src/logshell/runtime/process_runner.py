"""Process runner with subprocess isolation and reliable termination.

logshell runtime module v0.1.0

This module provides:
- Cross-platform subprocess isolation (new session/process group)
- Start failures surfaced as ProcessStartError, distinct from non-zero exits
- Reliable termination with graceful shutdown (SIGTERM -> timeout -> SIGKILL)
- Cancel-safe cleanup using asyncio.shield

Key design points:
- POSIX: start_new_session=True to create new process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Cancellation terminates the process group, not just the main process
- Output pipes are owned by StreamCapture; the runner only starts, waits and
  cleans up
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import ProcessStartError
from .capture import CaptureResult, StreamCapture

__all__ = [
    "ProcessRunner",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = current directory)
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None


@dataclass
class ProcessRunner:
    """Cross-platform process runner with isolation and reliable termination.

    Example:
        runner = ProcessRunner()
        spec = ProcessSpec(argv=["make", "test"], cwd=Path("/workspace"))
        result = await runner.run(spec, StreamCapture(record_logger))
        print(result.returncode)
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    async def start(self, spec: ProcessSpec) -> asyncio.subprocess.Process:
        """Start the subprocess with piped stdout/stderr.

        stdin is DEVNULL so the child never competes with the parent for
        its terminal or input channel.

        Raises:
            ProcessStartError: If the executable cannot be started
        """
        if not spec.argv:
            raise ProcessStartError(spec.argv, "empty argv")

        kwargs = self._build_subprocess_kwargs(spec)
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **kwargs,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise ProcessStartError(spec.argv, e.strerror or str(e)) from e
        except OSError as e:
            raise ProcessStartError(spec.argv, str(e)) from e

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd}"
        )
        return process

    async def run(self, spec: ProcessSpec, capture: StreamCapture) -> CaptureResult:
        """Start the subprocess and capture both output streams to completion.

        This method:
        1. Starts the subprocess in an isolated process group/session
        2. Hands both pipes to the capture (one reader task per pipe)
        3. Waits for the readers, the exit status and the sink drain
        4. Ensures the process is terminated if the caller is cancelled

        Raises:
            ProcessStartError: If the executable cannot be started
        """
        process: asyncio.subprocess.Process | None = None
        try:
            process = await self.start(spec)
            result = await capture.run(process)
            logger.debug(
                f"Subprocess completed pid={process.pid} "
                f"returncode={result.returncode}"
            )
            return result
        finally:
            await self._safe_cleanup(process)

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs."""
        kwargs: dict[str, Any] = {}

        if spec.cwd is not None:
            kwargs["cwd"] = spec.cwd

        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # POSIX: start_new_session (equivalent to setsid)
            kwargs["start_new_session"] = True

        return kwargs

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
    ) -> None:
        """Terminate a still-running subprocess, shielded from cancellation."""
        if process is None or process.returncode is not None:
            return
        try:
            await asyncio.shield(self.terminate(process))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try cleanup
            await self.terminate(process)
            raise

    async def terminate(self, process: asyncio.subprocess.Process) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit
        """
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        steps = [
            ("graceful", self._request_stop, self.term_timeout),
            ("kill", self._force_kill, self.kill_timeout),
        ]
        try:
            for name, send, timeout in steps:
                await send(process)
                if await self._exited_within(process, timeout):
                    logger.debug(
                        f"Subprocess stopped ({name}) pid={pid} "
                        f"returncode={process.returncode}"
                    )
                    return
            logger.warning(f"Subprocess did not exit after kill pid={pid}")
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except Exception as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

    @staticmethod
    async def _exited_within(process: asyncio.subprocess.Process, timeout: float) -> bool:
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _request_stop(self, process: asyncio.subprocess.Process) -> None:
        if IS_WINDOWS:
            await self._windows_terminate(process)
        else:
            await self._posix_signal(process, signal.SIGTERM)

    async def _force_kill(self, process: asyncio.subprocess.Process) -> None:
        logger.debug(f"Force killing subprocess pid={process.pid}")
        if IS_WINDOWS:
            process.kill()
        else:
            await self._posix_signal(process, signal.SIGKILL)

    async def _posix_signal(
        self,
        process: asyncio.subprocess.Process,
        sig: signal.Signals,
    ) -> None:
        """Send a signal to the whole process group on POSIX systems."""
        try:
            # Process group ID equals pid due to start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)

    async def _windows_terminate(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Send CTRL_BREAK_EVENT on Windows."""
        try:
            # Works because of CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
