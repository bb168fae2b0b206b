"""Runtime module for subprocess management and output capture.

This module provides isolated process execution with reliable termination,
and concurrent capture of a process's stdout/stderr into log records.
"""

from __future__ import annotations

from .capture import CaptureMode, CaptureResult, CaptureState, StreamCapture, read_lines
from .process_runner import ProcessRunner, ProcessSpec

__all__ = [
    "CaptureMode",
    "CaptureResult",
    "CaptureState",
    "ProcessRunner",
    "ProcessSpec",
    "StreamCapture",
    "read_lines",
]
