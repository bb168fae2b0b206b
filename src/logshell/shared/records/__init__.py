"""日志记录模块。

logshell shared/records v0.1.0
同步日期: 2026-10-12
"""

from __future__ import annotations

from .logger import RecordLogger
from .models import DEFAULT_FORMAT, Level, LogRecord, RecordFormat
from .sinks import ConsoleWriter, FanoutWriter, MemoryWriter, RecordSink

__all__ = [
    "DEFAULT_FORMAT",
    "ConsoleWriter",
    "FanoutWriter",
    "Level",
    "LogRecord",
    "MemoryWriter",
    "RecordFormat",
    "RecordLogger",
    "RecordSink",
]
