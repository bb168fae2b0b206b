"""日志记录传输模块。

logshell shared/transport v0.1.0
同步日期: 2026-10-12

成帧 -> 投递 -> 排空：
- RecordFramer: 按换行切分字节流
- DeliveryClient: 单条记录的 HTTP 投递（尽力而为）
- DispatchWriter: 写入端，管理并发投递并在关闭时排空
"""

from __future__ import annotations

from .client import DEFAULT_HEADERS, DeliveryClient, merge_headers
from .framer import RECORD_TERMINATOR, RecordFramer
from .writer import DispatchWriter

__all__ = [
    "DEFAULT_HEADERS",
    "DeliveryClient",
    "DispatchWriter",
    "RECORD_TERMINATOR",
    "RecordFramer",
    "merge_headers",
]
