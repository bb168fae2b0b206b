"""日志记录模型定义。

logshell shared/records v0.1.0
同步日期: 2026-10-12

一条记录 = 一个 JSON 对象 + 换行符。
字段名由显式传入的 RecordFormat 决定，不使用进程级的全局配置。
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "Level",
    "LogRecord",
    "RecordFormat",
    "DEFAULT_FORMAT",
]


class Level(str, Enum):
    """记录级别。"""

    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class RecordFormat:
    """记录序列化格式。

    Attributes:
        timestamp_field: 时间戳字段名（Unix 秒，整数）
        level_field: 级别字段名
        message_field: 消息字段名
    """

    timestamp_field: str = "timestamp"
    level_field: str = "level"
    message_field: str = "msg"

    @property
    def reserved(self) -> frozenset[str]:
        """核心字段名，静态属性不能覆盖。"""
        return frozenset({self.timestamp_field, self.level_field, self.message_field})


DEFAULT_FORMAT = RecordFormat()


class LogRecord(BaseModel):
    """不可变的结构化日志记录。

    Attributes:
        timestamp: Unix 时间戳（秒）
        level: 记录级别
        message: 消息文本
        attributes: 调用方提供的静态属性（扁平的字符串键值对）
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(default_factory=lambda: int(time.time()))
    level: Level
    message: str
    attributes: dict[str, str] = Field(default_factory=dict)

    def to_dict(self, fmt: RecordFormat = DEFAULT_FORMAT) -> dict[str, Any]:
        """按格式转换为扁平字典，核心字段优先于同名属性。"""
        data: dict[str, Any] = {
            fmt.timestamp_field: self.timestamp,
            fmt.level_field: self.level.value,
        }
        reserved = fmt.reserved
        for key, value in self.attributes.items():
            if key not in reserved:
                data[key] = value
        data[fmt.message_field] = self.message
        return data

    def serialize(self, fmt: RecordFormat = DEFAULT_FORMAT) -> bytes:
        """序列化为一行 JSON（以换行符结尾）。"""
        line = json.dumps(self.to_dict(fmt), ensure_ascii=False, separators=(",", ":"))
        return line.encode("utf-8") + b"\n"
