"""LSH 环境变量配置管理。

环境变量:
    LSH_HTTP_URL: 默认的日志收集端点 URL
        - 空/未设置 = 不转发，只输出到控制台
        - 例: "http://localhost:8080/logs"

    LSH_HTTP_ONLY: 只把日志发送到 HTTP 端点
        - true/1/yes = 开启 (不再输出到控制台)
        - false/0/no = 关闭 (默认，控制台 + HTTP 同时输出)

    LSH_HTTP_TIMEOUT: 单次投递请求的超时时间（秒）
        - 默认 30 秒
        - 限制在 1-300 秒范围

    LSH_HTTP_HEADERS: 附加的 HTTP 请求头
        - 逗号分割的 Key:Value 列表
        - 例: "Authorization:Bearer abc, X-Source:ci"

    LSH_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (诊断日志输出到临时文件)
        - false/0/no = 关闭 (默认，诊断日志输出到 stderr)

    LSH_LOG_LEVEL: 诊断日志级别（stderr 模式下）
        - DEBUG/INFO/WARNING/ERROR，默认 WARNING
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

__all__ = [
    "Config",
    "DEFAULT_HTTP_TIMEOUT",
    "load_config",
    "get_config",
    "reload_config",
    "parse_header",
    "parse_key_value",
]

# 默认投递超时（秒）
DEFAULT_HTTP_TIMEOUT = 30.0

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_timeout(value: str | None) -> float:
    """解析超时时间环境变量。"""
    if not value:
        return DEFAULT_HTTP_TIMEOUT
    try:
        timeout = float(value)
        return max(1.0, min(timeout, 300.0))  # 限制在 1-300 秒范围
    except ValueError:
        return DEFAULT_HTTP_TIMEOUT


def parse_header(item: str) -> tuple[str, str]:
    """解析单个 ``Key:Value`` 请求头。

    Raises:
        ValueError: 缺少冒号或 key 为空
    """
    key, sep, value = item.partition(":")
    key = key.strip()
    if not sep or not key:
        raise ValueError(f"invalid header {item!r}, expected KEY:VALUE")
    return key, value.strip()


def parse_key_value(item: str) -> tuple[str, str]:
    """解析单个 ``KEY=VALUE`` 参数。

    Raises:
        ValueError: 缺少等号或 key 为空
    """
    key, sep, value = item.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ValueError(f"invalid pair {item!r}, expected KEY=VALUE")
    return key, value


def _parse_headers(value: str | None) -> dict[str, str]:
    """解析请求头列表环境变量，无效项被忽略。"""
    if not value or not value.strip():
        return {}

    headers: dict[str, str] = {}
    for item in value.split(","):
        if not item.strip():
            continue
        try:
            key, header_value = parse_header(item)
        except ValueError:
            continue
        headers[key] = header_value
    return headers


def _parse_log_level(value: str | None) -> str:
    """解析日志级别，无效值返回 WARNING。"""
    if not value:
        return "WARNING"
    level = value.strip().upper()
    return level if level in _LOG_LEVELS else "WARNING"


@dataclass
class Config:
    """LSH 配置。

    Attributes:
        http_url: 默认的日志收集端点 URL（空字符串表示不转发）
        http_only: 只发送到 HTTP 端点
        http_timeout: 单次投递请求的超时时间（秒）
        http_headers: 附加的 HTTP 请求头
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        log_level: stderr 模式下的诊断日志级别
    """

    http_url: str = ""
    http_only: bool = False
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    http_headers: dict[str, str] = field(default_factory=dict)
    log_debug: bool = False
    log_file: str | None = None
    log_level: str = "WARNING"

    @property
    def http_enabled(self) -> bool:
        """是否配置了 HTTP 转发。"""
        return bool(self.http_url)

    def __repr__(self) -> str:
        # 请求头可能包含 token，只输出 key
        header_keys = ",".join(sorted(self.http_headers)) or "none"
        return (
            f"Config(http_url={self.http_url or 'none'}, "
            f"http_only={self.http_only}, "
            f"http_timeout={self.http_timeout}, "
            f"http_headers={header_keys}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"log_level={self.log_level})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "logshell"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"lsh_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("LSH_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        http_url=os.environ.get("LSH_HTTP_URL", "").strip(),
        http_only=_parse_bool(os.environ.get("LSH_HTTP_ONLY"), default=False),
        http_timeout=_parse_timeout(os.environ.get("LSH_HTTP_TIMEOUT")),
        http_headers=_parse_headers(os.environ.get("LSH_HTTP_HEADERS")),
        log_debug=log_debug,
        log_file=log_file,
        log_level=_parse_log_level(os.environ.get("LSH_LOG_LEVEL")),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
