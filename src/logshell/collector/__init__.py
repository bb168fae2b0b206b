"""参考日志收集服务器

logshell collector v0.1.0
同步日期: 2026-10-12
"""

from .server import AUTH_LOGS_PATH, LOGS_PATH, CollectorConfig, CollectorServer

__all__ = [
    "AUTH_LOGS_PATH",
    "LOGS_PATH",
    "CollectorConfig",
    "CollectorServer",
]
