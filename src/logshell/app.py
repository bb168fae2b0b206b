"""logshell 应用入口。

负责诊断日志配置和主入口点。诊断日志（投递失败、进程生命周期）
只写 stderr 或调试文件，不会混入 stdout 上的记录流。
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence

from .cli import run_cli
from .config import Config, get_config

__all__ = ["configure_logging", "main"]

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(config: Config) -> None:
    """按配置设置诊断日志输出。"""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = getattr(logging, config.log_level, logging.WARNING)

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
        force=True,
    )
    # 只对 logshell 命名空间启用详细日志
    logging.getLogger("logshell").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> None:
    """主入口点。"""
    config = get_config()
    configure_logging(config)
    logger.debug(f"Starting logshell: {config}")
    sys.exit(run_cli(argv, config))


if __name__ == "__main__":
    main()
