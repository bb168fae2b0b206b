"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import io
import socket
import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from logshell.collector import CollectorConfig, CollectorServer  # noqa: E402
from logshell.shared.records import MemoryWriter, RecordLogger  # noqa: E402

# 测试用子进程脚本目录
FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def noisy_cli() -> list[str]:
    """同时写 stdout/stderr 的测试脚本命令行前缀。"""
    return [sys.executable, str(FIXTURES_DIR / "noisy_cli.py")]


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """临时工作目录。"""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def collector():
    """运行中的收集服务器（请求体写入内存而不是 stdout）。"""
    server = CollectorServer(sink=io.BytesIO())
    server.start()
    yield server
    server.stop()


@pytest.fixture
def failing_collector():
    """总是返回 503 的收集服务器。"""
    server = CollectorServer(CollectorConfig(status=503), sink=io.BytesIO())
    server.start()
    yield server
    server.stop()


@pytest.fixture
def unreachable_url() -> str:
    """没有服务监听的本地地址。"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/logs"


@pytest.fixture
def memory_sink() -> MemoryWriter:
    """内存写入端。"""
    return MemoryWriter()


@pytest.fixture
def memory_logger(memory_sink: MemoryWriter) -> RecordLogger:
    """写入内存、时钟固定的 logger。"""
    return RecordLogger(memory_sink, clock=lambda: 1700000000.0)
