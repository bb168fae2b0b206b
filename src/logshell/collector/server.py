"""参考日志收集服务器

logshell collector v0.1.0
同步日期: 2026-10-12

最小的兼容收集端：接受任意 JSON 行请求体的 POST，原样复制到 sink，
总是返回 200。/auth/logs 路由额外读取 Bearer token 后做同样的复制。
"""

from __future__ import annotations

import http.server
import json
import logging
import socketserver
import sys
import threading
import time
from dataclasses import dataclass
from typing import Any, BinaryIO

logger = logging.getLogger(__name__)

__all__ = [
    "CollectorServer",
    "CollectorConfig",
    "LOGS_PATH",
    "AUTH_LOGS_PATH",
]

LOGS_PATH = "/logs"
AUTH_LOGS_PATH = "/auth/logs"


@dataclass
class CollectorConfig:
    """收集服务器配置"""
    host: str = "127.0.0.1"
    port: int = 0  # 0 = 随机端口
    status: int = 200  # 返回的状态码
    response_delay: float = 0.0  # 返回前等待（秒）


class ReusableTCPServer(socketserver.ThreadingTCPServer):
    """支持端口复用的 TCP 服务器"""
    allow_reuse_address = True


def _mask_token(token: str) -> str:
    """脱敏 token，只显示前4位和后4位。"""
    if not token:
        return "(empty)"
    if len(token) <= 8:
        return token[:2] + "***"
    return f"{token[:4]}...{token[-4:]}"


class CollectorServer:
    """HTTP 收集服务器，把请求体复制到 sink 并保存在内存中"""

    def __init__(
        self,
        config: CollectorConfig | None = None,
        sink: BinaryIO | None = None,
    ):
        self.config = config or CollectorConfig()
        self._sink = sink
        self._bodies: list[bytes] = []
        self._tokens: list[str] = []
        self._lock = threading.Lock()
        self._received = threading.Condition(self._lock)
        self._server: socketserver.TCPServer | None = None
        self._actual_port: int = 0

    @property
    def port(self) -> int:
        """实际绑定的端口"""
        return self._actual_port

    @property
    def url(self) -> str:
        """/logs 路由的完整 URL"""
        return f"http://{self.config.host}:{self._actual_port}{LOGS_PATH}"

    @property
    def auth_url(self) -> str:
        """/auth/logs 路由的完整 URL"""
        return f"http://{self.config.host}:{self._actual_port}{AUTH_LOGS_PATH}"

    @property
    def bodies(self) -> list[bytes]:
        """收到的请求体（按到达顺序）"""
        with self._lock:
            return list(self._bodies)

    @property
    def tokens(self) -> list[str]:
        """/auth/logs 收到的 Bearer token"""
        with self._lock:
            return list(self._tokens)

    def records(self) -> list[dict[str, Any]]:
        """把收到的请求体按行解析为 JSON 对象"""
        result = []
        for body in self.bodies:
            for line in body.splitlines():
                if line.strip():
                    result.append(json.loads(line))
        return result

    def wait_for(self, count: int, timeout: float = 5.0) -> bool:
        """等待至少收到 count 个请求体"""
        deadline = time.monotonic() + timeout
        with self._received:
            while len(self._bodies) < count:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._received.wait(remaining)
            return True

    def start(self) -> int:
        """启动服务器，返回实际端口"""
        handler = self._create_handler()

        self._server = ReusableTCPServer(
            (self.config.host, self.config.port), handler
        )
        self._server.daemon_threads = True
        self._server.block_on_close = False  # stop() 不等待处理线程结束

        self._actual_port = self._server.server_address[1]

        thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="collector_http_server"
        )
        thread.start()

        logger.info(f"Log collector started at {self.url}")
        return self._actual_port

    def stop(self):
        """停止服务器"""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            logger.debug("Log collector stopped")

    def serve_forever(self):
        """在当前线程运行，直到 KeyboardInterrupt"""
        self.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Log collector interrupted")
        finally:
            self.stop()

    def __enter__(self) -> CollectorServer:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def _ingest(self, body: bytes, token: str | None = None):
        sink = self._sink if self._sink is not None else sys.stdout.buffer
        with self._received:
            self._bodies.append(body)
            if token is not None:
                self._tokens.append(token)
            sink.write(body)
            if not body.endswith(b"\n"):
                sink.write(b"\n")
            sink.flush()
            self._received.notify_all()

    def _create_handler(self):
        server = self

        class Handler(http.server.BaseHTTPRequestHandler):
            protocol_version = 'HTTP/1.1'

            def do_POST(self):
                if self.path == LOGS_PATH:
                    logger.info("Received log stream...")
                    server._ingest(self._read_body())
                    self._respond()
                elif self.path == AUTH_LOGS_PATH:
                    auth = self.headers.get('Authorization', '')
                    token = auth[7:] if auth.startswith('Bearer ') else auth
                    logger.info(f"Received log stream with token {_mask_token(token)}")
                    server._ingest(self._read_body(), token)
                    self._respond()
                else:
                    self.send_error(404)

            def _read_body(self) -> bytes:
                if 'chunked' in self.headers.get('Transfer-Encoding', '').lower():
                    chunks = []
                    while True:
                        size = int(self.rfile.readline().strip() or b'0', 16)
                        if size == 0:
                            self.rfile.readline()
                            break
                        chunks.append(self.rfile.read(size))
                        self.rfile.readline()
                    return b''.join(chunks)
                length = int(self.headers.get('Content-Length') or 0)
                return self.rfile.read(length) if length else b''

            def _respond(self):
                if server.config.response_delay:
                    time.sleep(server.config.response_delay)
                self.send_response(server.config.status)
                self.send_header('Content-Length', '0')
                self.end_headers()

            def log_message(self, format, *args):
                pass

        return Handler
