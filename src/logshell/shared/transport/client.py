"""日志收集端点的 HTTP 投递客户端。

logshell shared/transport v0.1.0
同步日期: 2026-10-12

使用 aiohttp 异步 POST 单条记录。投递是尽力而为的：
最多一次、不重试，任何失败只记录日志，不会抛给调用方。
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping

import aiohttp

from ...config import DEFAULT_HTTP_TIMEOUT
from ...errors import DeliveryError

__all__ = ["DeliveryClient", "DEFAULT_HEADERS", "merge_headers"]

logger = logging.getLogger(__name__)

# 默认请求头，调用方请求头同名时覆盖
DEFAULT_HEADERS: dict[str, str] = {"Content-Type": "application/json"}


def merge_headers(
    defaults: Mapping[str, str],
    extra: Mapping[str, str] | None,
) -> dict[str, str]:
    """合并请求头，按名称（忽略大小写）后写入者胜出。"""
    merged: dict[str, str] = {}
    names: dict[str, str] = {}
    for source in (defaults, extra or {}):
        for key, value in source.items():
            previous = names.get(key.lower())
            if previous is not None:
                del merged[previous]
            names[key.lower()] = key
            merged[key] = value
    return merged


class DeliveryClient:
    """单端点记录投递客户端。

    会话在首次投递时按需创建，绑定到当时的事件循环。

    Example:
        client = DeliveryClient("http://localhost:8080/logs")
        ok = await client.send(b'{"level":"info","msg":"hi"}')
        await client.close()
    """

    def __init__(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        """初始化客户端。

        Args:
            url: 收集端点 URL
            headers: 附加的静态请求头
            timeout: 单次请求的总超时时间（秒）
        """
        self._url = url
        self._headers = merge_headers(DEFAULT_HEADERS, headers)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None
        self._session_loop: asyncio.AbstractEventLoop | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def headers(self) -> dict[str, str]:
        """实际发送的请求头（副本）。"""
        return dict(self._headers)

    async def _get_session(self) -> aiohttp.ClientSession:
        """获取或创建 HTTP 会话。

        会话绑定创建时的事件循环；在另一个循环上使用时重新创建。
        """
        loop = asyncio.get_running_loop()
        if self._session is not None and self._session_loop is not loop:
            await self._discard_session()
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._session_loop = loop
        return self._session

    async def _discard_session(self) -> None:
        session, old_loop = self._session, self._session_loop
        self._session = None
        self._session_loop = None
        if session is None or session.closed:
            return
        if old_loop is not None and old_loop.is_closed():
            # 旧循环已关闭，连接无法再正常关闭，只解除关联
            session.detach()
            logger.debug(f"Discarded HTTP session for {self._url} from a closed event loop")
        elif old_loop is not None:
            # 会话只能在所属循环上关闭
            asyncio.run_coroutine_threadsafe(session.close(), old_loop)
            logger.debug(f"HTTP session for {self._url} belongs to another event loop, recreating")

    async def close(self) -> None:
        """关闭 HTTP 会话。"""
        session = self._session
        if session is not None and not session.closed:
            if self._session_loop is asyncio.get_running_loop():
                await session.close()
            else:
                await self._discard_session()
        self._session = None
        self._session_loop = None

    async def _post(self, record: bytes) -> int:
        session = await self._get_session()
        async with session.post(self._url, data=record, headers=self._headers) as resp:
            if not 200 <= resp.status < 300:
                error_text = await resp.text()
                raise DeliveryError(resp.status, error_text[:200])
            return resp.status

    async def send(self, record: bytes) -> bool:
        """投递一条记录。

        Args:
            record: 已成帧的记录字节（作为请求体原样发送）

        Returns:
            2xx 时为 True，其他任何情况为 False
        """
        start_time = time.time()
        try:
            status = await self._post(record)
        except asyncio.CancelledError:
            # 取消必须 re-raise，不能被吞掉
            raise
        except DeliveryError as e:
            logger.warning(f"Log delivery rejected by {self._url}: {e}")
            return False
        except asyncio.TimeoutError:
            logger.warning(
                f"Log delivery to {self._url} timed out after "
                f"{self._timeout.total}s"
            )
            return False
        except aiohttp.ClientError as e:
            logger.warning(f"Log delivery to {self._url} failed: {e}")
            return False
        except Exception as e:
            logger.warning(
                f"Unexpected error delivering log to {self._url}: "
                f"type={type(e).__name__}, msg={e}"
            )
            return False

        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            f"Delivered {len(record)} bytes to {self._url} "
            f"status={status} duration_ms={duration_ms}"
        )
        return True
