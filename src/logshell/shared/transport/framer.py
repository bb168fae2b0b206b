"""按换行符切分记录的帧缓冲区。

logshell shared/transport v0.1.0
同步日期: 2026-10-12

把任意大小的字节写入转换为完整的、以换行符结尾的记录。
缓冲区始终只保存尚未以换行符结尾的尾部片段。
"""

from __future__ import annotations

from collections.abc import Iterator

__all__ = ["RecordFramer", "RECORD_TERMINATOR"]

RECORD_TERMINATOR = b"\n"


class RecordFramer:
    """换行分隔的记录切分器。

    记录内容对切分器是不透明的字节（通常是一个 JSON 对象），
    不做解析，也不去重。

    Example:
        framer = RecordFramer()
        list(framer.feed(b"abc"))      # []
        list(framer.feed(b"def\\n"))   # [b"abcdef"]
        framer.flush()                 # b""
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """缓冲区中尚未成帧的字节数。"""
        return len(self._buffer)

    def feed(self, data: bytes) -> Iterator[bytes]:
        """追加字节并返回完整记录的惰性序列。

        字节会立即追加到缓冲区；记录在迭代时才从缓冲区中取出，
        因此返回的迭代器需要被完整消费。

        Args:
            data: 本次写入的字节

        Returns:
            去掉换行符的完整记录迭代器
        """
        self._buffer.extend(data)
        return self._extract()

    def _extract(self) -> Iterator[bytes]:
        while True:
            index = self._buffer.find(RECORD_TERMINATOR)
            if index < 0:
                return
            record = bytes(self._buffer[:index])
            del self._buffer[: index + len(RECORD_TERMINATOR)]
            yield record

    def flush(self) -> bytes:
        """取出并清空剩余内容（可能不含换行符）。

        只应在关闭时调用一次，保证最后一段不完整的写入不会丢失。
        """
        remaining = bytes(self._buffer)
        self._buffer.clear()
        return remaining
