"""
Byte sources for the write path.

The writer reads one span at a time from a source of known total
length, so a large upload never has to be held in memory twice.
"""

from __future__ import annotations

import asyncio
import io
import os
from abc import ABC, abstractmethod
from pathlib import PurePath
from typing import Any, BinaryIO

import aiofiles
import aiofiles.os

from .exceptions import StorageIOError

# Recognized binary payload representations. A value is accepted when it
# is an instance of ANY of these.
BINARY_PAYLOAD_TYPES: tuple[type, ...] = (
    bytes,
    bytearray,
    memoryview,
    io.BufferedIOBase,
    io.RawIOBase,
    PurePath,
)


class SpanSource(ABC):
    """A byte source of known length that can be read by range."""

    @property
    @abstractmethod
    def size(self) -> int:
        """Total length in bytes."""

    @abstractmethod
    async def read(self, start: int, count: int) -> bytes:
        """Read ``count`` bytes starting at ``start``."""

    async def open(self) -> None:
        """Prepare the source for reading."""

    async def close(self) -> None:
        """Release any resources held by the source."""

    async def __aenter__(self) -> SpanSource:
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


class BytesSource(SpanSource):
    """In-memory payload."""

    def __init__(self, data: bytes | bytearray | memoryview):
        self._view = memoryview(data).cast("B")

    @property
    def size(self) -> int:
        return len(self._view)

    async def read(self, start: int, count: int) -> bytes:
        return bytes(self._view[start : start + count])


class StreamSource(SpanSource):
    """Seekable binary file object (``open(path, "rb")``, ``io.BytesIO``...).

    The payload is everything from the stream's position at construction
    to its end, so bytes already consumed (a header, say) are skipped.
    Reads run in a worker thread so a file on disk does not block the
    event loop.
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._offset = stream.tell()
        self._size = stream.seek(0, io.SEEK_END) - self._offset
        stream.seek(self._offset)

    @property
    def size(self) -> int:
        return self._size

    async def read(self, start: int, count: int) -> bytes:
        def _read() -> bytes:
            self._stream.seek(self._offset + start)
            return self._stream.read(count)

        try:
            return await asyncio.to_thread(_read)
        except OSError as e:
            raise StorageIOError("read_source", cause=e) from e


class FileSource(SpanSource):
    """File on disk, read with aiofiles."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = os.fspath(path)
        self._size: int | None = None
        self._handle: Any = None

    @property
    def size(self) -> int:
        if self._size is None:
            raise StorageIOError("read_source", cause=RuntimeError(f"{self.path} not opened"))
        return self._size

    async def open(self) -> None:
        if self._handle is not None:
            return
        try:
            stat = await aiofiles.os.stat(self.path)
            self._size = stat.st_size
            self._handle = await aiofiles.open(self.path, "rb")
        except OSError as e:
            raise StorageIOError("open_source", cause=e) from e

    async def read(self, start: int, count: int) -> bytes:
        if self._handle is None:
            await self.open()
        try:
            await self._handle.seek(start)
            return await self._handle.read(count)
        except OSError as e:
            raise StorageIOError("read_source", cause=e) from e

    async def close(self) -> None:
        if self._handle is not None:
            await self._handle.close()
            self._handle = None


def is_binary_payload(value: Any) -> bool:
    """True if ``value`` is any recognized binary payload representation."""
    return isinstance(value, SpanSource) or isinstance(value, BINARY_PAYLOAD_TYPES)


def as_source(value: Any) -> SpanSource:
    """Wrap a recognized binary payload in a SpanSource.

    Raises:
        TypeError: If ``value`` is not a binary payload
    """
    if isinstance(value, SpanSource):
        return value
    if isinstance(value, bytes | bytearray | memoryview):
        return BytesSource(value)
    if isinstance(value, PurePath):
        return FileSource(value)
    if isinstance(value, io.BufferedIOBase | io.RawIOBase):
        return StreamSource(value)
    raise TypeError(f"Unsupported payload type: {type(value).__name__}")
