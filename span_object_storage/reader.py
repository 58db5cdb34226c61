"""
Span reader for downloading objects.

Fetches an object's spans in sequence order and concatenates them.
A target that was never allocated raises ObjectNotFoundError; an object
allocated without a payload reads back as an empty payload.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

import aiofiles
import aiofiles.os

from .backends.base import ObjectBackend, ObjectPayload, ObjectRecord
from .chunking import reassemble_spans
from .exceptions import ObjectNotFoundError, PartialWriteError, StorageIOError
from .logging_utils import StorageLoggerAdapter

logger = logging.getLogger(__name__)


class SpanReader:
    """Reassembles objects from their spans."""

    def __init__(self, backend: ObjectBackend) -> None:
        self.backend = backend

    async def _require_object(self, target: int) -> ObjectRecord:
        record = await self.backend.get_object(target)
        if record is None:
            raise ObjectNotFoundError(target)
        return record

    def _check_length(self, record: ObjectRecord, stored: int) -> None:
        if stored < record.len:
            log = StorageLoggerAdapter(logger, {"target": record.target, "operation": "read"})
            log.warning(f"Object {record.target} is incomplete: {stored} of {record.len} bytes")
            raise PartialWriteError(record.target, record.len, stored)
        if stored > record.len:
            raise StorageIOError(
                "read_object",
                record.target,
                ValueError(f"spans hold {stored} bytes, object length is {record.len}"),
            )

    async def read(self, target: int) -> ObjectPayload:
        """Read a whole object into memory.

        Raises:
            ObjectNotFoundError: If ``target`` was never allocated
            PartialWriteError: If the stored spans fall short of the object length
        """
        record = await self._require_object(target)

        parts: list[bytes] = []
        async for span in self.backend.iter_spans(target):
            parts.append(span.data)
        data = reassemble_spans(parts)

        logger.debug(f"Object {target} span sizes: {[len(p) for p in parts]}")
        self._check_length(record, len(data))
        return ObjectPayload(target=target, text=record.text, data=data, span_count=len(parts))

    async def iter_spans(self, target: int) -> AsyncIterator[bytes]:
        """Yield an object's span payloads without buffering the whole object.

        The length check runs after the last span, so a consumer may have
        received some bytes before PartialWriteError is raised.
        """
        record = await self._require_object(target)
        total = 0
        async for span in self.backend.iter_spans(target):
            total += span.size
            yield span.data
        self._check_length(record, total)

    async def read_to_file(self, target: int, path: str | os.PathLike[str]) -> int:
        """Write an object to ``path`` atomically (temp file + rename).

        Returns:
            Number of bytes written
        """
        dest = Path(path)
        await aiofiles.os.makedirs(dest.parent, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=dest.parent, prefix=".tmp_", suffix=".part")
        os.close(fd)

        written = 0
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                async for chunk in self.iter_spans(target):
                    await f.write(chunk)
                    written += len(chunk)
            await aiofiles.os.replace(temp_path, dest)
        except OSError as e:
            await _remove_quietly(temp_path)
            raise StorageIOError("write_file", target, e) from e
        except BaseException:
            await _remove_quietly(temp_path)
            raise

        return written


async def _remove_quietly(path: str) -> None:
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass
