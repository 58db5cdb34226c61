"""
Span writer for uploading objects.

Allocates the object row, splits the payload into spans and persists
them in ascending order. By default the whole upload is one
transaction; with ``atomic=False`` each statement commits on its own and
a failure part way leaves an incomplete object behind, reported as
PartialWriteError.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from .backends.base import ObjectBackend
from .chunking import check_span_size, iter_span_ranges
from .exceptions import PartialWriteError, SpanStorageError, StorageIOError
from .logging_utils import StorageLoggerAdapter
from .sources import FileSource, SpanSource, as_source
from .validation import validate_file, validate_text

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """Progress and outcome of one upload."""

    target: int
    length: int
    span_count: int = 0
    written_bytes: int = 0

    @property
    def is_complete(self) -> bool:
        return self.written_bytes == self.length

    def to_dict(self) -> dict[str, Any]:
        return {"target": self.target, "len": self.length, "spans": self.span_count}


class SpanWriter:
    """Writes objects to a backend as bounded spans."""

    def __init__(
        self,
        backend: ObjectBackend,
        span_size: int | None = None,
        atomic: bool | None = None,
    ) -> None:
        """Initialize the writer.

        Args:
            backend: Initialized storage backend
            span_size: Bytes per span (defaults to the backend's span size)
            atomic: Upload in one transaction (defaults to the backend config)
        """
        self.backend = backend
        self.span_size = check_span_size(span_size if span_size is not None else backend.span_size)
        if self.span_size > backend.span_size:
            raise SpanStorageError(
                f"Writer span size {self.span_size} exceeds backend span size {backend.span_size}",
                {"span_size": self.span_size, "backend_span_size": backend.span_size},
            )
        self.atomic = backend.atomic_uploads if atomic is None else atomic

    async def write(self, text: str, payload: Any | None = None) -> UploadResult:
        """Store a new object.

        Args:
            text: Descriptive label
            payload: Optional binary payload (bytes-like, binary file
                object, path or SpanSource)

        Returns:
            UploadResult with the allocated target

        Raises:
            ValidationError: If ``text`` or ``payload`` has the wrong type
            StorageIOError: If the backend fails (nothing is kept when atomic)
            PartialWriteError: If a non-atomic upload fails after allocation
        """
        text = validate_text(text)
        if payload is None:
            target = await self.backend.allocate_object(text, 0)
            logger.info(f"Stored text-only object {target}")
            return UploadResult(target=target, length=0)

        validate_file(payload)
        async with as_source(payload) as source:
            if self.atomic:
                result = await self._write_atomic(text, source)
            else:
                result = await self._write_unguarded(text, source)

        logger.info(
            f"Stored object {result.target}: {result.length} bytes in {result.span_count} spans"
        )
        return result

    async def write_file(self, text: str, path: str | os.PathLike[str]) -> UploadResult:
        """Store a file from disk."""
        return await self.write(text, FileSource(path))

    async def _write_atomic(self, text: str, source: SpanSource) -> UploadResult:
        async with self.backend.transaction():
            target = await self.backend.allocate_object(text, source.size)
            result = UploadResult(target=target, length=source.size)
            await self._persist_spans(result, source)
        return result

    async def _write_unguarded(self, text: str, source: SpanSource) -> UploadResult:
        target = await self.backend.allocate_object(text, source.size)
        result = UploadResult(target=target, length=source.size)
        try:
            await self._persist_spans(result, source)
        except SpanStorageError as e:
            logger.warning(
                f"Upload of object {target} failed after {result.written_bytes} "
                f"of {result.length} bytes: {e}"
            )
            raise PartialWriteError(target, result.length, result.written_bytes, e) from e
        return result

    async def _persist_spans(self, result: UploadResult, source: SpanSource) -> None:
        log = StorageLoggerAdapter(logger, {"target": result.target})
        for span in iter_span_ranges(result.length, self.span_size):
            data = await source.read(span.start, span.size)
            if len(data) != span.size:
                raise StorageIOError(
                    "read_source",
                    result.target,
                    EOFError(f"expected {span.size} bytes at {span.start}, got {len(data)}"),
                )
            await self.backend.write_span(result.target, data)
            result.span_count += 1
            result.written_bytes += span.size
            log.debug(f"span {span.index}: [{span.start}, {span.end}) of {result.length}")
