"""
Request boundary for the object store.

Every public method validates its input, calls into the writer or
reader, and converts any failure into a StorageResult. Nothing raised
below this layer escapes to the caller.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from .backends.base import ObjectBackend
from .exceptions import ObjectNotFoundError, SpanStorageError, ValidationError
from .reader import SpanReader
from .results import StorageResult
from .validation import validate_request
from .writer import SpanWriter

logger = logging.getLogger(__name__)


class ObjectStoreService:
    """Send, list and fetch stored objects."""

    def __init__(
        self,
        backend: ObjectBackend,
        span_size: int | None = None,
        atomic: bool | None = None,
    ) -> None:
        self.backend = backend
        self.writer = SpanWriter(backend, span_size=span_size, atomic=atomic)
        self.reader = SpanReader(backend)

    async def send_message(self, text: Any, file: Any | None = None) -> StorageResult:
        """Store ``text`` with an optional binary attachment.

        On success ``obj`` is the allocated target.
        """
        validation = validate_request(text=text, file=file)
        if not validation.is_valid:
            return self._failure(validation.error)

        try:
            upload = await self.writer.write(validation.text, validation.file)
        except Exception as e:
            return self._failure(e)
        return StorageResult.ok(upload.target)

    async def get_message(self, target: str | None = None) -> StorageResult:
        """List recent objects, or read one when ``target`` is given."""
        if not target:
            return await self.list_recent()
        return await self.read_object(target)

    async def list_recent(self, limit: int | None = None) -> StorageResult:
        """Recent objects as ``{text, len, target}`` dicts, oldest first."""
        try:
            records = await self.backend.list_recent(limit)
        except Exception as e:
            return self._failure(e)
        return StorageResult.ok([record.to_dict() for record in records])

    async def read_object(self, target: str) -> StorageResult:
        """Read an object's payload; ``obj`` is an ObjectPayload."""
        validation = validate_request(target=target)
        if not validation.is_valid:
            return self._failure(validation.error)

        try:
            payload = await self.reader.read(validation.target)
        except Exception as e:
            return self._failure(e)

        if payload.is_empty:
            return StorageResult.ok(payload, message="no payload")
        return StorageResult.ok(payload)

    async def save_object(self, target: str, path: str | os.PathLike[str]) -> StorageResult:
        """Write an object's payload to ``path``; ``obj`` is the byte count."""
        validation = validate_request(target=target)
        if not validation.is_valid:
            return self._failure(validation.error)

        try:
            written = await self.reader.read_to_file(validation.target, path)
        except Exception as e:
            return self._failure(e)
        return StorageResult.ok(written)

    def _failure(self, exc: BaseException | None) -> StorageResult:
        if exc is None:
            exc = SpanStorageError("Unknown failure")
        if isinstance(exc, ValidationError | ObjectNotFoundError):
            logger.info(f"Request rejected: {exc}")
        elif isinstance(exc, SpanStorageError):
            logger.error(f"Storage failure: {exc}", exc_info=exc)
        else:
            logger.exception(f"Unexpected failure: {exc}", exc_info=exc)
        return StorageResult.failure(exc)
