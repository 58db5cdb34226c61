"""
Abstract base classes for storage backends.

All relational engines (SQLite, DuckDB) implement these interfaces.
The writer and reader only talk to a backend through them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any

from ..exceptions import ValidationError

OCTET_STREAM = "application/octet-stream"

DEFAULT_RECENT_LIMIT = 100


def check_recent_limit(limit: int, field: str = "limit") -> int:
    """Return ``limit`` if it bounds a listing window, otherwise raise ValidationError."""
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValidationError(field, "limit_range", limit, f"{field} must be a positive integer")
    return limit


@dataclass
class ObjectRecord:
    """One row of the objects table."""

    target: int
    text: str
    len: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "len": self.len, "target": self.target}


@dataclass
class SpanRecord:
    """One row of the spans table."""

    target: int
    sequence: int
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ObjectPayload:
    """A reassembled object ready to hand to a transport."""

    target: int
    text: str
    data: bytes
    span_count: int = 0
    content_type: str = OCTET_STREAM

    @property
    def content_length(self) -> int:
        return len(self.data)

    @property
    def is_empty(self) -> bool:
        return not self.data

    def to_dict(self) -> dict[str, Any]:
        """Metadata view; the payload itself is not serialized."""
        return {
            "target": self.target,
            "text": self.text,
            "content_length": self.content_length,
            "content_type": self.content_type,
            "spans": self.span_count,
        }


class ObjectReader(ABC):
    """Read operations."""

    @abstractmethod
    async def get_object(self, target: int) -> ObjectRecord | None:
        """Get object metadata, or None if the target was never allocated."""

    @abstractmethod
    async def list_recent(self, limit: int | None = None) -> list[ObjectRecord]:
        """Newest ``limit`` objects, returned oldest first."""

    @abstractmethod
    def iter_spans(self, target: int) -> AsyncIterator[SpanRecord]:
        """Yield the spans of a target in ascending sequence order."""

    @abstractmethod
    async def count_spans(self, target: int) -> int:
        """Number of span rows stored for a target."""


class ObjectWriter(ABC):
    """Write operations."""

    @abstractmethod
    async def allocate_object(self, text: str, length: int) -> int:
        """Insert an object row with target ``max(target) + 1``.

        The target is computed and inserted by one statement.

        Returns:
            The allocated target
        """

    @abstractmethod
    async def write_span(self, target: int, data: bytes) -> int:
        """Persist one span for ``target`` after any existing spans.

        Returns:
            The sequence number assigned to the span

        Raises:
            ReferentialIntegrityError: If ``target`` has no object row
        """

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Scope in which every write commits together or not at all."""


class ObjectBackend(ObjectReader, ObjectWriter):
    """
    Full backend: reads, writes and lifecycle.

    Usable as an async context manager::

        async with await SQLiteBackend.create(config) as backend:
            ...
    """

    span_size: int
    recent_limit: int = DEFAULT_RECENT_LIMIT
    atomic_uploads: bool = True

    @abstractmethod
    async def initialize(self) -> None:
        """Open the connection and create the schema."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""

    async def __aenter__(self) -> ObjectBackend:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
