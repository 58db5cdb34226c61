"""
Span Object Storage

Stores large binary objects in row-size-limited relational databases by
splitting each payload into bounded spans, one row per span, and
reassembling them on read.

Provides:
- Relational backends (SQLite via aiosqlite, DuckDB)
- Atomic target allocation and transactional uploads
- Explicit span sequencing, independent of engine row order
- Request validation and a versioned result envelope

Usage:

    >>> from span_object_storage import ObjectStoreService, SQLiteBackend, SQLiteConfig
    >>> async with await SQLiteBackend.create(SQLiteConfig(db_path="objects.db")) as backend:
    ...     service = ObjectStoreService(backend)
    ...     sent = await service.send_message("report", b"...")
    ...     fetched = await service.get_message(str(sent.obj))
    ...     fetched.obj.data

Lower-level pieces:

    # Split and reassemble without a database
    from span_object_storage.chunking import iter_span_ranges, reassemble_spans

    # Write and read directly, raising exceptions instead of returning results
    from span_object_storage import SpanReader, SpanWriter
"""

# Backend abstraction
from .backends import (
    ObjectBackend,
    ObjectPayload,
    ObjectReader,
    ObjectRecord,
    ObjectWriter,
    SpanRecord,
)
from .backends.sqlite import SQLiteBackend, SQLiteConfig

# Splitting
from .chunking import SPAN_SIZE, SpanRange, estimate_span_count, iter_span_ranges, reassemble_spans

# Exceptions
from .exceptions import (
    ObjectNotFoundError,
    PartialWriteError,
    ReferentialIntegrityError,
    SpanStorageError,
    StorageConnectionError,
    StorageIOError,
    ValidationError,
)
from .reader import SpanReader
from .results import RESULT_SCHEMA_VERSION, ErrorKind, StorageResult
from .service import ObjectStoreService
from .sources import BytesSource, FileSource, SpanSource, StreamSource
from .validation import ValidationResult, validate_request, validate_target
from .writer import SpanWriter, UploadResult

__version__ = "0.1.0"

__all__ = [
    # Backends
    "ObjectBackend",
    "ObjectReader",
    "ObjectWriter",
    "SQLiteBackend",
    "SQLiteConfig",
    # Records
    "ObjectRecord",
    "SpanRecord",
    "ObjectPayload",
    # Splitting
    "SPAN_SIZE",
    "SpanRange",
    "iter_span_ranges",
    "reassemble_spans",
    "estimate_span_count",
    # Sources
    "SpanSource",
    "BytesSource",
    "StreamSource",
    "FileSource",
    # Write / read
    "SpanWriter",
    "UploadResult",
    "SpanReader",
    # Request boundary
    "ObjectStoreService",
    "StorageResult",
    "ErrorKind",
    "RESULT_SCHEMA_VERSION",
    "ValidationResult",
    "validate_request",
    "validate_target",
    # Exceptions
    "SpanStorageError",
    "ValidationError",
    "ObjectNotFoundError",
    "StorageIOError",
    "ReferentialIntegrityError",
    "PartialWriteError",
    "StorageConnectionError",
]
