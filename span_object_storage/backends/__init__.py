"""
Storage backend abstraction layer.

Provides abstract interfaces for the relational engines (SQLite, DuckDB).
Each backend implements the same interface, allowing seamless switching.
"""

from .base import (
    DEFAULT_RECENT_LIMIT,
    OCTET_STREAM,
    ObjectBackend,
    ObjectPayload,
    ObjectReader,
    ObjectRecord,
    ObjectWriter,
    SpanRecord,
    check_recent_limit,
)

__all__ = [
    # Core classes
    "ObjectBackend",
    # Protocol ABCs
    "ObjectReader",
    "ObjectWriter",
    # Records
    "ObjectRecord",
    "SpanRecord",
    "ObjectPayload",
    # Constants
    "DEFAULT_RECENT_LIMIT",
    "OCTET_STREAM",
    # Helpers
    "check_recent_limit",
]
