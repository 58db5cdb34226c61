"""
Tagged result envelope returned at the request boundary.

Shape (``RESULT_SCHEMA_VERSION`` 1)::

    {
        "version": 1,
        "isOK": true,
        "message": "ok",
        "obj": ...,
        "error": null | {"kind": "validation", "message": "...", "details": {...}}
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import (
    ObjectNotFoundError,
    PartialWriteError,
    SpanStorageError,
    ValidationError,
)

RESULT_SCHEMA_VERSION = 1


class ErrorKind(str, Enum):
    """Failure categories exposed to clients."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STORAGE = "storage"
    PARTIAL_WRITE = "partial_write"

    @classmethod
    def for_exception(cls, exc: BaseException) -> ErrorKind:
        if isinstance(exc, ValidationError):
            return cls.VALIDATION
        if isinstance(exc, ObjectNotFoundError):
            return cls.NOT_FOUND
        if isinstance(exc, PartialWriteError):
            return cls.PARTIAL_WRITE
        return cls.STORAGE


@dataclass
class StorageResult:
    """Outcome of one request."""

    is_ok: bool
    message: str
    obj: Any = None
    error_kind: ErrorKind | None = None
    error_details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, obj: Any = None, message: str = "ok") -> StorageResult:
        return cls(is_ok=True, message=message, obj=obj)

    @classmethod
    def failure(cls, exc: BaseException) -> StorageResult:
        """Build a failed result from an exception.

        Validation failures carry the offending value in ``obj``.
        """
        if isinstance(exc, SpanStorageError):
            message = exc.message
            details = dict(exc.details)
        else:
            message = str(exc) or type(exc).__name__
            details = {"type": type(exc).__name__}

        obj = details.get("value") if isinstance(exc, ValidationError) else None
        return cls(
            is_ok=False,
            message=message,
            obj=obj,
            error_kind=ErrorKind.for_exception(exc),
            error_details=details,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the versioned wire shape."""
        error = None
        if self.error_kind is not None:
            error = {
                "kind": self.error_kind.value,
                "message": self.message,
                "details": self.error_details,
            }
        return {
            "version": RESULT_SCHEMA_VERSION,
            "isOK": self.is_ok,
            "message": self.message,
            "obj": _serialize(self.obj),
            "error": error,
        }


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, bytes | bytearray):
        return {"content_length": len(value)}
    return value
