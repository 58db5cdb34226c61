"""
Custom exceptions for span object storage.

All backends and the writer/reader raise these exceptions
so callers can handle failures the same way on every engine.
"""


class SpanStorageError(Exception):
    """Base exception for all span object storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SpanStorageError):
    """Raised when request input fails validation.

    ``reason`` is a stable code (e.g. ``target_length``) and ``value``
    carries the offending input.
    """

    def __init__(
        self,
        field: str,
        reason: str,
        value: object | None = None,
        message: str | None = None,
    ):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value if isinstance(value, str | int) else repr(value)
        super().__init__(message or f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class ObjectNotFoundError(SpanStorageError):
    """Raised when a target was never allocated."""

    def __init__(self, target: int):
        super().__init__(f"Object not found: {target}", {"target": target})
        self.target = target


class StorageIOError(SpanStorageError):
    """Raised when a backend operation fails."""

    def __init__(self, operation: str, target: int | None = None, cause: Exception | None = None):
        details: dict = {"operation": operation}
        if target is not None:
            details["target"] = target
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if target is not None:
            message += f": target {target}"
        super().__init__(message, details)
        self.operation = operation
        self.target = target
        self.cause = cause


class ReferentialIntegrityError(StorageIOError):
    """Raised when a span is written for a target with no object row."""

    def __init__(self, target: int, cause: Exception | None = None):
        super().__init__("write_span", target, cause)
        self.details["reason"] = "missing_object"


class PartialWriteError(SpanStorageError):
    """Raised when an object's persisted spans do not cover its length.

    Happens when a non-atomic upload fails part way, or when a read finds
    fewer span bytes than the object row claims.
    """

    def __init__(
        self,
        target: int,
        expected_bytes: int,
        written_bytes: int,
        cause: Exception | None = None,
    ):
        details: dict = {
            "target": target,
            "expected_bytes": expected_bytes,
            "written_bytes": written_bytes,
        }
        if cause:
            details["cause"] = str(cause)
        super().__init__(
            f"Object {target} is incomplete: {written_bytes} of {expected_bytes} bytes stored",
            details,
        )
        self.target = target
        self.expected_bytes = expected_bytes
        self.written_bytes = written_bytes
        self.cause = cause


class StorageConnectionError(SpanStorageError):
    """Raised when a backend cannot be opened or initialized.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause
