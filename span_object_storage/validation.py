"""
Request validation.

Checks run before any storage call. A failed check never touches the
backend.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

from .exceptions import ValidationError
from .sources import is_binary_payload

MAX_TARGET_LENGTH = 10

_TARGET_RE = re.compile(r"[0-9]+")

# Marks an argument the caller did not supply.
UNSET: Any = object()


def validate_target(target: Any) -> int:
    """Parse a target identifier supplied as a string.

    The string must be at most 10 characters of ASCII decimal digits.

    Raises:
        ValidationError: With reason ``target_type``, ``target_length``,
            ``target_digits`` or ``target_not_finite``
    """
    if not isinstance(target, str):
        raise ValidationError("target", "target_type", target, "target must be a string")
    if len(target) > MAX_TARGET_LENGTH:
        raise ValidationError(
            "target", "target_length", target, f"target len > {MAX_TARGET_LENGTH}"
        )
    if _TARGET_RE.fullmatch(target) is None:
        raise ValidationError("target", "target_digits", target, "target has non 0-9 characters")

    value = float(target)
    if math.isnan(value) or math.isinf(value):
        raise ValidationError("target", "target_not_finite", target, "target is NaN or Infinity")
    return int(target, 10)


def validate_text(text: Any) -> str:
    """Require a textual label the database can store as UTF-8."""
    if not isinstance(text, str):
        raise ValidationError("text", "text_type", text, "text type error")
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValidationError("text", "text_type", text, "text type error") from e
    return text


def validate_file(file: Any) -> Any:
    """Require a recognized binary payload (bytes-like, binary file, path)."""
    if not is_binary_payload(file):
        raise ValidationError("file", "file_type", type(file).__name__, "file type error")
    return file


@dataclass
class ValidationResult:
    """Outcome of validating one request.

    ``target`` is the parsed identifier (None when not supplied) and
    ``error`` is set when validation failed.
    """

    target: int | None = None
    text: str | None = None
    file: Any = None
    error: ValidationError | None = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


def validate_request(
    target: str | None = None,
    text: Any = UNSET,
    file: Any | None = None,
) -> ValidationResult:
    """Validate every supplied field of a request.

    ``target`` and ``file`` are optional; ``text`` is checked only when
    passed. Stops at the first failure.
    """
    result = ValidationResult()
    try:
        if target is not None:
            result.target = validate_target(target)
        if text is not UNSET:
            result.text = validate_text(text)
        if file is not None:
            result.file = validate_file(file)
    except ValidationError as e:
        result.error = e
    return result
