"""
Environment parsing shared by the backend configs.
"""

from __future__ import annotations

import os

from .exceptions import SpanStorageError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_int(name: str, default: int) -> int:
    """Read a positive integer from the environment."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise SpanStorageError(
            f"Invalid integer in {name}: {raw!r}", {"variable": name, "value": raw}
        ) from e
    if value <= 0:
        raise SpanStorageError(
            f"{name} must be positive: {value}", {"variable": name, "value": raw}
        )
    return value


def env_bool(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise SpanStorageError(f"Invalid boolean in {name}: {raw!r}", {"variable": name, "value": raw})
