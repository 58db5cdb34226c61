"""
Span splitting for row-size-limited relational storage.

Relational backends cap the size of a single row (and a single bound
BLOB parameter), so large payloads are stored as a sequence of bounded
spans. This module handles:
- Computing the byte ranges a payload is split into
- Reassembling span payloads back into one contiguous buffer
- Estimating how many span rows a payload needs
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .exceptions import ValidationError

# 1.5 MiB per span row
SPAN_SIZE = 1_572_864


@dataclass(frozen=True)
class SpanRange:
    """Half-open byte range ``[start, end)`` of one span.

    Attributes:
        index: Zero-based position of the span within the object
        start: Offset of the first byte
        end: Offset one past the last byte
    """

    index: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


def check_span_size(span_size: int) -> int:
    """Return ``span_size`` if usable, otherwise raise ValidationError."""
    if isinstance(span_size, bool) or not isinstance(span_size, int) or span_size <= 0:
        raise ValidationError(
            "span_size", "span_size", span_size, "span size must be a positive integer"
        )
    return span_size


def iter_span_ranges(size: int, span_size: int = SPAN_SIZE) -> Iterator[SpanRange]:
    """Lazily yield the span ranges covering ``[0, size)``.

    Ranges are ascending, contiguous and non-overlapping. Every range is
    ``span_size`` bytes except possibly the last one. A ``size`` of zero
    yields nothing.

    Args:
        size: Total payload length in bytes
        span_size: Maximum bytes per span

    Raises:
        ValidationError: If ``size`` is negative or ``span_size`` is not positive
    """
    check_span_size(span_size)
    if size < 0:
        raise ValidationError("len", "negative_size", size, "payload size cannot be negative")

    start = 0
    index = 0
    while start < size:
        span_count = min(span_size, size - start)
        yield SpanRange(index=index, start=start, end=start + span_count)
        start += span_count
        index += 1


def split_bytes(data: bytes, span_size: int = SPAN_SIZE) -> Iterator[bytes]:
    """Yield the span payloads of an in-memory buffer."""
    view = memoryview(data)
    for span in iter_span_ranges(len(view), span_size):
        yield bytes(view[span.start : span.end])


def reassemble_spans(spans: Iterable[bytes]) -> bytes:
    """Concatenate span payloads, in the given order, into one buffer."""
    return b"".join(spans)


def estimate_span_count(size: int, span_size: int = SPAN_SIZE) -> int:
    """Number of span rows a payload of ``size`` bytes needs."""
    check_span_size(span_size)
    if size <= 0:
        return 0
    return math.ceil(size / span_size)
