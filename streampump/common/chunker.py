"""Chunk boundary helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from ..errors import ConfigurationError


@dataclass(frozen=True)
class ChunkSpan:
    """Position of a chunk inside a stream."""

    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


def validate_chunk_size(value: object, *, name: str = "chunk_size") -> int:
    """Return *value* if it is a positive integer, else raise ``ConfigurationError``."""

    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def chunk_spans(total_length: int, chunk_size: int) -> Iterator[ChunkSpan]:
    """Yield ``ChunkSpan`` objects covering *total_length* bytes.

    A zero-length stream yields nothing. The last span is short when
    *chunk_size* does not divide *total_length*.
    """

    validate_chunk_size(chunk_size)
    if total_length < 0:
        raise ConfigurationError(f"total_length must not be negative, got {total_length}")

    offset = 0
    while offset < total_length:
        length = min(chunk_size, total_length - offset)
        yield ChunkSpan(offset=offset, length=length)
        offset += length


def expected_chunk_count(total_length: int, chunk_size: int) -> int:
    validate_chunk_size(chunk_size)
    return -(-total_length // chunk_size)


__all__ = ["ChunkSpan", "chunk_spans", "expected_chunk_count", "validate_chunk_size"]
