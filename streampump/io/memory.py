"""In-memory sources and sinks."""
from __future__ import annotations

import asyncio
from typing import List

from ..config import DEFAULT_HIGH_WATER_MARK
from ..errors import SourceReadError
from .base import BufferedSink


class BytesSource:
    """Serve a fixed byte string in chunks."""

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(bytes(data))
        self._offset = 0
        self.closed = False
        self.reads = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    async def read(self, size: int) -> bytes:
        if self.closed:
            raise SourceReadError("read from closed source")
        self.reads += 1
        await asyncio.sleep(0)
        chunk = self._data[self._offset:self._offset + size].tobytes()
        self._offset += len(chunk)
        return chunk

    async def close(self) -> None:
        self.closed = True


class MemorySink(BufferedSink):
    """Collect written chunks in memory."""

    def __init__(self, *, high_water_mark: int = DEFAULT_HIGH_WATER_MARK) -> None:
        super().__init__(high_water_mark=high_water_mark)
        self.chunks: List[bytes] = []

    def getvalue(self) -> bytes:
        return b"".join(self.chunks)

    async def _flush(self, chunk: bytes) -> None:
        await asyncio.sleep(0)
        self.chunks.append(chunk)


__all__ = ["BytesSource", "MemorySink"]
