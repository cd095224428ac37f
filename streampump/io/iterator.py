"""Sink whose backlog is pulled by an async iterator."""
from __future__ import annotations

import asyncio
from typing import AsyncIterator, Union

from ..config import DEFAULT_HIGH_WATER_MARK
from .base import BufferedSink


class _End:
    pass


_END = _End()


class IteratorSink(BufferedSink):
    """Hand chunks to a consumer iterating ``async for chunk in sink``.

    A chunk only leaves the backlog once the consumer has taken the one
    before it, so a slow consumer makes ``write`` report a full sink.
    Iteration stops after :meth:`end` or :meth:`close`.
    """

    def __init__(self, *, high_water_mark: int = DEFAULT_HIGH_WATER_MARK) -> None:
        super().__init__(high_water_mark=high_water_mark)
        self._queue: asyncio.Queue[Union[bytes, _End]] = asyncio.Queue(maxsize=1)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._queue.get()
            if isinstance(item, _End):
                return
            yield item

    async def _flush(self, chunk: bytes) -> None:
        await self._queue.put(chunk)

    async def _commit(self) -> None:
        await self._queue.put(_END)

    async def _release(self) -> None:
        if self.finished:
            return
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)


__all__ = ["IteratorSink"]
