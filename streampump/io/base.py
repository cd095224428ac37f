"""Source and sink interfaces consumed by the pump."""
from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Deque, Optional, Protocol

from ..common.chunker import validate_chunk_size
from ..config import DEFAULT_HIGH_WATER_MARK
from ..errors import SinkWriteError
from ..events import EventEmitter, Listener


class Source(Protocol):
    """Producer of byte chunks."""

    async def read(self, size: int) -> bytes:
        """Return up to *size* bytes; ``b""`` signals end of data."""

    async def close(self) -> None:
        """Release the underlying resource. Safe to call more than once."""


class Sink(Protocol):
    """Consumer of byte chunks that reports its capacity.

    ``write`` answers synchronously whether another chunk may follow right
    away. When it answers ``False`` the sink emits ``"drain"`` once it has
    room again. Failures discovered after ``write`` returned are emitted as
    ``"error"`` with the exception as the only argument.
    """

    def write(self, chunk: bytes) -> bool:
        ...

    async def end(self) -> None:
        """Flush and commit everything written; no writes may follow."""

    async def close(self) -> None:
        """Release the underlying resource. Safe to call more than once."""

    def on(self, event: str, listener: Listener) -> Any:
        ...

    def off(self, event: str, listener: Listener) -> Any:
        ...


class BufferedSink(EventEmitter):
    """Sink that accepts chunks into a bounded backlog and flushes them FIFO.

    Subclasses implement :meth:`_flush` and may override :meth:`_commit`
    (called by :meth:`end` once the backlog is empty) and :meth:`_release`
    (called by :meth:`close`).
    """

    def __init__(self, *, high_water_mark: int = DEFAULT_HIGH_WATER_MARK) -> None:
        super().__init__()
        self.high_water_mark = validate_chunk_size(high_water_mark, name="high_water_mark")
        self.bytes_written = 0
        self.finished = False
        self._backlog: Deque[bytes] = deque()
        self._backlog_bytes = 0
        self._need_drain = False
        self._ending = False
        self._closed = False
        self._error: Optional[BaseException] = None
        self._flusher: Optional[asyncio.Task[None]] = None

    @property
    def backlog_bytes(self) -> int:
        return self._backlog_bytes

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, chunk: bytes) -> bool:
        self._raise_if_failed()
        if self._ending or self._closed:
            raise SinkWriteError("write after end")
        if not chunk:
            return self._backlog_bytes < self.high_water_mark
        data = bytes(chunk)
        self._backlog.append(data)
        self._backlog_bytes += len(data)
        self._schedule_flush()
        if self._backlog_bytes < self.high_water_mark:
            return True
        self._need_drain = True
        return False

    async def end(self) -> None:
        self._raise_if_failed()
        if self._closed:
            raise SinkWriteError("end after close")
        if self._ending:
            return
        self._ending = True
        if self._flusher is not None:
            await self._flusher
        self._raise_if_failed()
        try:
            await self._commit()
        except SinkWriteError:
            raise
        except Exception as exc:
            raise SinkWriteError(f"failed to commit {self!r}: {exc}") from exc
        self.finished = True
        self.emit("finish")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        flusher = self._flusher
        if flusher is not None and not flusher.done():
            flusher.cancel()
            await asyncio.wait({flusher})
        self._flusher = None
        self._backlog.clear()
        self._backlog_bytes = 0
        await self._release()
        self.emit("close")

    async def _flush(self, chunk: bytes) -> None:
        raise NotImplementedError

    async def _commit(self) -> None:
        return None

    async def _release(self) -> None:
        return None

    def _schedule_flush(self) -> None:
        if self._flusher is None:
            loop = asyncio.get_running_loop()
            self._flusher = loop.create_task(self._flush_backlog())

    async def _flush_backlog(self) -> None:
        while self._backlog:
            chunk = self._backlog[0]
            try:
                await self._flush(chunk)
            except Exception as exc:
                self._flusher = None
                self._fail(exc)
                return
            self._backlog.popleft()
            self._backlog_bytes -= len(chunk)
            self.bytes_written += len(chunk)
        self._flusher = None
        if self._need_drain and not self._ending:
            self._need_drain = False
            self.emit("drain")

    def _fail(self, exc: BaseException) -> None:
        self._error = exc
        self._backlog.clear()
        self._backlog_bytes = 0
        self.emit("error", exc)

    def _raise_if_failed(self) -> None:
        if self._error is not None:
            raise SinkWriteError(f"{self!r} failed: {self._error}") from self._error


__all__ = ["Source", "Sink", "BufferedSink"]
