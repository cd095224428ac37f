"""File backed sources and sinks."""
from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import BinaryIO, Callable, Optional, TypeVar

from ..config import DEFAULT_HIGH_WATER_MARK
from ..errors import SourceReadError
from .base import BufferedSink

T = TypeVar("T")


async def _in_executor(func: Callable[..., T], *args: object) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


class FileSource:
    """Read *path* (optionally a byte range of it) chunk by chunk.

    The file is opened on the first read, so a missing file surfaces as a
    ``SourceReadError`` from the pump rather than from the constructor.
    """

    def __init__(self, path: Path, *, offset: int = 0, length: Optional[int] = None) -> None:
        if offset < 0:
            raise ValueError("offset must not be negative")
        if length is not None and length < 0:
            raise ValueError("length must not be negative")
        self.path = Path(path)
        self.offset = offset
        self.length = length
        self._fh: Optional[BinaryIO] = None
        self._remaining = length
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _open(self) -> BinaryIO:
        fh = open(self.path, "rb", buffering=0)
        try:
            fh.seek(self.offset)
        except OSError:
            fh.close()
            raise
        return fh

    async def read(self, size: int) -> bytes:
        if self._closed:
            raise SourceReadError(f"read from closed source {self.path}")
        if self._remaining == 0:
            return b""
        try:
            if self._fh is None:
                self._fh = await _in_executor(self._open)
            want = size if self._remaining is None else min(size, self._remaining)
            data = await _in_executor(self._fh.read, want)
        except OSError as exc:
            raise SourceReadError(f"failed reading {self.path}: {exc}") from exc
        if self._remaining is not None:
            if not data:
                raise SourceReadError("unexpected EOF while reading source file")
            self._remaining -= len(data)
        return data

    async def close(self) -> None:
        self._closed = True
        fh, self._fh = self._fh, None
        if fh is not None:
            await _in_executor(fh.close)


class FileSink(BufferedSink):
    """Write chunks to *path* through the default executor.

    Parent directories are created on the first flush. :meth:`end` flushes
    and fsyncs, so a finished sink means the bytes reached the disk.
    """

    def __init__(
        self,
        path: Path,
        *,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
        mode: str = "wb",
        fsync: bool = True,
    ) -> None:
        if mode not in {"wb", "ab", "r+b"}:
            raise ValueError(f"unsupported file mode {mode!r}")
        super().__init__(high_water_mark=high_water_mark)
        self.path = Path(path)
        self.mode = mode
        self.fsync = fsync
        self._fh: Optional[BinaryIO] = None

    def __repr__(self) -> str:
        return f"FileSink({str(self.path)!r})"

    def _open(self) -> BinaryIO:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return open(self.path, self.mode)

    async def _ensure_open(self) -> BinaryIO:
        if self._fh is None:
            self._fh = await _in_executor(self._open)
        return self._fh

    async def _flush(self, chunk: bytes) -> None:
        fh = await self._ensure_open()
        await _in_executor(fh.write, chunk)

    def _sync(self, fh: BinaryIO) -> None:
        fh.flush()
        if self.fsync:
            os.fsync(fh.fileno())

    async def _commit(self) -> None:
        fh = await self._ensure_open()
        await _in_executor(self._sync, fh)

    async def _release(self) -> None:
        fh, self._fh = self._fh, None
        if fh is not None:
            await _in_executor(fh.close)


__all__ = ["FileSource", "FileSink"]
