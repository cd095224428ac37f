"""Network sources and sinks built on asyncio streams and httpx."""
from __future__ import annotations

import asyncio
import json
import struct
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from ..common.chunker import expected_chunk_count, validate_chunk_size
from ..common.filesystem import file_size, resolve_under_root
from ..config import DEFAULT_CHUNK_SIZE_BYTES, DEFAULT_HIGH_WATER_MARK, DEFAULT_TCP_PORT
from ..errors import PumpError, SinkWriteError, SourceReadError
from ..events import EventEmitter
from ..logging_utils import fields, get_logger
from ..pump import CompletionSignal, start
from .files import FileSink, FileSource

_HEADER_STRUCT = struct.Struct("!I")
_MAX_HEADER_BYTES = 64 * 1024
_ACK_OK = b"\x00"
_ACK_FAILED = b"\x01"
_LOGGER = get_logger("network")


class StreamReaderSource:
    """Adapt an ``asyncio.StreamReader``.

    With *length* set, the source ends after exactly that many bytes and an
    earlier EOF is a read failure.
    """

    def __init__(self, reader: asyncio.StreamReader, *, length: Optional[int] = None) -> None:
        self._reader = reader
        self._remaining = length
        self.closed = False

    async def read(self, size: int) -> bytes:
        if self.closed:
            raise SourceReadError("read from closed stream")
        if self._remaining == 0:
            return b""
        want = size if self._remaining is None else min(size, self._remaining)
        try:
            data = await self._reader.read(want)
        except (ConnectionError, OSError) as exc:
            raise SourceReadError(f"stream read failed: {exc}") from exc
        if self._remaining is not None:
            if not data:
                raise SourceReadError("unexpected EOF from sender")
            self._remaining -= len(data)
        return data

    async def close(self) -> None:
        self.closed = True


class StreamWriterSink(EventEmitter):
    """Adapt an ``asyncio.StreamWriter``.

    ``write`` reports a full sink once the transport buffer reaches
    *high_water_mark*; ``"drain"`` follows when ``writer.drain()`` returns.
    """

    def __init__(
        self,
        writer: asyncio.StreamWriter,
        *,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
        close_writer: bool = True,
    ) -> None:
        super().__init__()
        self._writer = writer
        self.high_water_mark = high_water_mark
        self.close_writer = close_writer
        self.bytes_written = 0
        self._drainer: Optional[asyncio.Task[None]] = None
        self._error: Optional[BaseException] = None
        self._ended = False
        self._closed = False
        writer.transport.set_write_buffer_limits(high=high_water_mark)

    def write(self, chunk: bytes) -> bool:
        if self._error is not None:
            raise SinkWriteError(f"connection failed: {self._error}") from self._error
        if self._ended or self._closed:
            raise SinkWriteError("write after end")
        if self._writer.is_closing():
            raise SinkWriteError("connection is closing")
        self._writer.write(chunk)
        self.bytes_written += len(chunk)
        if self._writer.transport.get_write_buffer_size() < self.high_water_mark:
            return True
        if self._drainer is None:
            self._drainer = asyncio.get_running_loop().create_task(self._wait_for_drain())
        return False

    async def _wait_for_drain(self) -> None:
        try:
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            self._drainer = None
            self._error = exc
            self.emit("error", exc)
            return
        self._drainer = None
        self.emit("drain")

    async def end(self) -> None:
        if self._error is not None:
            raise SinkWriteError(f"connection failed: {self._error}") from self._error
        self._ended = True
        try:
            await self._writer.drain()
            if self._writer.can_write_eof():
                self._writer.write_eof()
        except (ConnectionError, OSError) as exc:
            raise SinkWriteError(f"failed to flush connection: {exc}") from exc
        self.emit("finish")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        drainer = self._drainer
        if drainer is not None and not drainer.done():
            drainer.cancel()
            await asyncio.wait({drainer})
        if not self.close_writer:
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass


class HTTPSource:
    """Stream an HTTP response body.

    The request is sent on the first read. A client passed in by the caller
    stays open; one created here is closed with the source.
    """

    def __init__(
        self,
        url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        method: str = "GET",
        timeout: float = 30.0,
    ) -> None:
        self.url = url
        self.method = method
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._response: Optional[httpx.Response] = None
        self._iterator: Any = None
        self._buffer = bytearray()
        self._eof = False
        self.closed = False

    async def _open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        request = self._client.build_request(self.method, self.url)
        self._response = await self._client.send(request, stream=True)
        if self._response.is_error:
            raise SourceReadError(f"{self.url} returned HTTP {self._response.status_code}")
        self._iterator = self._response.aiter_bytes()

    async def read(self, size: int) -> bytes:
        if self.closed:
            raise SourceReadError(f"read from closed source {self.url}")
        try:
            if self._response is None:
                await self._open()
            while len(self._buffer) < size and not self._eof:
                try:
                    piece = await self._iterator.__anext__()
                except StopAsyncIteration:
                    self._eof = True
                    break
                self._buffer.extend(piece)
        except httpx.HTTPError as exc:
            raise SourceReadError(f"failed reading {self.url}: {exc}") from exc
        chunk = bytes(self._buffer[:size])
        del self._buffer[:size]
        return chunk

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._response is not None:
            await self._response.aclose()
        if self._owns_client and self._client is not None:
            await self._client.aclose()


async def _read_header(reader: asyncio.StreamReader) -> Dict[str, Any]:
    header_len_bytes = await reader.readexactly(_HEADER_STRUCT.size)
    (header_len,) = _HEADER_STRUCT.unpack(header_len_bytes)
    if header_len > _MAX_HEADER_BYTES:
        raise ValueError(f"header of {header_len} bytes exceeds {_MAX_HEADER_BYTES}")
    header_bytes = await reader.readexactly(header_len)
    header = json.loads(header_bytes.decode("utf-8"))
    if not isinstance(header, dict):
        raise ValueError("header must be a JSON object")
    if not isinstance(header.get("relative_path"), str):
        raise ValueError("header requires a relative_path")
    length = header.get("length")
    if isinstance(length, bool) or not isinstance(length, int) or length < 0:
        raise ValueError("header requires a non-negative length")
    return header


class TCPReceiver:
    """Accept framed file uploads and pump each one into ``dest_root``.

    A sender writes a length-prefixed JSON header naming ``relative_path``
    and ``length``, then the payload. The receiver answers with one status
    byte once the file is committed.
    """

    def __init__(
        self,
        dest_root: Path,
        *,
        host: str = "127.0.0.1",
        port: int = DEFAULT_TCP_PORT,
        chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
    ) -> None:
        self.dest_root = Path(dest_root)
        self.host = host
        self.port = port
        self.chunk_size = validate_chunk_size(chunk_size)
        self.high_water_mark = validate_chunk_size(high_water_mark, name="high_water_mark")
        self.completed: List[CompletionSignal] = []
        self._server: Optional[asyncio.Server] = None

    async def start(self) -> "TCPReceiver":
        self._server = await asyncio.start_server(self._handle_connection, self.host, self.port)
        if self.port == 0:
            self.port = self._server.sockets[0].getsockname()[1]
        _LOGGER.info(
            "receiver listening",
            extra=fields(host=self.host, port=self.port),
        )
        return self

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server is not None
        await self._server.serve_forever()

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def __aenter__(self) -> "TCPReceiver":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            try:
                header = await _read_header(reader)
                dest_path = resolve_under_root(self.dest_root, header["relative_path"])
            except (asyncio.IncompleteReadError, ValueError, PermissionError) as exc:
                _LOGGER.warning("rejected upload: %s", exc)
                writer.write(_ACK_FAILED)
                return
            rel_path = header["relative_path"]
            try:
                pump = start(
                    StreamReaderSource(reader, length=header["length"]),
                    FileSink(dest_path, high_water_mark=self.high_water_mark),
                    self.chunk_size,
                    transfer_id=f"recv:{rel_path}",
                )
            except PumpError as exc:
                _LOGGER.warning("cannot receive %s: %s", rel_path, exc)
                writer.write(_ACK_FAILED)
                return
            _LOGGER.info(
                "receiving upload",
                extra=fields(
                    transfer_id=pump.transfer_id,
                    total_bytes=header["length"],
                    expected_chunks=expected_chunk_count(header["length"], self.chunk_size),
                ),
            )
            signal = await pump.wait()
            self.completed.append(signal)
            writer.write(_ACK_OK if signal.ok else _ACK_FAILED)
            await writer.drain()
        except (ConnectionError, OSError) as exc:
            _LOGGER.warning("connection dropped: %s", exc)
        finally:
            writer.close()


async def send_file(
    host: str,
    port: int,
    path: Path,
    *,
    relative_path: Optional[str] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
    high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
    connect_timeout: float = 30.0,
) -> CompletionSignal:
    """Upload *path* to a :class:`TCPReceiver` and wait for its acknowledgement."""

    path = Path(path)
    try:
        length = file_size(path)
    except OSError as exc:
        raise SourceReadError(f"cannot stat {path}: {exc}") from exc
    header = {"relative_path": relative_path or path.name, "length": length}
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=connect_timeout
        )
    except (OSError, asyncio.TimeoutError) as exc:
        raise SinkWriteError(f"TCP connect to {host}:{port} failed: {exc}") from exc
    try:
        header_bytes = json.dumps(header).encode("utf-8")
        writer.write(_HEADER_STRUCT.pack(len(header_bytes)))
        writer.write(header_bytes)
        sink = StreamWriterSink(writer, high_water_mark=high_water_mark, close_writer=False)
        signal = await start(
            FileSource(path, length=length),
            sink,
            chunk_size,
            transfer_id=f"send:{header['relative_path']}",
        )
        try:
            ack = await reader.readexactly(1)
        except (asyncio.IncompleteReadError, ConnectionError) as exc:
            raise SinkWriteError(f"receiver closed before acknowledging: {exc}") from exc
        if ack != _ACK_OK:
            raise SinkWriteError(f"receiver failed to store {header['relative_path']}")
        return signal
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass


__all__ = [
    "StreamReaderSource",
    "StreamWriterSink",
    "HTTPSource",
    "TCPReceiver",
    "send_file",
]
