"""Bounded-buffer streaming copy.

A :class:`StreamPump` moves bytes from a :class:`~streampump.io.base.Source`
to a :class:`~streampump.io.base.Sink` one chunk at a time. When the sink
reports it is full the pump stops reading until the sink emits ``"drain"``.
Every pump ends with exactly one :class:`CompletionSignal`.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generator, Optional

from .common.chunker import validate_chunk_size
from .config import DEFAULT_CHUNK_SIZE_BYTES
from .errors import CancellationError, PumpError, SinkWriteError, SourceReadError
from .events import EventEmitter
from .io.base import Sink, Source
from .logging_utils import fields, get_logger, log_progress


class PumpState(str, Enum):
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"
    DRAINING = "DRAINING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (PumpState.FINISHED, PumpState.FAILED)


@dataclass(frozen=True)
class CompletionSignal:
    """Terminal outcome of one transfer."""

    transfer_id: str
    state: PumpState
    bytes_transferred: int
    chunks_transferred: int
    error: Optional[PumpError] = None

    @property
    def ok(self) -> bool:
        return self.state is PumpState.FINISHED

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


CompletionCallback = Callable[[CompletionSignal], Any]


class StreamPump:
    """Transfer a byte stream from *source* to *sink* without overrunning it.

    The pump owns both ends for the duration of the transfer and closes them
    once it reaches a terminal state. With ``finalize_sink=False`` the sink is
    neither ended nor closed, so further streams can be appended to it.

    Observers may subscribe to ``pump.events``: ``"state"`` (new state),
    ``"chunk"`` (bytes handed to the sink), ``"drain"`` and ``"complete"``
    (the :class:`CompletionSignal`).
    """

    def __init__(
        self,
        source: Source,
        sink: Sink,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
        on_complete: Optional[CompletionCallback] = None,
        finalize_sink: bool = True,
        transfer_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.chunk_size = validate_chunk_size(chunk_size)
        self.source = source
        self.sink = sink
        self.finalize_sink = finalize_sink
        self.transfer_id = transfer_id or uuid.uuid4().hex[:12]
        self.events = EventEmitter()
        if on_complete is not None:
            self.events.once("complete", on_complete)
        self.bytes_transferred = 0
        self.chunks_transferred = 0
        self._logger = logger or get_logger("pump")
        self._state = PumpState.IDLE
        self._running = False
        self._signal: Optional[CompletionSignal] = None
        self._completion: Optional[asyncio.Future[CompletionSignal]] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._drain_waiter: Optional[asyncio.Future[None]] = None
        self._pending_error: Optional[PumpError] = None

    def __repr__(self) -> str:
        return f"StreamPump(id={self.transfer_id!r}, state={self._state.value})"

    @property
    def state(self) -> PumpState:
        return self._state

    @property
    def done(self) -> bool:
        return self._signal is not None

    @property
    def signal(self) -> Optional[CompletionSignal]:
        return self._signal

    def start(self) -> "StreamPump":
        if self._task is not None:
            raise RuntimeError(f"{self!r} was already started")
        loop = asyncio.get_running_loop()
        self._completion = loop.create_future()
        self.sink.on("drain", self._on_drain)
        self.sink.on("error", self._on_sink_error)
        self._task = loop.create_task(self._run(), name=f"stream-pump-{self.transfer_id}")
        return self

    def cancel(self, reason: str = "cancelled") -> bool:
        """Abort the transfer; return ``False`` if it had already ended."""

        if self._task is None:
            raise RuntimeError(f"{self!r} has not been started")
        return self._abort(CancellationError(reason))

    async def wait(self) -> CompletionSignal:
        """Return the completion signal once source and sink are released."""

        if self._task is None or self._completion is None:
            raise RuntimeError(f"{self!r} has not been started")
        await asyncio.wait({self._task})
        if not self._task.cancelled():
            exc = self._task.exception()
            if exc is not None:
                raise exc
        if not self._completion.done():
            raise RuntimeError(f"{self!r} stopped without a completion signal")
        return self._completion.result()

    async def result(self) -> CompletionSignal:
        """Like :meth:`wait` but raise the transfer error, if any."""

        signal = await self.wait()
        signal.raise_for_error()
        return signal

    def __await__(self) -> Generator[Any, None, CompletionSignal]:
        return self.result().__await__()

    async def _run(self) -> None:
        try:
            await self._transfer()
        except PumpError as exc:
            self._settle(PumpState.FAILED, exc)
        except asyncio.CancelledError:
            self._settle(PumpState.FAILED, self._pending_error or CancellationError("task cancelled"))
            raise
        except Exception as exc:
            # an observer raised; settle, then let the original error surface
            failure = PumpError(f"pump observer failed: {exc!r}")
            failure.__cause__ = exc
            self._settle(PumpState.FAILED, failure)
            raise
        else:
            self._settle(PumpState.FINISHED)
        finally:
            await self._release()

    async def _transfer(self) -> None:
        self._running = True
        self._raise_if_aborted()
        self._set_state(PumpState.ACTIVE)
        while True:
            chunk = await self._read_chunk()
            self._raise_if_aborted()
            if not chunk:
                break
            accepted = self._write_chunk(chunk)
            self._raise_if_aborted()
            if not accepted:
                self._set_state(PumpState.DRAINING)
                await self._wait_for_drain()
                self._set_state(PumpState.ACTIVE)
                self.events.emit("drain")
        if self.finalize_sink:
            await self._finalize()
        self._raise_if_aborted()

    async def _read_chunk(self) -> bytes:
        try:
            chunk = await self.source.read(self.chunk_size)
        except PumpError:
            raise
        except Exception as exc:
            raise SourceReadError(f"source read failed: {exc}") from exc
        if len(chunk) > self.chunk_size:
            raise SourceReadError(
                f"source returned {len(chunk)} bytes for a {self.chunk_size} byte request"
            )
        return bytes(chunk)

    def _write_chunk(self, chunk: bytes) -> bool:
        try:
            accepted = self.sink.write(chunk)
        except PumpError:
            raise
        except Exception as exc:
            raise SinkWriteError(f"sink write failed: {exc}") from exc
        self.bytes_transferred += len(chunk)
        self.chunks_transferred += 1
        self.events.emit("chunk", chunk)
        return bool(accepted)

    async def _wait_for_drain(self) -> None:
        loop = asyncio.get_running_loop()
        self._drain_waiter = loop.create_future()
        try:
            await self._drain_waiter
        finally:
            self._drain_waiter = None

    async def _finalize(self) -> None:
        try:
            await self.sink.end()
        except PumpError:
            raise
        except Exception as exc:
            raise SinkWriteError(f"failed to finalize sink: {exc}") from exc

    def _on_drain(self) -> None:
        waiter = self._drain_waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    def _on_sink_error(self, exc: BaseException) -> None:
        if isinstance(exc, SinkWriteError):
            error = exc
        else:
            error = SinkWriteError(f"sink write failed: {exc}")
            error.__cause__ = exc
        waiter = self._drain_waiter
        if waiter is not None and not waiter.done():
            waiter.set_exception(error)
        elif self._task is not None and asyncio.current_task() is self._task:
            self._pending_error = self._pending_error or error
        else:
            self._abort(error)

    def _abort(self, error: PumpError) -> bool:
        if self._signal is not None:
            return False
        self._pending_error = error
        task = self._task
        if (
            task is not None
            and self._running
            and not task.done()
            and task is not asyncio.current_task()
        ):
            task.cancel()
        return self._settle(PumpState.FAILED, error)

    def _raise_if_aborted(self) -> None:
        if self._pending_error is not None:
            raise self._pending_error

    def _set_state(self, state: PumpState) -> None:
        if self._state is state:
            return
        self._logger.debug(
            "pump state %s -> %s",
            self._state.value,
            state.value,
            extra=fields(transfer_id=self.transfer_id),
        )
        self._state = state
        self.events.emit("state", state)

    def _settle(self, state: PumpState, error: Optional[PumpError] = None) -> bool:
        if self._signal is not None:
            self._logger.debug(
                "discarding terminal event %s after %s",
                state.value,
                self._signal.state.value,
                extra=fields(transfer_id=self.transfer_id),
            )
            return False
        signal = CompletionSignal(
            transfer_id=self.transfer_id,
            state=state,
            bytes_transferred=self.bytes_transferred,
            chunks_transferred=self.chunks_transferred,
            error=error,
        )
        self._signal = signal
        if self._completion is not None and not self._completion.done():
            self._completion.set_result(signal)
        log_progress(
            self._logger,
            transfer_id=self.transfer_id,
            bytes_transferred=self.bytes_transferred,
            chunks_transferred=self.chunks_transferred,
            state=state.value,
            detail=str(error) if error is not None else None,
            level=logging.INFO if error is None else logging.ERROR,
        )
        try:
            self._set_state(state)
        finally:
            self.events.emit("complete", signal)
        return True

    async def _release(self) -> None:
        self.sink.off("drain", self._on_drain)
        self.sink.off("error", self._on_sink_error)
        resources: list[Any] = [self.source]
        if self.finalize_sink:
            resources.append(self.sink)
        for resource in resources:
            try:
                await resource.close()
            except Exception:
                self._logger.warning(
                    "failed to close %r",
                    resource,
                    exc_info=True,
                    extra=fields(transfer_id=self.transfer_id),
                )


def start(
    source: Source,
    sink: Sink,
    chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
    *,
    on_complete: Optional[CompletionCallback] = None,
    finalize_sink: bool = True,
    transfer_id: Optional[str] = None,
) -> StreamPump:
    """Create a pump and begin transferring on the running loop."""

    pump = StreamPump(
        source,
        sink,
        chunk_size=chunk_size,
        on_complete=on_complete,
        finalize_sink=finalize_sink,
        transfer_id=transfer_id,
    )
    return pump.start()


async def transfer(
    source: Source,
    sink: Sink,
    chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
    **kwargs: Any,
) -> CompletionSignal:
    """Run a pump to completion, raising its error if it failed."""

    return await start(source, sink, chunk_size, **kwargs)


__all__ = [
    "PumpState",
    "CompletionSignal",
    "CompletionCallback",
    "StreamPump",
    "start",
    "transfer",
]
