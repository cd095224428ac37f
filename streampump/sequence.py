"""Run transfers one after another without nesting callbacks."""
from __future__ import annotations

from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar

from .config import DEFAULT_CHUNK_SIZE_BYTES, DEFAULT_HIGH_WATER_MARK
from .errors import PumpError, SinkWriteError
from .io.base import Sink, Source
from .io.files import FileSink, FileSource
from .logging_utils import fields, get_logger, log_progress
from .pump import CompletionSignal, PumpState, transfer

T = TypeVar("T")

_LOGGER = get_logger("sequence")


async def run_in_order(steps: Iterable[Callable[[], Awaitable[T]]]) -> List[T]:
    """Await each step after the previous one has completed.

    The first exception propagates and the remaining steps are never started.
    """

    results: List[T] = []
    for step in steps:
        results.append(await step())
    return results


async def concat(
    sources: Sequence[Source],
    sink: Sink,
    chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
    *,
    transfer_id: str = "concat",
) -> CompletionSignal:
    """Pump *sources* into *sink* in order and finalize the sink once.

    Every source and the sink are closed whatever the outcome.
    """

    def _step(index: int, source: Source) -> Callable[[], Awaitable[CompletionSignal]]:
        return lambda: transfer(
            source,
            sink,
            chunk_size,
            finalize_sink=False,
            transfer_id=f"{transfer_id}[{index}]",
        )

    try:
        signals = await run_in_order(_step(idx, src) for idx, src in enumerate(sources))
        try:
            await sink.end()
        except PumpError:
            raise
        except Exception as exc:
            raise SinkWriteError(f"failed to finalize sink: {exc}") from exc
    finally:
        for resource in [*sources, sink]:
            try:
                await resource.close()
            except Exception:
                _LOGGER.warning(
                    "failed to close %r",
                    resource,
                    exc_info=True,
                    extra=fields(transfer_id=transfer_id),
                )

    combined = CompletionSignal(
        transfer_id=transfer_id,
        state=PumpState.FINISHED,
        bytes_transferred=sum(signal.bytes_transferred for signal in signals),
        chunks_transferred=sum(signal.chunks_transferred for signal in signals),
    )
    log_progress(
        _LOGGER,
        transfer_id=transfer_id,
        bytes_transferred=combined.bytes_transferred,
        chunks_transferred=combined.chunks_transferred,
        state=combined.state.value,
        detail=f"{len(signals)} sources",
    )
    return combined


async def copy_file(
    src: Path,
    dest: Path,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
    high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
    transfer_id: Optional[str] = None,
) -> CompletionSignal:
    """Copy *src* to *dest* through a pump."""

    return await transfer(
        FileSource(Path(src)),
        FileSink(Path(dest), high_water_mark=high_water_mark),
        chunk_size,
        transfer_id=transfer_id,
    )


async def concat_files(
    sources: Sequence[Path],
    dest: Path,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
    high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
) -> CompletionSignal:
    """Write the contents of *sources*, in order, to *dest*."""

    return await concat(
        [FileSource(Path(path)) for path in sources],
        FileSink(Path(dest), high_water_mark=high_water_mark),
        chunk_size,
        transfer_id=f"concat:{Path(dest).name}",
    )


__all__ = ["run_in_order", "concat", "copy_file", "concat_files"]
