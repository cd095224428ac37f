import asyncio
from pathlib import Path

import pytest

from streampump import PumpState, SourceReadError
from streampump.io.memory import BytesSource, MemorySink
from streampump.sequence import concat, concat_files, copy_file, run_in_order

from fakes import ScriptedSource


async def test_run_in_order_waits_for_each_step() -> None:
    events = []

    def step(name: str, delay: int):
        async def _run() -> str:
            events.append(f"start {name}")
            for _ in range(delay):
                await asyncio.sleep(0)
            events.append(f"end {name}")
            return name

        return _run

    results = await run_in_order([step("a", 3), step("b", 0), step("c", 1)])

    assert results == ["a", "b", "c"]
    assert events == ["start a", "end a", "start b", "end b", "start c", "end c"]


async def test_run_in_order_stops_at_first_failure() -> None:
    started = []

    async def ok() -> None:
        started.append("ok")

    async def broken() -> None:
        started.append("broken")
        raise RuntimeError("step failed")

    async def never() -> None:
        started.append("never")

    with pytest.raises(RuntimeError):
        await run_in_order([ok, broken, never])
    assert started == ["ok", "broken"]


async def test_concat_appends_sources_and_ends_once() -> None:
    sink = MemorySink(high_water_mark=4)
    finishes = []
    sink.on("finish", lambda: finishes.append(True))
    sources = [BytesSource(b"hello "), BytesSource(b""), BytesSource(b"world")]

    signal = await concat(sources, sink, 4)

    assert sink.getvalue() == b"hello world"
    assert signal.state is PumpState.FINISHED
    assert signal.bytes_transferred == 11
    assert signal.chunks_transferred == 4
    assert finishes == [True]
    assert sink.closed
    assert all(source.closed for source in sources)


async def test_concat_failure_skips_remaining_sources() -> None:
    sink = MemorySink()
    later = ScriptedSource(b"never read")
    sources = [BytesSource(b"abc"), ScriptedSource(b"xyz", fail_at=1), later]

    with pytest.raises(SourceReadError):
        await concat(sources, sink, 2)

    assert later.reads == 0
    assert later.closed
    assert sink.closed
    assert not sink.finished


class _CloseFailingSource(ScriptedSource):
    async def close(self) -> None:
        await super().close()
        raise OSError("close failed")


async def test_concat_close_failure_keeps_transfer_error_and_closes_the_rest() -> None:
    sink = MemorySink()
    later = ScriptedSource(b"never read")
    sources = [_CloseFailingSource(b"abc"), ScriptedSource(b"xyz", fail_at=1), later]

    with pytest.raises(SourceReadError):
        await concat(sources, sink, 2)

    assert later.closed
    assert sink.closed


async def test_copy_file(tmp_path: Path) -> None:
    src = tmp_path / "src.bin"
    src.write_bytes(b"z" * 150_000)
    dest = tmp_path / "dest.bin"

    signal = await copy_file(src, dest)

    assert signal.chunks_transferred == 3
    assert dest.read_bytes() == src.read_bytes()


async def test_concat_files(tmp_path: Path) -> None:
    first = tmp_path / "a.txt"
    second = tmp_path / "b.txt"
    first.write_text("first\n")
    second.write_text("second\n")
    dest = tmp_path / "joined.txt"

    await concat_files([first, second], dest, chunk_size=3)

    assert dest.read_text() == "first\nsecond\n"
