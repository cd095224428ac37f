from pathlib import Path

import pytest

from streampump import PumpState, SourceReadError, start
from streampump.io.files import FileSink, FileSource
from streampump.io.memory import BytesSource, MemorySink


async def test_file_source_reads_byte_range(tmp_path: Path) -> None:
    path = tmp_path / "source.bin"
    path.write_bytes(b"0123456789")
    source = FileSource(path, offset=2, length=5)

    chunks = []
    while True:
        chunk = await source.read(2)
        if not chunk:
            break
        chunks.append(chunk)
    await source.close()

    assert chunks == [b"23", b"45", b"6"]
    assert source.closed


async def test_file_source_range_past_eof_fails(tmp_path: Path) -> None:
    path = tmp_path / "short.bin"
    path.write_bytes(b"abc")
    source = FileSource(path, length=10)

    assert await source.read(8) == b"abc"
    with pytest.raises(SourceReadError, match="unexpected EOF"):
        await source.read(8)
    await source.close()


async def test_missing_file_fails_pump_with_source_error(tmp_path: Path) -> None:
    dest = tmp_path / "out" / "copy.bin"
    signal = await start(FileSource(tmp_path / "missing.bin"), FileSink(dest), 4).wait()

    assert signal.state is PumpState.FAILED
    assert isinstance(signal.error, SourceReadError)
    assert isinstance(signal.error.__cause__, FileNotFoundError)
    assert not dest.exists()


async def test_file_sink_creates_parents_and_commits(tmp_path: Path) -> None:
    dest = tmp_path / "nested" / "dir" / "out.bin"
    data = b"payload" * 5000
    sink = FileSink(dest, high_water_mark=1024)

    signal = await start(BytesSource(data), sink, 1000)

    assert signal.ok
    assert sink.finished
    assert sink.closed
    assert dest.read_bytes() == data


async def test_empty_source_still_creates_destination(tmp_path: Path) -> None:
    dest = tmp_path / "empty.bin"

    signal = await start(BytesSource(b""), FileSink(dest), 16)

    assert signal.chunks_transferred == 0
    assert dest.exists()
    assert dest.read_bytes() == b""


async def test_file_to_memory(tmp_path: Path) -> None:
    path = tmp_path / "data.bin"
    path.write_bytes(bytes(range(256)) * 10)
    sink = MemorySink(high_water_mark=300)

    signal = await start(FileSource(path), sink, 512)

    assert signal.chunks_transferred == 5
    assert sink.getvalue() == path.read_bytes()


def test_file_sink_rejects_unknown_mode(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        FileSink(tmp_path / "x", mode="w")
