import asyncio

import pytest

from streampump import PumpState, SinkWriteError, start
from streampump.io.base import BufferedSink
from streampump.io.iterator import IteratorSink
from streampump.io.memory import BytesSource, MemorySink

from fakes import until


class FlakySink(BufferedSink):
    """Fails the flush of the chunk numbered ``fail_on``."""

    def __init__(self, *, fail_on: int, high_water_mark: int) -> None:
        super().__init__(high_water_mark=high_water_mark)
        self.fail_on = fail_on
        self.flushed = []

    async def _flush(self, chunk: bytes) -> None:
        await asyncio.sleep(0)
        if len(self.flushed) + 1 == self.fail_on:
            raise OSError("device error")
        self.flushed.append(chunk)


async def test_memory_sink_reports_full_then_drains() -> None:
    sink = MemorySink(high_water_mark=4)
    drains = []
    sink.on("drain", lambda: drains.append(sink.backlog_bytes))

    assert sink.write(b"ab") is True
    assert sink.write(b"cd") is False
    assert sink.backlog_bytes == 4

    await until(lambda: drains)
    assert drains == [0]
    assert sink.chunks == [b"ab", b"cd"]

    await sink.end()
    assert sink.finished
    with pytest.raises(SinkWriteError):
        sink.write(b"ef")


async def test_no_drain_without_full_signal() -> None:
    sink = MemorySink(high_water_mark=16)
    drains = []
    sink.on("drain", lambda: drains.append(True))

    sink.write(b"abc")
    await until(lambda: sink.backlog_bytes == 0)
    assert drains == []


async def test_flush_failure_is_emitted_and_sticky() -> None:
    sink = FlakySink(fail_on=2, high_water_mark=64)
    errors = []
    sink.on("error", errors.append)

    sink.write(b"one")
    sink.write(b"two")
    await until(lambda: errors)

    assert isinstance(errors[0], OSError)
    with pytest.raises(SinkWriteError):
        sink.write(b"three")
    with pytest.raises(SinkWriteError):
        await sink.end()
    await sink.close()


async def test_pump_fails_when_buffered_sink_flush_fails() -> None:
    sink = FlakySink(fail_on=3, high_water_mark=2)

    signal = await start(BytesSource(b"abcdefghij"), sink, 2).wait()

    assert signal.state is PumpState.FAILED
    assert isinstance(signal.error, SinkWriteError)
    assert sink.flushed == [b"ab", b"cd"]
    assert sink.closed


async def test_iterator_sink_feeds_consumer_in_order() -> None:
    data = bytes(range(256)) * 40
    sink = IteratorSink(high_water_mark=64)
    pump = start(BytesSource(data), sink, 100)

    received = []
    async for chunk in sink:
        received.append(chunk)
        await asyncio.sleep(0)

    signal = await pump.result()
    assert b"".join(received) == data
    assert [len(chunk) for chunk in received[:-1]] == [100] * (len(received) - 1)
    assert signal.chunks_transferred == len(received)


async def test_iterator_sink_stops_iteration_when_pump_is_cancelled() -> None:
    sink = IteratorSink(high_water_mark=8)
    pump = start(BytesSource(b"x" * 1024), sink, 8)

    await until(lambda: pump.state is PumpState.DRAINING)
    pump.cancel("consumer gone")
    await pump.wait()

    received = [chunk async for chunk in sink]
    assert received == []
