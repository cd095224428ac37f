"""Sources and sinks.

``streampump.io.network`` depends on the pump itself and is imported
explicitly by callers.
"""
from .base import BufferedSink, Sink, Source
from .files import FileSink, FileSource
from .iterator import IteratorSink
from .memory import BytesSource, MemorySink

__all__ = [
    "Source",
    "Sink",
    "BufferedSink",
    "BytesSource",
    "MemorySink",
    "FileSource",
    "FileSink",
    "IteratorSink",
]
