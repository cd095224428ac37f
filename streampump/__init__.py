"""Bounded-buffer streaming copies with backpressure."""
from __future__ import annotations

__version__ = "0.1.0"

from .errors import (
    CancellationError,
    ConfigurationError,
    PumpError,
    SinkWriteError,
    SourceReadError,
)
from .events import EventEmitter
from .pump import CompletionSignal, PumpState, StreamPump, start, transfer
from .sequence import concat, concat_files, copy_file, run_in_order

__all__ = [
    "__version__",
    "CancellationError",
    "ConfigurationError",
    "PumpError",
    "SinkWriteError",
    "SourceReadError",
    "EventEmitter",
    "CompletionSignal",
    "PumpState",
    "StreamPump",
    "start",
    "transfer",
    "concat",
    "concat_files",
    "copy_file",
    "run_in_order",
]
