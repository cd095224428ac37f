"""Error taxonomy for stream transfers."""
from __future__ import annotations


class PumpError(RuntimeError):
    """Base class for every terminal transfer error."""


class ConfigurationError(PumpError, ValueError):
    """Raised when a pump or config value is invalid."""


class SourceReadError(PumpError):
    """The source failed while a chunk was being requested."""


class SinkWriteError(PumpError):
    """The sink rejected a write or failed to commit it."""


class CancellationError(PumpError):
    """The caller aborted the transfer."""

    def __init__(self, reason: str = "cancelled") -> None:
        super().__init__(reason)
        self.reason = reason


__all__ = [
    "PumpError",
    "ConfigurationError",
    "SourceReadError",
    "SinkWriteError",
    "CancellationError",
]
