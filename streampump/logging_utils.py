"""JSON logging for pumps, receivers and the CLI.

Structured values travel as ``LogRecord`` attributes prefixed with
:data:`EXTRA_PREFIX`; build them with :func:`fields` rather than by hand.
"""
from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List, Mapping, Optional, TextIO

from .config import LOG_TIME_FORMAT

EXTRA_PREFIX = "_sp_"

# emitted first, in this order, whenever a record carries them
TRANSFER_FIELDS = (
    "transfer_id",
    "state",
    "bytes_transferred",
    "chunks_transferred",
    "detail",
)


def fields(**values: Any) -> Dict[str, Any]:
    """Return *values* as ``extra=`` attributes understood by :class:`JsonFormatter`."""

    return {f"{EXTRA_PREFIX}{key}": value for key, value in values.items()}


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Transfer fields lead the payload, other prefixed attributes follow, and
    *static_fields* (for example the service name) are added to every line.
    """

    def __init__(self, *, static_fields: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(datefmt=LOG_TIME_FORMAT)
        self._static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(self._static_fields)

        extras = {
            key[len(EXTRA_PREFIX):]: value
            for key, value in vars(record).items()
            if key.startswith(EXTRA_PREFIX)
        }
        for name in TRANSFER_FIELDS:
            if name in extras:
                payload[name] = extras.pop(name)
        payload.update(extras)

        task_name = getattr(record, "taskName", None)
        if task_name:
            payload["task"] = task_name
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _handlers(
    stream: TextIO, log_file: Optional[str], max_bytes: int, backup_count: int
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(stream)]
    if log_file:
        handlers.append(
            RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        )
    return handlers


def setup_logging(
    name: str,
    *,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    max_bytes: int = 20 * 1024 * 1024,
    backup_count: int = 5,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Route *name* and its children to stdout (and *log_file*) as JSON.

    Calling it again replaces the handlers installed by the previous call.
    """

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = JsonFormatter(static_fields={"service": name})
    for handler in _handlers(stream or sys.stdout, log_file, max_bytes, backup_count):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a library logger under the ``streampump`` namespace.

    Library modules log through the standard hierarchy so that callers (or
    ``setup_logging("streampump")``) decide where records go.
    """

    return logging.getLogger(f"streampump.{name}")


def log_progress(
    logger: logging.Logger,
    *,
    transfer_id: str,
    bytes_transferred: int,
    chunks_transferred: int,
    state: str,
    detail: Optional[str] = None,
    level: int = logging.INFO,
) -> None:
    """Emit a structured progress log entry."""

    extra = fields(
        transfer_id=transfer_id,
        state=state,
        bytes_transferred=bytes_transferred,
        chunks_transferred=chunks_transferred,
    )
    if detail:
        extra.update(fields(detail=detail))
    logger.log(level, "progress", extra=extra)
