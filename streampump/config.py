"""streampump configuration defaults and YAML loading."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .common.chunker import validate_chunk_size
from .errors import ConfigurationError


DEFAULT_CHUNK_SIZE_BYTES: int = 64 * 1024  # 64 KiB
DEFAULT_HIGH_WATER_MARK: int = 64 * 1024
DEFAULT_HTTP_PORT: int = 8000
DEFAULT_TCP_PORT: int = 50051
LOG_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


@dataclass(frozen=True)
class PumpConfig:
    chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES
    high_water_mark: int = DEFAULT_HIGH_WATER_MARK


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = DEFAULT_HTTP_PORT
    root: Path = field(default_factory=Path.cwd)
    tcp_port: int = DEFAULT_TCP_PORT


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    log_file: Optional[str] = None


@dataclass(frozen=True)
class StreamPumpConfig:
    pump: PumpConfig = field(default_factory=PumpConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


DEFAULT_CONFIG = StreamPumpConfig()

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{name}' section must be a mapping")
    return value


def _build_pump(data: Dict[str, Any]) -> PumpConfig:
    chunk_size = data.get("chunk_size", DEFAULT_CHUNK_SIZE_BYTES)
    high_water_mark = data.get("high_water_mark", DEFAULT_HIGH_WATER_MARK)
    return PumpConfig(
        chunk_size=validate_chunk_size(chunk_size),
        high_water_mark=validate_chunk_size(high_water_mark, name="high_water_mark"),
    )


def _build_server(data: Dict[str, Any]) -> ServerConfig:
    defaults = ServerConfig()
    port = data.get("port", defaults.port)
    tcp_port = data.get("tcp_port", defaults.tcp_port)
    for name, value in (("port", port), ("tcp_port", tcp_port)):
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 65535:
            raise ConfigurationError(f"server.{name} must be a TCP port number, got {value!r}")
    root = Path(data.get("root", defaults.root))
    if not root.is_absolute():
        raise ConfigurationError(f"server.root '{root}' must be an absolute path")
    return ServerConfig(
        host=str(data.get("host", defaults.host)),
        port=port,
        root=root,
        tcp_port=tcp_port,
    )


def _build_logging(data: Dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ConfigurationError(f"logging.level must be one of {sorted(_LOG_LEVELS)}")
    return LoggingConfig(level=level, log_file=data.get("log_file"))


def load_config(path: str | Path | None) -> StreamPumpConfig:
    if path is None:
        return DEFAULT_CONFIG
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(path)
    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("configuration file must contain a mapping")
    return StreamPumpConfig(
        pump=_build_pump(_section(data, "pump")),
        server=_build_server(_section(data, "server")),
        logging=_build_logging(_section(data, "logging")),
    )
