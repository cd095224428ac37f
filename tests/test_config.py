from pathlib import Path

import pytest

pytest.importorskip("yaml")

from streampump.config import DEFAULT_CONFIG, DEFAULT_CHUNK_SIZE_BYTES, load_config
from streampump.errors import ConfigurationError


def test_load_config_defaults_without_path() -> None:
    config = load_config(None)
    assert config is DEFAULT_CONFIG
    assert config.pump.chunk_size == DEFAULT_CHUNK_SIZE_BYTES == 65536


def test_load_config(tmp_path: Path) -> None:
    cfg = tmp_path / "streampump.yml"
    cfg.write_text(
        f"""
pump:
  chunk_size: 4096
  high_water_mark: 16384
server:
  host: 0.0.0.0
  port: 9000
  root: {tmp_path}
logging:
  level: debug
  log_file: {tmp_path / "pump.log"}
""".strip()
    )

    config = load_config(cfg)

    assert config.pump.chunk_size == 4096
    assert config.pump.high_water_mark == 16384
    assert config.server.host == "0.0.0.0"
    assert config.server.port == 9000
    assert config.server.root == tmp_path
    assert config.logging.level == "DEBUG"
    assert config.logging.log_file == str(tmp_path / "pump.log")


def test_partial_config_keeps_defaults(tmp_path: Path) -> None:
    cfg = tmp_path / "partial.yml"
    cfg.write_text("pump:\n  chunk_size: 128\n")

    config = load_config(cfg)

    assert config.pump.chunk_size == 128
    assert config.pump.high_water_mark == DEFAULT_CONFIG.pump.high_water_mark
    assert config.server.port == DEFAULT_CONFIG.server.port


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yml")


@pytest.mark.parametrize(
    "content",
    [
        "pump:\n  chunk_size: 0\n",
        "pump:\n  high_water_mark: -1\n",
        "server:\n  root: relative/dir\n",
        "server:\n  port: 70000\n",
        "logging:\n  level: chatty\n",
        "pump: [1, 2]\n",
        "- not a mapping\n",
    ],
)
def test_invalid_config_values(tmp_path: Path, content: str) -> None:
    cfg = tmp_path / "bad.yml"
    cfg.write_text(content)
    with pytest.raises(ConfigurationError):
        load_config(cfg)
