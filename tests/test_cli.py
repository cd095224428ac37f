from pathlib import Path

import pytest

from streampump import cli


def test_parse_copy_with_several_sources() -> None:
    args = cli.parse_args(["--chunk-size", "10", "copy", "a.txt", "b.txt", "out.txt"])
    assert args.command == "copy"
    assert args.sources == [Path("a.txt"), Path("b.txt")]
    assert args.dest == Path("out.txt")
    assert args.chunk_size == 10


def test_copy_command(tmp_path: Path) -> None:
    src = tmp_path / "in.bin"
    src.write_bytes(b"abc" * 1000)
    dest = tmp_path / "out.bin"

    cli.main(["--chunk-size", "256", "copy", str(src), str(dest)])

    assert dest.read_bytes() == src.read_bytes()


def test_copy_concatenates_in_order(tmp_path: Path) -> None:
    first = tmp_path / "1.txt"
    second = tmp_path / "2.txt"
    first.write_text("one ")
    second.write_text("two")
    dest = tmp_path / "both.txt"

    cli.main(["copy", str(first), str(second), str(dest)])

    assert dest.read_text() == "one two"


def test_failed_transfer_exits_with_status_1(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["copy", str(tmp_path / "missing.bin"), str(tmp_path / "out.bin")])
    assert excinfo.value.code == 1


def test_invalid_chunk_size_exits_with_status_1(tmp_path: Path) -> None:
    src = tmp_path / "in.bin"
    src.write_bytes(b"abc")
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--chunk-size", "0", "copy", str(src), str(tmp_path / "out.bin")])
    assert excinfo.value.code == 1


def test_missing_config_exits_with_status_2(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path / "nope.yml"), "copy", "a", "b"])
    assert excinfo.value.code == 2


def test_receive_with_invalid_chunk_size_exits_before_listening(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--chunk-size", "0", "receive", str(tmp_path), "--port", "0"])
    assert excinfo.value.code == 1
