"""Command line entry point for streampump."""
from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import uvicorn

from .config import StreamPumpConfig, load_config
from .errors import ConfigurationError, PumpError
from .http.app import app, set_config
from .io.files import FileSink
from .io.network import HTTPSource, TCPReceiver, send_file
from .logging_utils import fields, setup_logging
from .pump import CompletionSignal, transfer
from .sequence import concat_files, copy_file

_LOGGER_NAME = "streampump"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stream bytes with backpressure")
    parser.add_argument("--config", help="Path to YAML configuration", default=None)
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Override the configured logging level",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Bytes requested from the source per chunk",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    copy = commands.add_parser("copy", help="Copy one or more files into DEST, in order")
    copy.add_argument("sources", nargs="+", type=Path)
    copy.add_argument("dest", type=Path)

    fetch = commands.add_parser("fetch", help="Download URL into DEST")
    fetch.add_argument("url")
    fetch.add_argument("dest", type=Path)

    send = commands.add_parser("send", help="Upload a file to a running receiver")
    send.add_argument("path", type=Path)
    send.add_argument("--host", default="127.0.0.1")
    send.add_argument("--port", type=int, default=None)
    send.add_argument("--as", dest="relative_path", default=None)

    receive = commands.add_parser("receive", help="Accept uploads into a directory")
    receive.add_argument("dest_root", type=Path)
    receive.add_argument("--host", default=None)
    receive.add_argument("--port", type=int, default=None)

    serve = commands.add_parser("serve", help="Serve files over HTTP")
    serve.add_argument("--root", type=Path, default=None)
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    return parser.parse_args(argv)


def _chunk_size(args: argparse.Namespace, config: StreamPumpConfig) -> int:
    return args.chunk_size if args.chunk_size is not None else config.pump.chunk_size


async def _copy(args: argparse.Namespace, config: StreamPumpConfig) -> CompletionSignal:
    if len(args.sources) == 1:
        return await copy_file(
            args.sources[0],
            args.dest,
            chunk_size=_chunk_size(args, config),
            high_water_mark=config.pump.high_water_mark,
        )
    return await concat_files(
        args.sources,
        args.dest,
        chunk_size=_chunk_size(args, config),
        high_water_mark=config.pump.high_water_mark,
    )


async def _fetch(args: argparse.Namespace, config: StreamPumpConfig) -> CompletionSignal:
    return await transfer(
        HTTPSource(args.url),
        FileSink(args.dest, high_water_mark=config.pump.high_water_mark),
        _chunk_size(args, config),
        transfer_id=f"fetch:{args.dest.name}",
    )


async def _send(args: argparse.Namespace, config: StreamPumpConfig) -> CompletionSignal:
    return await send_file(
        args.host,
        args.port if args.port is not None else config.server.tcp_port,
        args.path,
        relative_path=args.relative_path,
        chunk_size=_chunk_size(args, config),
        high_water_mark=config.pump.high_water_mark,
    )


async def _receive(args: argparse.Namespace, config: StreamPumpConfig) -> None:
    receiver = TCPReceiver(
        args.dest_root,
        host=args.host or config.server.host,
        port=args.port if args.port is not None else config.server.tcp_port,
        chunk_size=_chunk_size(args, config),
        high_water_mark=config.pump.high_water_mark,
    )
    async with receiver:
        await receiver.serve_forever()


def _serve(args: argparse.Namespace, config: StreamPumpConfig) -> None:
    served = config
    if args.root is not None:
        served = replace(config, server=replace(config.server, root=args.root.resolve()))
    set_config(served, args.config)
    uvicorn.run(
        app,
        host=args.host or served.server.host,
        port=args.port if args.port is not None else served.server.port,
        log_level=served.logging.level.lower(),
    )


_TRANSFERS = {"copy": _copy, "fetch": _fetch, "send": _send}


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ConfigurationError) as exc:
        logging.basicConfig(format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
        logging.error("Invalid configuration: %s", exc)
        raise SystemExit(2) from exc
    level = args.log_level or config.logging.level
    logger = setup_logging(
        _LOGGER_NAME,
        level=getattr(logging, level),
        log_file=config.logging.log_file,
    )

    if args.command == "serve":
        _serve(args, config)
        return

    try:
        if args.command == "receive":
            asyncio.run(_receive(args, config))
            return
        signal = asyncio.run(_TRANSFERS[args.command](args, config))
    except PumpError as exc:
        logger.error("%s", exc)
        raise SystemExit(1)
    except KeyboardInterrupt:
        logger.info("shutdown requested")
        return
    logger.info(
        "transfer complete",
        extra=fields(
            transfer_id=signal.transfer_id,
            bytes_transferred=signal.bytes_transferred,
            chunks_transferred=signal.chunks_transferred,
        ),
    )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
