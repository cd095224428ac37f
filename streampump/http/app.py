"""FastAPI surface streaming files through the pump."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import StreamingResponse

from .. import __version__
from ..common.filesystem import file_size, resolve_under_root
from ..config import StreamPumpConfig, load_config
from ..errors import PumpError
from ..io.files import FileSource
from ..io.iterator import IteratorSink
from ..pump import StreamPump, start
from ..sequence import copy_file
from .models import CopyRequest, TransferReport


_CONFIG: StreamPumpConfig | None = None
_CONFIG_PATH: Optional[str] = None


def get_config(config_path: Optional[str] = None) -> StreamPumpConfig:
    global _CONFIG, _CONFIG_PATH

    if _CONFIG is None or (config_path is not None and config_path != _CONFIG_PATH):
        _CONFIG = load_config(config_path)
        _CONFIG_PATH = config_path
    return _CONFIG


def set_config(config: StreamPumpConfig, config_path: Optional[str] = None) -> None:
    global _CONFIG, _CONFIG_PATH
    _CONFIG = config
    _CONFIG_PATH = config_path


def reset_config_cache() -> None:
    global _CONFIG, _CONFIG_PATH
    _CONFIG = None
    _CONFIG_PATH = None


def config_dependency() -> StreamPumpConfig:
    return get_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        yield
    finally:
        reset_config_cache()


app = FastAPI(title="streampump", version=__version__, lifespan=lifespan)


async def _response_body(pump: StreamPump, sink: IteratorSink) -> AsyncIterator[bytes]:
    completed = False
    try:
        async for chunk in sink:
            yield chunk
        completed = True
    finally:
        if not completed:
            pump.cancel("response closed by client")
    await pump.result()


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/files/{relative_path:path}")
async def stream_file(
    relative_path: str, config: StreamPumpConfig = Depends(config_dependency)
) -> StreamingResponse:
    try:
        path = resolve_under_root(config.server.root, relative_path)
    except PermissionError as exc:
        raise HTTPException(status_code=404, detail="file not found") from exc
    if not path.is_file():
        raise HTTPException(status_code=404, detail="file not found")

    sink = IteratorSink(high_water_mark=config.pump.high_water_mark)
    pump = start(
        FileSource(path),
        sink,
        config.pump.chunk_size,
        transfer_id=f"http:{relative_path}",
    )
    return StreamingResponse(
        _response_body(pump, sink),
        media_type="application/octet-stream",
        headers={"Content-Length": str(file_size(path))},
    )


@app.post("/copies", response_model=TransferReport)
async def create_copy(
    request: CopyRequest, config: StreamPumpConfig = Depends(config_dependency)
) -> TransferReport:
    source = Path(request.source_path)
    if not source.is_file():
        raise HTTPException(status_code=404, detail=f"{source} does not exist")
    try:
        signal = await copy_file(
            source,
            Path(request.destination_path),
            chunk_size=request.chunk_size or config.pump.chunk_size,
            high_water_mark=config.pump.high_water_mark,
        )
    except PumpError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return TransferReport.from_signal(signal)
