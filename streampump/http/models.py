"""Pydantic models for the HTTP surface."""

from __future__ import annotations

from datetime import datetime, UTC
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ..pump import CompletionSignal


class CopyRequest(BaseModel):
    source_path: str
    destination_path: str
    chunk_size: Optional[int] = Field(
        None,
        ge=1,
        le=64 * 1024 * 1024,
        description="Bytes requested per chunk; the server default applies when omitted",
    )

    @model_validator(mode="after")
    def _validate_absolute_paths(self) -> "CopyRequest":
        for field_name in ("source_path", "destination_path"):
            if not Path(getattr(self, field_name)).is_absolute():
                raise ValueError(f"{field_name} must be an absolute path")
        return self


class TransferReport(BaseModel):
    transfer_id: str
    state: str
    bytes_transferred: int
    chunks_transferred: int
    error: Optional[str] = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_signal(cls, signal: CompletionSignal) -> "TransferReport":
        return cls(
            transfer_id=signal.transfer_id,
            state=signal.state.value,
            bytes_transferred=signal.bytes_transferred,
            chunks_transferred=signal.chunks_transferred,
            error=str(signal.error) if signal.error is not None else None,
        )
