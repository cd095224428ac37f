"""HTTP surface; the FastAPI application lives in ``streampump.http.app``."""
from .models import CopyRequest, TransferReport

__all__ = ["CopyRequest", "TransferReport"]
