"""Temporary storage for bulk import uploads (local filesystem)."""

from __future__ import annotations

import logging
import os
import uuid

from app.core.config import settings

logger = logging.getLogger(__name__)


class UploadTooLargeError(ValueError):
    """Raised when an upload exceeds MAX_UPLOAD_BYTES."""

    pass


def _upload_dir() -> str:
    path = settings.UPLOAD_DIR
    os.makedirs(path, exist_ok=True)
    return path


def _safe_extension(filename: str) -> str:
    _, ext = os.path.splitext(os.path.basename(filename or ""))
    return ext.lower()[:10]


UPLOAD_CHUNK_BYTES = 64 * 1024


def _too_large() -> UploadTooLargeError:
    max_mb = settings.MAX_UPLOAD_BYTES / (1024 * 1024)
    return UploadTooLargeError(f"File exceeds {max_mb:.0f} MB limit")


async def read_limited(upload, chunk_size: int = UPLOAD_CHUNK_BYTES) -> bytes:
    """
    Read an incoming upload in chunks, stopping once it passes MAX_UPLOAD_BYTES.

    `upload` is anything with an async read(size), e.g. FastAPI's UploadFile.
    """
    chunks: list[bytes] = []
    total = 0
    while chunk := await upload.read(chunk_size):
        total += len(chunk)
        if total > settings.MAX_UPLOAD_BYTES:
            raise _too_large()
        chunks.append(chunk)
    return b"".join(chunks)


def store_upload(filename: str, content: bytes) -> str:
    """Write an upload to the temp directory and return its path."""
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise _too_large()
    path = os.path.join(_upload_dir(), f"{uuid.uuid4().hex}{_safe_extension(filename)}")
    with open(path, "wb") as f:
        f.write(content)
    return path


def read_upload(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def delete_upload(path: str | None) -> bool:
    """Best-effort removal. Failures are logged, never raised."""
    if not path:
        return False
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Failed to delete temp upload %s: %s", path, e)
        return False
