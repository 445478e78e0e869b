"""
Asset Service — reads the file to mint and derives its metadata.
"""
import hashlib
import logging
import mimetypes
from pathlib import Path

from df_minter.exceptions import AssetIOError
from df_minter.models import FileAsset

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_digest(data: bytes) -> bytes:
    """SHA-256 of the raw file bytes (32 bytes)."""
    return hashlib.sha256(data).digest()


def guess_content_type(path: Path) -> str:
    """Guess MIME type from the file name, falling back to octet-stream."""
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or DEFAULT_CONTENT_TYPE


def read_asset(path: Path) -> FileAsset:
    """
    Read a file into memory with its digest and content type.

    Raises:
        AssetIOError on any filesystem failure.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise AssetIOError(f"Could not read {path}: {e.strerror or e}") from e

    asset = FileAsset(
        path=path,
        data=data,
        digest=content_digest(data),
        content_type=guess_content_type(path),
    )
    logger.info(f"Read {len(data)} bytes from {path} ({asset.content_type}, sha256 {asset.digest.hex()[:16]}...)")
    return asset
