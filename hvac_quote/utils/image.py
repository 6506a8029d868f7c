"""Upload checks for customer equipment photos.

Runs inline in the upload handler before anything is written to storage.
Formats Pillow can decode are fully loaded to catch truncated or corrupt
files; HEIC/HEIF from phones is accepted on its declared type alone.
"""

from __future__ import annotations

import io
from dataclasses import dataclass

import structlog
from PIL import Image

logger = structlog.get_logger()

MAX_PHOTO_BYTES = 20 * 1024 * 1024  # 20 MB

DECODABLE_TYPES = frozenset({"image/jpeg", "image/png", "image/webp"})
PASSTHROUGH_TYPES = frozenset({"image/heic", "image/heif"})
ACCEPTED_TYPES = DECODABLE_TYPES | PASSTHROUGH_TYPES


@dataclass(frozen=True)
class PhotoCheck:
    passed: bool
    failure: str | None = None
    message: str | None = None


def check_photo(data: bytes, mime_type: str) -> PhotoCheck:
    """Validate an uploaded photo's type and integrity."""
    mime_type = (mime_type or "").lower()
    if not data:
        return PhotoCheck(False, "empty_file", "The uploaded file is empty.")
    if mime_type not in ACCEPTED_TYPES:
        return PhotoCheck(
            False,
            "unsupported_type",
            "Please upload a JPEG, PNG, WebP, or HEIC photo.",
        )
    if mime_type in PASSTHROUGH_TYPES:
        return PhotoCheck(True)

    try:
        img = Image.open(io.BytesIO(data))
        img.load()  # full decode catches truncation
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        logger.warning("photo_decode_failed", mime_type=mime_type, error=str(exc))
        return PhotoCheck(
            False,
            "invalid_image",
            "Could not open image. Please upload a valid photo.",
        )
    return PhotoCheck(True)
