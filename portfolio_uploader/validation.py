"""
File validation run before any decoding or network work.

Rejections are routine user-input conditions and come back as a
``ValidationOutcome``; nothing here raises for a bad file.
"""

import logging
from typing import Protocol

from portfolio_uploader.config import IMAGE_MIME_PREFIX, MAX_FILE_BYTES
from portfolio_uploader.models import ValidationOutcome

logger = logging.getLogger(__name__)

_MEGABYTE = 1024 * 1024


class _FileLike(Protocol):
    mime_type: str

    @property
    def size(self) -> int: ...


def format_megabytes(num_bytes: int) -> str:
    """Human-readable limit, rounded to whole megabytes. 15728640 → '15MB'"""
    return f"{round(num_bytes / _MEGABYTE)}MB"


def validate(file: _FileLike, max_bytes: int = MAX_FILE_BYTES) -> ValidationOutcome:
    """Check the declared MIME type and the byte size against *max_bytes*."""
    mime = (file.mime_type or "").lower()
    if not mime.startswith(IMAGE_MIME_PREFIX):
        logger.debug("Rejected file with type %r", file.mime_type)
        return ValidationOutcome(False, "Please select an image file")

    if file.size > max_bytes:
        logger.debug("Rejected %d-byte file (limit %d)", file.size, max_bytes)
        return ValidationOutcome(False, f"File size must be less than {format_megabytes(max_bytes)}")

    return ValidationOutcome(True)
