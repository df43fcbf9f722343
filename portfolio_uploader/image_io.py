"""
Qt-free image I/O utilities.

Builds ``SourceImage`` objects from files or bytes, decodes them (PSD via
psd-tools, everything else via Pillow), reads dimensions without a full
decode, and produces ``data:`` URLs for instant local previews.
"""

import base64
import hashlib
import io
import mimetypes
from dataclasses import replace
from pathlib import Path

from PIL import Image
from psd_tools import PSDImage

from portfolio_uploader.models import SourceImage

# Allow very large images (Pillow's default limit is ~178MP)
Image.MAX_IMAGE_PIXELS = None

PSD_MIME = "image/vnd.adobe.photoshop"

# Number of bytes read for fingerprinting (64 KB)
_FINGERPRINT_READ_SIZE = 65_536

mimetypes.add_type(PSD_MIME, ".psd")
mimetypes.add_type("image/webp", ".webp")


def guess_mime_type(name: str) -> str:
    """Declared MIME type from a file name, ``application/octet-stream`` if unknown."""
    mime, _ = mimetypes.guess_type(name)
    return mime or "application/octet-stream"


def compute_fingerprint(data: bytes) -> str:
    """
    Compute a fast content fingerprint for image bytes.

    Hashes the first 64 KB and combines it with the total size.
    Format: ``"{size_hex}_{hash16}"``.
    """
    sha = hashlib.sha256(data[:_FINGERPRINT_READ_SIZE])
    return f"{len(data):x}_{sha.hexdigest()[:16]}"


def _is_psd(mime_type: str, name: str) -> bool:
    return mime_type == PSD_MIME or name.lower().endswith(".psd")


def open_image(source: SourceImage) -> Image.Image:
    """Decode a source image, using psd-tools for PSD and Pillow for the rest."""
    if _is_psd(source.mime_type, source.name):
        psd = PSDImage.open(io.BytesIO(source.data))
        return psd.composite()
    img = Image.open(io.BytesIO(source.data))
    img.load()
    return img


def get_image_size(data: bytes, mime_type: str = "", name: str = "") -> tuple[int, int]:
    """Get image dimensions without fully loading/compositing."""
    if _is_psd(mime_type, name):
        psd = PSDImage.open(io.BytesIO(data))
        return psd.width, psd.height
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def source_from_bytes(data: bytes, name: str, mime_type: str | None = None) -> SourceImage:
    """Wrap raw bytes as a ``SourceImage`` without decoding them."""
    return SourceImage(data=data, mime_type=mime_type or guess_mime_type(name), name=name)


def with_natural_size(source: SourceImage) -> SourceImage:
    """Return a copy of *source* with its natural dimensions probed."""
    if source.natural_w and source.natural_h:
        return source
    w, h = get_image_size(source.data, source.mime_type, source.name)
    return replace(source, natural_w=w, natural_h=h)


def read_source(path: Path) -> SourceImage:
    """Read a file from disk into a ``SourceImage``."""
    return source_from_bytes(path.read_bytes(), path.name)


def to_data_url(data: bytes, mime_type: str) -> str:
    """Inline ``data:`` URL for showing bytes before the server has them."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
