"""
Raster extraction: render a confirmed crop into an output pixel buffer.

``RasterExtractor`` is the host-independent contract; ``PillowRasterExtractor``
is the headless implementation.  The Qt implementation lives in
``qt_raster`` so this module stays importable without PyQt6.

Output size is ``round(crop * scale * device_pixel_ratio)`` per axis, where
``scale`` maps display pixels onto natural pixels.  A request that reaches
outside the source is clamped to the source bounds.
"""

import asyncio
import io
import logging
from abc import ABC, abstractmethod
from concurrent.futures import Executor

from PIL import Image

from portfolio_uploader.config import CROPPED_FILENAME, CROPPED_MIME, OUTPUT_FORMAT, OUTPUT_QUALITY
from portfolio_uploader.errors import EncodingFailed
from portfolio_uploader.image_io import open_image
from portfolio_uploader.models import ExtractionRequest, SourceImage

logger = logging.getLogger(__name__)

_LOSSY_FORMATS = {"JPEG", "WEBP"}


def clamped_source_box(request: ExtractionRequest) -> tuple[float, float, float, float]:
    """The request's natural-pixel box, clamped to the source image."""
    left, top, right, bottom = request.source_box()
    left = max(0.0, min(left, request.natural_w))
    top = max(0.0, min(top, request.natural_h))
    right = max(left, min(right, request.natural_w))
    bottom = max(top, min(bottom, request.natural_h))
    return left, top, right, bottom


class RasterExtractor(ABC):
    """Extracts a crop into a buffer and serializes that buffer to bytes.

    Encoding runs in *executor* (the loop's default pool if ``None``) so a
    large PNG never blocks the event loop.
    """

    def __init__(self, executor: Executor | None = None):
        self._executor = executor

    @abstractmethod
    def extract(self, source: SourceImage, request: ExtractionRequest):
        """Return a pixel buffer holding the requested crop."""

    @abstractmethod
    def buffer_size(self, buffer) -> tuple[int, int]:
        """``(width, height)`` of a buffer returned by ``extract``."""

    @abstractmethod
    def _encode(self, buffer, fmt: str, quality: float) -> bytes:
        """Synchronous encode; may raise ``EncodingFailed``."""

    async def serialize(self, buffer, fmt: str = OUTPUT_FORMAT, quality: float = OUTPUT_QUALITY) -> bytes:
        """Encode *buffer* to an image byte stream.

        Raises ``EncodingFailed`` for an empty buffer, an encoder error, or
        an empty result.
        """
        w, h = self.buffer_size(buffer)
        if w <= 0 or h <= 0:
            raise EncodingFailed("Canvas is empty")

        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(self._executor, self._encode, buffer, fmt, quality)
        except EncodingFailed:
            raise
        except (OSError, ValueError, KeyError) as exc:
            raise EncodingFailed(f"Could not encode {w}x{h} image as {fmt}: {exc}") from exc

        if not data:
            raise EncodingFailed("Canvas is empty")
        return data

    async def crop_to_source(
        self, source: SourceImage, request: ExtractionRequest,
        fmt: str = OUTPUT_FORMAT, quality: float = OUTPUT_QUALITY,
    ) -> SourceImage:
        """Extract and serialize in one step, wrapping the result as a new upload file."""
        try:
            buffer = self.extract(source, request)
        except (OSError, ValueError) as exc:
            raise EncodingFailed(f"Could not decode {source.name}: {exc}") from exc
        data = await self.serialize(buffer, fmt, quality)
        w, h = self.buffer_size(buffer)
        logger.debug("Cropped %s to %dx%d (%d bytes)", source.name, w, h, len(data))
        return SourceImage(
            data=data, mime_type=CROPPED_MIME, name=CROPPED_FILENAME,
            natural_w=w, natural_h=h,
        )


class PillowRasterExtractor(RasterExtractor):
    """Headless extractor backed by Pillow."""

    def extract(self, source: SourceImage, request: ExtractionRequest) -> Image.Image:
        out_w, out_h = request.output_size
        box = clamped_source_box(request)
        if out_w <= 0 or out_h <= 0 or box[2] <= box[0] or box[3] <= box[1]:
            logger.warning("Degenerate crop request %s; producing an empty buffer", request.crop)
            return Image.new("RGBA", (0, 0))

        img = open_image(source)
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")

        # resize() returns a plain copy when size and box both match the source
        return img.resize((out_w, out_h), Image.Resampling.LANCZOS, box=box)

    def buffer_size(self, buffer: Image.Image) -> tuple[int, int]:
        return buffer.size

    def _encode(self, buffer: Image.Image, fmt: str, quality: float) -> bytes:
        fmt = fmt.upper()
        out = io.BytesIO()
        if fmt in _LOSSY_FORMATS:
            img = buffer.convert("RGB") if fmt == "JPEG" else buffer
            img.save(out, fmt, quality=max(1, min(100, round(quality * 100))))
        else:
            buffer.save(out, fmt)
        return out.getvalue()
