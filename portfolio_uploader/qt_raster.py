"""
Qt raster backend and Qt ↔ PIL helpers.

``QtRasterExtractor`` renders the crop with ``QPainter`` onto an off-screen
``QImage``, the desktop counterpart of drawing onto a hidden canvas.
"""

from PIL import Image
from PyQt6.QtCore import QBuffer, QIODevice, QRectF, Qt
from PyQt6.QtGui import QImage, QPainter, QPixmap

from portfolio_uploader.errors import EncodingFailed
from portfolio_uploader.image_io import PSD_MIME, open_image
from portfolio_uploader.models import ExtractionRequest, SourceImage
from portfolio_uploader.raster import RasterExtractor, clamped_source_box


# =============================================================================
# Qt ↔ PIL helpers
# =============================================================================

def pil_to_qimage(pil_img: Image.Image) -> QImage:
    """Convert a PIL Image to a QImage that owns its pixel data."""
    img_rgba = pil_img.convert("RGBA")
    data = img_rgba.tobytes("raw", "RGBA")
    qimg = QImage(data, img_rgba.width, img_rgba.height, QImage.Format.Format_RGBA8888)
    return qimg.copy()


def load_qimage(source: SourceImage) -> QImage:
    """Decode a source image with Qt, falling back to PIL for PSD."""
    if source.mime_type != PSD_MIME:
        qimg = QImage.fromData(source.data)
        if not qimg.isNull():
            return qimg
    return pil_to_qimage(open_image(source))


def load_pixmap(source: SourceImage) -> QPixmap:
    return QPixmap.fromImage(load_qimage(source))


# =============================================================================
# Extractor
# =============================================================================

class QtRasterExtractor(RasterExtractor):
    """Extractor drawing through a native ``QPainter``."""

    def extract(self, source: SourceImage, request: ExtractionRequest) -> QImage:
        out_w, out_h = request.output_size
        left, top, right, bottom = clamped_source_box(request)
        if out_w <= 0 or out_h <= 0 or right <= left or bottom <= top:
            return QImage()

        image = load_qimage(source)
        canvas = QImage(out_w, out_h, QImage.Format.Format_ARGB32_Premultiplied)
        canvas.fill(Qt.GlobalColor.transparent)

        painter = QPainter(canvas)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
        painter.drawImage(
            QRectF(0, 0, out_w, out_h),
            image,
            QRectF(left, top, right - left, bottom - top),
        )
        painter.end()
        return canvas

    def buffer_size(self, buffer: QImage) -> tuple[int, int]:
        if buffer.isNull():
            return 0, 0
        return buffer.width(), buffer.height()

    def _encode(self, buffer: QImage, fmt: str, quality: float) -> bytes:
        qbuf = QBuffer()
        qbuf.open(QIODevice.OpenModeFlag.WriteOnly)
        ok = buffer.save(qbuf, fmt.upper(), max(0, min(100, round(quality * 100))))
        qbuf.close()
        if not ok:
            raise EncodingFailed(f"Qt could not encode image as {fmt}")
        return bytes(qbuf.data())
