"""
Interactive crop-overlay widget.

Shows the source image letterboxed in the widget and lets the user move
and corner-resize a ``CropRegion`` (optionally aspect-locked, optionally
drawn as a circle).  The region is kept in natural image pixels; the
``displayed_*`` accessors express it relative to the image as rendered,
which is what an ``ExtractionRequest`` expects.
"""

from PyQt6.QtWidgets import QWidget, QSizePolicy
from PyQt6.QtCore import Qt, QRectF, QPointF, pyqtSignal
from PyQt6.QtGui import (
    QPainter, QPainterPath, QPixmap, QColor, QPen, QBrush,
    QKeyEvent, QMouseEvent, QPaintEvent, QResizeEvent,
)

from portfolio_uploader.config import HANDLE_SIZE, NUDGE_SMALL, NUDGE_LARGE
from portfolio_uploader import geometry
from portfolio_uploader.models import UNIT_PIXELS, CropRegion


class ImageCropWidget(QWidget):
    """Widget that displays an image with an interactive, resizable crop overlay."""

    crop_changed = pyqtSignal()

    MODE_NONE = 0
    MODE_MOVE = 1
    MODE_RESIZE = 2

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setMinimumSize(400, 300)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)

        self._pixmap: QPixmap | None = None
        self._img_w = 0
        self._img_h = 0
        self._crop = CropRegion()
        self._aspect_ratio: float | None = 1.0
        self._round = True
        self._min_w = 0
        self._min_h = 0

        # Display mapping
        self._scale = 1.0
        self._offset_x = 0.0
        self._offset_y = 0.0

        # Interaction state
        self._mode = self.MODE_NONE
        self._active_handle = geometry.HANDLE_NONE
        self._drag_start = QPointF()
        self._crop_start = CropRegion()

    def set_image(self, pixmap: QPixmap, img_w: int, img_h: int):
        """Set the image to display."""
        self._pixmap = pixmap
        self._img_w = img_w
        self._img_h = img_h
        self._update_display_mapping()
        self.update()

    def configure(self, aspect_ratio: float | None, round_shape: bool, min_w: int, min_h: int):
        """Set the aspect lock (``None`` = free-form), mask shape and minimum size."""
        self._aspect_ratio = aspect_ratio
        self._round = round_shape
        self._min_w = min_w
        self._min_h = min_h
        self.update()

    def set_crop(self, crop: CropRegion):
        """Set the crop region (any unit) against the current image."""
        self._crop = geometry.clamp_region(
            crop.to_pixels(self._img_w, self._img_h), self._img_w, self._img_h,
        )
        self.crop_changed.emit()
        self.update()

    def get_crop(self) -> CropRegion:
        """Crop region in natural image pixels."""
        c = self._crop
        return CropRegion(c.x, c.y, c.width, c.height, UNIT_PIXELS)

    def displayed_size(self) -> tuple[int, int]:
        """Image size as currently rendered, in widget pixels."""
        return max(1, round(self._img_w * self._scale)), max(1, round(self._img_h * self._scale))

    def displayed_crop(self) -> CropRegion:
        """Crop region relative to the image as rendered."""
        dw, dh = self.displayed_size()
        return self._crop.to_percent(self._img_w, self._img_h).to_pixels(dw, dh)

    def has_image(self) -> bool:
        """Return True if an image is loaded and ready for crop operations."""
        return self._pixmap is not None and self._img_w > 0 and self._img_h > 0

    # --- Coordinate mapping ---

    def _update_display_mapping(self):
        """Calculate scale and offset to fit image in widget with letterboxing."""
        if not self._pixmap or self._img_w == 0 or self._img_h == 0:
            return
        ww, wh = self.width(), self.height()
        self._scale = min(ww / self._img_w, wh / self._img_h)
        disp_w = self._img_w * self._scale
        disp_h = self._img_h * self._scale
        self._offset_x = (ww - disp_w) / 2
        self._offset_y = (wh - disp_h) / 2

    def _img_to_display(self, ix: float, iy: float) -> QPointF:
        return QPointF(ix * self._scale + self._offset_x, iy * self._scale + self._offset_y)

    def _display_to_img(self, dx: float, dy: float) -> QPointF:
        if self._scale == 0:
            return QPointF(0, 0)
        return QPointF((dx - self._offset_x) / self._scale, (dy - self._offset_y) / self._scale)

    def _crop_display_rect(self) -> QRectF:
        c = self._crop
        tl = self._img_to_display(c.x, c.y)
        br = self._img_to_display(c.x + c.width, c.y + c.height)
        return QRectF(tl, br)

    # --- Handle hit testing ---

    def _handle_rects(self) -> dict[int, QRectF]:
        """Return screen-coordinate rectangles for the 4 corner handles."""
        r = self._crop_display_rect()
        hs = HANDLE_SIZE
        return {
            geometry.HANDLE_TL: QRectF(r.left() - hs, r.top() - hs, hs * 2, hs * 2),
            geometry.HANDLE_TR: QRectF(r.right() - hs, r.top() - hs, hs * 2, hs * 2),
            geometry.HANDLE_BL: QRectF(r.left() - hs, r.bottom() - hs, hs * 2, hs * 2),
            geometry.HANDLE_BR: QRectF(r.right() - hs, r.bottom() - hs, hs * 2, hs * 2),
        }

    def _hit_test(self, pos: QPointF) -> tuple[int, int]:
        """Returns (mode, handle) for a screen position."""
        for handle_id, rect in self._handle_rects().items():
            if rect.contains(pos):
                return self.MODE_RESIZE, handle_id
        if self._crop_display_rect().contains(pos):
            return self.MODE_MOVE, geometry.HANDLE_NONE
        return self.MODE_NONE, geometry.HANDLE_NONE

    # --- Painting ---

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.fillRect(self.rect(), QColor(30, 30, 30))

        if not self.has_image():
            painter.setPen(QColor(128, 128, 128))
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, "No image loaded")
            painter.end()
            return

        tl = self._img_to_display(0, 0)
        br = self._img_to_display(self._img_w, self._img_h)
        dest = QRectF(tl, br)
        painter.drawPixmap(dest.toRect(), self._pixmap)

        # Dim everything outside the crop shape
        crop_rect = self._crop_display_rect()
        outside = QPainterPath()
        outside.addRect(dest)
        inside = QPainterPath()
        if self._round:
            inside.addEllipse(crop_rect)
        else:
            inside.addRect(crop_rect)
        painter.fillPath(outside.subtracted(inside), QBrush(QColor(0, 0, 0, 140)))

        # Crop border
        painter.setPen(QPen(QColor(255, 255, 255), 2))
        painter.setBrush(Qt.BrushStyle.NoBrush)
        if self._round:
            painter.drawEllipse(crop_rect)
        else:
            painter.drawRect(crop_rect)

        # Rule-of-thirds lines
        painter.setPen(QPen(QColor(255, 255, 255, 80), 1, Qt.PenStyle.DashLine))
        for i in range(1, 3):
            x = crop_rect.left() + crop_rect.width() * i / 3
            painter.drawLine(QPointF(x, crop_rect.top()), QPointF(x, crop_rect.bottom()))
            y = crop_rect.top() + crop_rect.height() * i / 3
            painter.drawLine(QPointF(crop_rect.left(), y), QPointF(crop_rect.right(), y))

        # Corner handles
        painter.setPen(QPen(QColor(0, 0, 0), 1))
        painter.setBrush(QBrush(QColor(255, 255, 255)))
        for rect in self._handle_rects().values():
            painter.drawRect(rect)

        painter.end()

    def resizeEvent(self, event: QResizeEvent):
        self._update_display_mapping()
        super().resizeEvent(event)

    # --- Mouse interaction ---

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() != Qt.MouseButton.LeftButton or not self.has_image():
            return
        pos = event.position()
        self._mode, self._active_handle = self._hit_test(pos)
        if self._mode != self.MODE_NONE:
            self._drag_start = pos
            self._crop_start = self.get_crop()

    def mouseMoveEvent(self, event: QMouseEvent):
        if not self.has_image():
            return

        pos = event.position()

        if self._mode == self.MODE_NONE:
            mode, handle = self._hit_test(pos)
            if mode == self.MODE_RESIZE:
                if handle in (geometry.HANDLE_TL, geometry.HANDLE_BR):
                    self.setCursor(Qt.CursorShape.SizeFDiagCursor)
                else:
                    self.setCursor(Qt.CursorShape.SizeBDiagCursor)
            elif mode == self.MODE_MOVE:
                self.setCursor(Qt.CursorShape.SizeAllCursor)
            else:
                self.setCursor(Qt.CursorShape.ArrowCursor)
            return

        img_pos = self._display_to_img(pos.x(), pos.y())
        if self._mode == self.MODE_MOVE:
            start = self._display_to_img(self._drag_start.x(), self._drag_start.y())
            self._crop = geometry.move_region(
                self._crop_start, img_pos.x() - start.x(), img_pos.y() - start.y(),
                self._img_w, self._img_h,
            )
        else:
            self._crop = geometry.resize_from_handle(
                self._crop_start, self._active_handle, img_pos.x(), img_pos.y(),
                self._aspect_ratio, self._img_w, self._img_h,
                self._min_w, self._min_h,
            )
        self.crop_changed.emit()
        self.update()

    def mouseReleaseEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton:
            self._mode = self.MODE_NONE
            self._active_handle = geometry.HANDLE_NONE

    # --- Keyboard nudge ---

    def keyPressEvent(self, event: QKeyEvent):
        if not self.has_image():
            return
        amount = NUDGE_LARGE if event.modifiers() & Qt.KeyboardModifier.ShiftModifier else NUDGE_SMALL
        # Nudges are in screen pixels
        step = amount / self._scale if self._scale else amount
        key = event.key()
        if key == Qt.Key.Key_Left:
            dx, dy = -step, 0
        elif key == Qt.Key.Key_Right:
            dx, dy = step, 0
        elif key == Qt.Key.Key_Up:
            dx, dy = 0, -step
        elif key == Qt.Key.Key_Down:
            dx, dy = 0, step
        else:
            super().keyPressEvent(event)
            return
        self._crop = geometry.move_region(self._crop, dx, dy, self._img_w, self._img_h)
        self.crop_changed.emit()
        self.update()
