"""
Image upload control: preview, file picking, cropper, and upload status.

The coordinator and the HTTP client live on one asyncio loop running in an
``AsyncLoopThread``; every coordinator call is submitted to that loop so
flow state is only ever touched from one thread.  Coordinator listeners
re-enter the GUI thread through queued Qt signals.
"""

import asyncio
import base64
import logging
from concurrent.futures import Future
from pathlib import Path

from PyQt6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QFileDialog, QSizePolicy,
)
from PyQt6.QtCore import Qt, QThread, pyqtSignal
from PyQt6.QtGui import QDragEnterEvent, QDropEvent, QMouseEvent, QPixmap

from portfolio_uploader.config import IMAGE_EXTENSIONS
from portfolio_uploader.coordinator import ImageUploadCoordinator, ImageValue, Phase, UploadFlow
from portfolio_uploader.cropper_dialog import CropperDialog
from portfolio_uploader.image_io import read_source
from portfolio_uploader.models import UploaderConfig
from portfolio_uploader.qt_raster import QtRasterExtractor
from portfolio_uploader.transport import UploadTransport

logger = logging.getLogger(__name__)


# =============================================================================
# Event-loop thread
# =============================================================================

class AsyncLoopThread(QThread):
    """Runs an asyncio event loop until ``stop()`` is called."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self._loop = asyncio.new_event_loop()

    def run(self):
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()
        self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        self._loop.close()

    def submit(self, coro) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def call(self, fn, *args) -> Future:
        """Run a plain callable on the loop thread."""
        async def _call():
            return fn(*args)
        return self.submit(_call())

    def stop(self):
        if self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)
        self.wait(2000)


# =============================================================================
# Upload control
# =============================================================================

class ImageUploadWidget(QWidget):
    """Click or drop an image, crop it, upload it, report the new value.

    ``image_selected(value, was_original)`` carries a URL string or a
    ``{"url", "alt"}`` dict, matching the shape of *current_image*.
    """

    image_selected = pyqtSignal(object, bool)

    # Cross-thread relays for coordinator listeners
    _preview_changed = pyqtSignal(str)
    _error_changed = pyqtSignal(str)
    _phase_changed = pyqtSignal(object, object)
    _preview_fetched = pyqtSignal(bytes)

    def __init__(
        self,
        transport: UploadTransport,
        config: UploaderConfig | None = None,
        current_image: ImageValue = None,
        label: str = "Upload Image",
        parent=None,
    ):
        super().__init__(parent)
        self.setAcceptDrops(True)
        self._transport = transport
        self._config = config or UploaderConfig()
        self._cropper_flow_id: int | None = None

        self._loop_thread = AsyncLoopThread(self)
        self._loop_thread.start()

        self._coordinator = ImageUploadCoordinator(
            transport,
            config=self._config,
            current_image=current_image,
            extractor=QtRasterExtractor(),
            on_result=lambda value, original: self.image_selected.emit(value, original),
            on_preview=self._preview_changed.emit,
            on_error=self._error_changed.emit,
            on_phase=lambda flow: self._phase_changed.emit(flow, flow.phase),
        )

        self._preview_changed.connect(self._show_preview)
        self._error_changed.connect(self._show_error)
        self._phase_changed.connect(self._on_phase)
        self._preview_fetched.connect(self._show_pixmap_bytes)

        self._build_ui(label)
        self._show_preview(self._coordinator.preview)

    # --- UI construction ---

    def _build_ui(self, label: str):
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        layout.addWidget(QLabel(label))

        self._area = QLabel()
        self._area.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._area.setMinimumSize(240, 240)
        self._area.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self._area.setStyleSheet("border: 2px dashed #555; border-radius: 6px;")
        self._area.mousePressEvent = self._area_clicked
        layout.addWidget(self._area, stretch=1)

        buttons = QHBoxLayout()
        self._change_btn = QPushButton("Change image")
        self._change_btn.clicked.connect(self.open_file_dialog)
        buttons.addWidget(self._change_btn)
        self._remove_btn = QPushButton("Remove image")
        self._remove_btn.clicked.connect(self._remove_image)
        buttons.addWidget(self._remove_btn)
        layout.addLayout(buttons)

        self._error_label = QLabel("")
        self._error_label.setStyleSheet("color: #d32f2f;")
        self._error_label.setWordWrap(True)
        layout.addWidget(self._error_label)

    # --- File selection ---

    def _area_clicked(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton:
            self.open_file_dialog()

    def open_file_dialog(self):
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        path, _ = QFileDialog.getOpenFileName(self, "Select Image", "", f"Images ({patterns})")
        if path:
            self.select_path(Path(path))

    def select_path(self, path: Path):
        try:
            source = read_source(path)
        except OSError as exc:
            self._show_error(f"Could not read {path.name}: {exc}")
            return
        self._track(self._loop_thread.submit(self._coordinator.handle_file(source)))

    def dragEnterEvent(self, event: QDragEnterEvent):
        if event.mimeData().hasUrls():
            event.acceptProposedAction()

    def dropEvent(self, event: QDropEvent):
        urls = [u for u in event.mimeData().urls() if u.isLocalFile()]
        if urls:
            event.acceptProposedAction()
            self.select_path(Path(urls[0].toLocalFile()))

    def _remove_image(self):
        self._track(self._loop_thread.call(self._coordinator.remove_image))

    # --- Coordinator events (GUI thread) ---

    def _on_phase(self, flow: UploadFlow, phase: Phase):
        # Signals are queued: act on the phase as emitted, not the live one
        uploading = phase is Phase.UPLOADING and not flow.superseded
        self._change_btn.setEnabled(not uploading)
        self._remove_btn.setEnabled(not uploading)
        if uploading:
            self._area.setToolTip("Uploading…")
        if phase is Phase.PREPARING_CROP and flow.phase is Phase.PREPARING_CROP and not flow.superseded:
            self._run_cropper(flow)

    def _run_cropper(self, flow: UploadFlow):
        if self._cropper_flow_id == flow.flow_id:
            return
        self._cropper_flow_id = flow.flow_id
        try:
            dialog = CropperDialog(flow.source, self._config, self)
            accepted = dialog.exec()
        finally:
            self._cropper_flow_id = None
        if not accepted:
            self._track(self._loop_thread.call(self._coordinator.cancel))
        elif dialog.use_original:
            self._track(self._loop_thread.submit(self._coordinator.use_original()))
        else:
            region, display_size = dialog.displayed_crop()
            self._track(self._loop_thread.submit(
                self._coordinator.confirm_crop(region, display_size, self.devicePixelRatioF())
            ))

    def _show_preview(self, preview: str):
        self._area.setToolTip(preview if preview.startswith("http") else "")
        if not preview:
            self._area.setPixmap(QPixmap())
            self._area.setText("Click to select an image\nor drag and drop here")
        elif preview.startswith("data:"):
            _, encoded = preview.split(",", 1)
            self._show_pixmap_bytes(base64.b64decode(encoded))
        else:
            self._track(self._loop_thread.submit(self._fetch_preview(preview)))

    async def _fetch_preview(self, url: str):
        self._preview_fetched.emit(await self._transport.fetch(url))

    def _show_pixmap_bytes(self, data: bytes):
        pixmap = QPixmap()
        if not pixmap.loadFromData(data):
            self._area.setText("Preview unavailable")
            return
        self._area.setPixmap(pixmap.scaled(
            self._area.size(), Qt.AspectRatioMode.KeepAspectRatio,
            Qt.TransformationMode.SmoothTransformation,
        ))

    def _show_error(self, message: str):
        self._error_label.setText(message)

    # --- Background task bookkeeping ---

    def _track(self, future: Future):
        future.add_done_callback(self._task_done)

    def _task_done(self, future: Future):
        exc = future.exception()
        if exc is not None:
            logger.error("Upload task failed: %s", exc, exc_info=exc)
            self._error_changed.emit(str(exc))

    def shutdown(self):
        """Close the HTTP client and stop the loop thread."""
        self._loop_thread.submit(self._transport.aclose()).result(timeout=5)
        self._loop_thread.stop()
