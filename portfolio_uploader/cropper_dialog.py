"""
"Adjust Image" dialog wrapping ``ImageCropWidget``.

Three outcomes: Save Cropped Image (accept), Use Full Image (accept with
``use_original`` set) and Cancel (reject).  The dialog only collects the
user's choice; the coordinator does the work.
"""

from PyQt6.QtWidgets import (
    QDialog, QVBoxLayout, QHBoxLayout, QPushButton, QLabel, QWidget,
)

from portfolio_uploader.crop_widget import ImageCropWidget
from portfolio_uploader.geometry import initial_crop
from portfolio_uploader.models import CropRegion, SourceImage, UploaderConfig
from portfolio_uploader.qt_raster import load_pixmap


class CropperDialog(QDialog):
    """Modal cropper for one source image."""

    def __init__(self, source: SourceImage, config: UploaderConfig, parent: QWidget | None = None):
        super().__init__(parent)
        self.setWindowTitle("Adjust Image")
        self.setMinimumSize(640, 520)
        self.use_original = False

        layout = QVBoxLayout(self)

        title = QLabel("Adjust Image")
        title.setStyleSheet("font-size: 13pt; font-weight: bold;")
        layout.addWidget(title)
        layout.addWidget(QLabel("You can crop this image or use the original version"))

        self._crop_widget = ImageCropWidget()
        self._size_label = QLabel("")
        self._crop_widget.crop_changed.connect(self._update_size_label)
        self._crop_widget.configure(
            config.aspect_ratio, config.crop_shape == "round",
            config.min_width, config.min_height,
        )
        self._crop_widget.set_image(load_pixmap(source), source.natural_w, source.natural_h)
        self._crop_widget.set_crop(initial_crop(
            source.natural_w, source.natural_h, config.aspect_ratio,
            config.min_width, config.min_height,
        ))
        layout.addWidget(self._crop_widget, stretch=1)
        layout.addWidget(self._size_label)

        buttons = QHBoxLayout()
        buttons.addStretch()
        cancel_btn = QPushButton("Cancel")
        cancel_btn.clicked.connect(self.reject)
        buttons.addWidget(cancel_btn)

        original_btn = QPushButton("Use Full Image")
        original_btn.clicked.connect(self._accept_original)
        buttons.addWidget(original_btn)

        save_btn = QPushButton("Save Cropped Image")
        save_btn.setDefault(True)
        save_btn.clicked.connect(self.accept)
        buttons.addWidget(save_btn)
        layout.addLayout(buttons)

    def _update_size_label(self):
        crop = self._crop_widget.get_crop()
        self._size_label.setText(f"Crop: {round(crop.width)} × {round(crop.height)} px")

    def _accept_original(self):
        self.use_original = True
        self.accept()

    def displayed_crop(self) -> tuple[CropRegion, tuple[int, int]]:
        """The chosen region and the display size it is relative to."""
        return self._crop_widget.displayed_crop(), self._crop_widget.displayed_size()
