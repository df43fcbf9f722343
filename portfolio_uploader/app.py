"""
Application entry point and dark-theme stylesheet.

Usage:
    python -m portfolio_uploader.app [profile]
    portfolio-uploader [profile]          (after pip install)

*profile* names an upload profile from settings.json and defaults to
``profile_image``.
"""

import logging
import sys

from PyQt6.QtWidgets import QApplication, QInputDialog, QLineEdit, QMainWindow, QStatusBar, QToolBar
from PyQt6.QtGui import QAction

from portfolio_uploader.config import TOKEN_KEY
from portfolio_uploader.coordinator import ImageValue
from portfolio_uploader.settings import load_settings, uploader_config
from portfolio_uploader.token_store import JsonFileStore
from portfolio_uploader.transport import UploadTransport
from portfolio_uploader.upload_widget import ImageUploadWidget

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "profile_image"

DARK_STYLESHEET = """
    QMainWindow { background: #2b2b2b; }
    QWidget { background: #2b2b2b; color: #ddd; font-size: 10pt; }
    QPushButton { background: #3a3a3a; border: 1px solid #555; border-radius: 4px; padding: 6px 12px; }
    QPushButton:hover { background: #4a4a4a; }
    QPushButton:pressed { background: #2a2a2a; }
    QPushButton:default { background: #3a6ea5; border-color: #5a8ec5; }
    QPushButton:disabled { color: #666; }
    QToolBar { background: #333; border-bottom: 1px solid #444; spacing: 4px; padding: 4px; }
    QStatusBar { background: #333; border-top: 1px solid #444; }
    QDialog { background: #2b2b2b; }
"""


class MainWindow(QMainWindow):
    """Hosts one upload control bound to a settings profile."""

    def __init__(self, settings: dict, profile: str = DEFAULT_PROFILE):
        super().__init__()
        self.setWindowTitle(f"Portfolio Uploader - {profile}")
        self.resize(520, 560)

        self._store = JsonFileStore()
        transport = UploadTransport(
            api_base_url=settings["api_base_url"],
            server_base_url=settings["server_base_url"],
            token_store=self._store,
            timeout=settings["timeout"],
        )

        toolbar = QToolBar("Main")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)
        token_action = QAction("Set Admin Token...", self)
        token_action.triggered.connect(self._edit_token)
        toolbar.addAction(token_action)

        self._upload = ImageUploadWidget(transport, uploader_config(settings, profile), label="Upload Image")
        self._upload.image_selected.connect(self._on_image_selected)
        self.setCentralWidget(self._upload)

        self.setStatusBar(QStatusBar())
        if not self._store.get(TOKEN_KEY):
            self.statusBar().showMessage("No admin token set; uploads will be rejected")

    def _edit_token(self):
        token, ok = QInputDialog.getText(
            self, "Admin Token", "Bearer token:", QLineEdit.EchoMode.Password,
            self._store.get(TOKEN_KEY) or "",
        )
        if not ok:
            return
        if token:
            self._store.set(TOKEN_KEY, token.strip())
            self.statusBar().showMessage("Admin token saved", 3000)
        else:
            self._store.remove(TOKEN_KEY)
            self.statusBar().showMessage("Admin token cleared", 3000)

    def _on_image_selected(self, value: ImageValue, was_original: bool):
        url = value["url"] if isinstance(value, dict) else value
        if not url:
            self.statusBar().showMessage("Image removed")
            return
        kind = "original" if was_original else "cropped"
        self.statusBar().showMessage(f"Uploaded {kind} image: {url}")
        logger.info("Image value is now %r", value)

    def closeEvent(self, event):
        self._upload.shutdown()
        super().closeEvent(event)


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = QApplication(sys.argv)
    app.setStyleSheet(DARK_STYLESHEET)

    settings = load_settings()
    args = app.arguments()[1:]
    profile = args[0] if args else DEFAULT_PROFILE
    if profile not in settings["profiles"]:
        logger.error("Unknown profile %r (available: %s)", profile, ", ".join(settings["profiles"]))
        sys.exit(2)

    window = MainWindow(settings, profile)
    window.show()

    try:
        sys.exit(app.exec())
    except (SystemExit, KeyboardInterrupt):
        pass


if __name__ == "__main__":
    main()
