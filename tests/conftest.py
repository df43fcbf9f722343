"""Pytest fixtures for uploader tests."""

import io
from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image

from portfolio_uploader.models import SourceImage, UploadResult
from portfolio_uploader.transport import UploadKind


def make_png(width: int, height: int, color=(200, 40, 40)) -> bytes:
    """Encode a solid RGB PNG."""
    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, "PNG")
    return out.getvalue()


def make_gradient_png(width: int, height: int) -> bytes:
    """Encode an RGB PNG whose pixels differ, so crops are distinguishable."""
    img = Image.new("RGB", (width, height))
    img.putdata([(x % 256, y % 256, (x + y) % 256) for y in range(height) for x in range(width)])
    out = io.BytesIO()
    img.save(out, "PNG")
    return out.getvalue()


class FakeTransport:
    """Records upload calls and answers from a queue of results.

    Each queued item is an ``UploadResult``, an exception to raise, or a
    ``(asyncio.Event, item)`` pair that answers with *item* once the event
    is set.
    """

    server_base_url = "http://server.test"

    def __init__(self, *results):
        self.results = list(results)
        self.calls: list[tuple[UploadKind, SourceImage]] = []
        self.closed = False

    async def upload_binary(self, kind: UploadKind, file: SourceImage, metadata: dict | None = None) -> UploadResult:
        self.calls.append((kind, file))
        item = self.results.pop(0) if self.results else UploadResult(True, url="/uploads/images/default.png")
        if isinstance(item, tuple):
            gate, item = item
            await gate.wait()
        if isinstance(item, Exception):
            raise item
        return item

    async def fetch(self, url: str) -> bytes:
        return make_png(4, 4)

    async def aclose(self):
        self.closed = True


@pytest.fixture
def png_source() -> Callable[..., SourceImage]:
    """Factory for in-memory PNG sources."""
    def _make(width: int = 1000, height: int = 800, name: str = "portrait.png") -> SourceImage:
        return SourceImage(data=make_png(width, height), mime_type="image/png", name=name)
    return _make


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture(scope="session")
def qt_app():
    """Offscreen QApplication shared by every Qt test."""
    qt_widgets = pytest.importorskip("PyQt6.QtWidgets")
    app = qt_widgets.QApplication.instance() or qt_widgets.QApplication(["pytest", "-platform", "offscreen"])
    yield app


@pytest.fixture
def config_home(tmp_path: Path, monkeypatch) -> Path:
    """Point every persistence module at a temporary config directory."""
    monkeypatch.setattr("portfolio_uploader.settings.config_dir", lambda: tmp_path)
    monkeypatch.setattr("portfolio_uploader.token_store.config_dir", lambda: tmp_path)
    return tmp_path
