"""Tests for the HTTP transport."""

from collections.abc import Callable

import httpx
import pytest

from portfolio_uploader.errors import TransportError
from portfolio_uploader.models import SourceImage
from portfolio_uploader.token_store import MemoryTokenStore
from portfolio_uploader.transport import (
    UploadKind, UploadTransport, format_file_url, format_image_url,
)

API = "http://api.test/api"
SERVER = "http://api.test"


@pytest.fixture
def requests_seen() -> list[httpx.Request]:
    return []


@pytest.fixture
def make_transport(requests_seen) -> Callable[..., UploadTransport]:
    """Build an UploadTransport answering every request with *handler*."""
    def _make(handler, token: str | None = "secret-token") -> UploadTransport:
        def _record(request: httpx.Request) -> httpx.Response:
            requests_seen.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
        store = MemoryTokenStore({"adminToken": token} if token else {})
        return UploadTransport(API, SERVER, token_store=store, client=client)

    return _make


@pytest.fixture
def image_file() -> SourceImage:
    return SourceImage(data=b"\x89PNG fake", mime_type="image/png", name="cropped-image.png")


def _json(status: int, body: dict) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status, json=body)


class TestFormatUrls:
    """Tests for server-relative URL resolution."""

    def test_empty(self):
        assert format_image_url("", SERVER) == ""
        assert format_image_url(None, SERVER) == ""

    def test_absolute_passes_through(self):
        url = "https://cdn.example.com/a.png"
        assert format_image_url(url, SERVER) == url

    def test_leading_slash(self):
        assert format_image_url("/uploads/images/a.png", SERVER) == "http://api.test/uploads/images/a.png"

    def test_relative(self):
        assert format_file_url("uploads/certificates/c.pdf", SERVER + "/") == "http://api.test/uploads/certificates/c.pdf"


class TestUploadImage:
    """Tests for POST /upload/image."""

    async def test_success(self, make_transport, requests_seen, image_file):
        """Should send a bearer-authenticated multipart request and return the URL."""
        transport = make_transport(_json(200, {"status": "success", "imageUrl": "/uploads/images/x.png"}))
        result = await transport.upload_binary(UploadKind.IMAGE, image_file)

        assert result.ok
        assert result.url == "/uploads/images/x.png"
        request = requests_seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{API}/upload/image"
        assert request.headers["Authorization"] == "Bearer secret-token"
        body = request.content
        assert b'name="image"' in body
        assert b'filename="cropped-image.png"' in body
        assert b"\x89PNG fake" in body

    async def test_no_token_sends_no_header(self, make_transport, requests_seen, image_file):
        transport = make_transport(_json(200, {"status": "success", "imageUrl": "/a.png"}), token=None)
        await transport.upload_image(image_file)
        assert "Authorization" not in requests_seen[0].headers

    async def test_http_error_carries_server_message(self, make_transport, image_file):
        transport = make_transport(_json(400, {"status": "error", "message": "Only image files are allowed"}))
        with pytest.raises(TransportError, match="Only image files are allowed") as exc_info:
            await transport.upload_binary(UploadKind.IMAGE, image_file)
        assert exc_info.value.status_code == 400

    async def test_http_error_without_json(self, make_transport, image_file):
        transport = make_transport(lambda request: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(TransportError, match="Something went wrong"):
            await transport.upload_image(image_file)

    async def test_non_success_status_is_failed_result(self, make_transport, image_file):
        transport = make_transport(_json(200, {"status": "error", "message": "Disk full"}))
        result = await transport.upload_binary(UploadKind.IMAGE, image_file)
        assert not result.ok
        assert result.error == "Disk full"

    async def test_network_error(self, make_transport, image_file):
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(_refuse)
        with pytest.raises(TransportError, match="ConnectError"):
            await transport.upload_image(image_file)


class TestOtherUploads:
    """Tests for certificate and resume uploads."""

    async def test_certificate(self, make_transport, requests_seen):
        payload = {
            "status": "success",
            "file": {
                "url": "/uploads/certificates/c.pdf", "filename": "c.pdf",
                "originalName": "cert.pdf", "mimeType": "application/pdf", "size": 42,
            },
        }
        transport = make_transport(_json(200, payload))
        pdf = SourceImage(data=b"%PDF", mime_type="application/pdf", name="cert.pdf")
        result = await transport.upload_binary(UploadKind.CERTIFICATE, pdf)

        assert result.url == "/uploads/certificates/c.pdf"
        assert result.payload["file"]["originalName"] == "cert.pdf"
        assert b'name="certificate"' in requests_seen[0].content

    async def test_resume_sends_metadata(self, make_transport, requests_seen):
        transport = make_transport(_json(200, {"status": "success", "data": {"url": "/uploads/resumes/r.pdf"}}))
        pdf = SourceImage(data=b"%PDF", mime_type="application/pdf", name="resume.pdf")
        result = await transport.upload_binary(
            UploadKind.RESUME, pdf, {"title": "CV", "designation": "Engineer"},
        )

        assert result.url == "/uploads/resumes/r.pdf"
        body = requests_seen[0].content
        assert b'name="resume"' in body
        assert b'name="title"' in body
        assert b"Engineer" in body


class TestManagement:
    """Tests for delete and list endpoints."""

    async def test_delete_image_quotes_filename(self, make_transport, requests_seen):
        transport = make_transport(_json(200, {"status": "success"}))
        await transport.delete_image("my photo.png")
        assert requests_seen[0].method == "DELETE"
        assert requests_seen[0].url.raw_path == b"/api/upload/image/my%20photo.png"

    async def test_get_resumes(self, make_transport):
        transport = make_transport(_json(200, {"status": "success", "data": [{"filename": "r.pdf"}]}))
        payload = await transport.get_resumes()
        assert payload["data"][0]["filename"] == "r.pdf"


class TestFetch:
    """Tests for fetching stored images."""

    async def test_returns_bytes(self, make_transport):
        transport = make_transport(lambda request: httpx.Response(200, content=b"PNGDATA"))
        assert await transport.fetch(f"{SERVER}/uploads/images/a.png") == b"PNGDATA"

    async def test_missing_raises(self, make_transport):
        transport = make_transport(lambda request: httpx.Response(404))
        with pytest.raises(TransportError):
            await transport.fetch(f"{SERVER}/uploads/images/missing.png")


async def test_context_manager_keeps_injected_client(make_transport):
    transport = make_transport(_json(200, {"status": "success"}))
    async with transport:
        pass
    assert not transport._client.is_closed
