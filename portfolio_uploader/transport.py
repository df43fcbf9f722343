"""
HTTP transport to the portfolio backend's upload endpoints.

Thin async client over ``httpx``: multipart requests out, JSON parsed into
pydantic models back.  Any network failure or non-2xx answer raises
``TransportError`` carrying the server's ``message``; the caller does not
distinguish retryable from fatal failures.
"""

import logging
from enum import Enum
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from portfolio_uploader.config import API_BASE_URL, SERVER_BASE_URL, TOKEN_KEY, UPLOAD_TIMEOUT
from portfolio_uploader.errors import TransportError
from portfolio_uploader.models import SourceImage, UploadResult
from portfolio_uploader.token_store import MemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
_DEFAULT_ERROR = "Something went wrong"


# =============================================================================
# URL formatting
# =============================================================================
def _resolve(path: str | None, server_base_url: str) -> str:
    if not path:
        return ""
    if path.startswith("http"):
        return path
    base = server_base_url.rstrip("/")
    if path.startswith("/"):
        return f"{base}{path}"
    return f"{base}/{path}"


def format_image_url(image_url: str | None, server_base_url: str = SERVER_BASE_URL) -> str:
    """Resolve a server-relative image path for display; absolute URLs pass through."""
    return _resolve(image_url, server_base_url)


def format_file_url(file_url: str | None, server_base_url: str = SERVER_BASE_URL) -> str:
    """Resolve a server-relative file path (certificate PDF, resume) for linking."""
    return _resolve(file_url, server_base_url)


# =============================================================================
# Response models
# =============================================================================
class _Response(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    status: str = ""
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS


class ImageUploadResponse(_Response):
    image_url: str = Field("", alias="imageUrl")


class CertificateFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    filename: str = ""
    original_name: str = Field("", alias="originalName")
    mime_type: str = Field("", alias="mimeType")
    size: int = 0


class CertificateUploadResponse(_Response):
    file: CertificateFile | None = None


class ResumeUploadResponse(_Response):
    data: dict | None = None


class UploadKind(str, Enum):
    IMAGE = "image"
    CERTIFICATE = "certificate"
    RESUME = "resume"


# =============================================================================
# Transport
# =============================================================================
class UploadTransport:
    """Async client for ``/upload/*``.

    Args:
        api_base_url: Base of the REST API, e.g. ``http://host:5001/api``
        server_base_url: Base for resolving returned relative file paths
        token_store: Source of the bearer token; nothing is sent if unset
        timeout: Per-request timeout in seconds (ignored if *client* given)
        client: Pre-built ``httpx.AsyncClient`` (tests inject a mock transport)
    """

    def __init__(
        self,
        api_base_url: str = API_BASE_URL,
        server_base_url: str = SERVER_BASE_URL,
        token_store: TokenStore | None = None,
        timeout: float = UPLOAD_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.server_base_url = server_base_url.rstrip("/")
        self.token_store = token_store if token_store is not None else MemoryTokenStore()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "UploadTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self.token_store.get(TOKEN_KEY)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(self, method: str, endpoint: str, **kwargs) -> dict:
        url = f"{self.api_base_url}{endpoint}"
        try:
            response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(f"{exc.__class__.__name__}: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if not response.is_success:
            message = payload.get("message") or _DEFAULT_ERROR
            logger.warning("%s %s returned %d: %s", method, url, response.status_code, message)
            raise TransportError(message, response.status_code)

        return payload

    @staticmethod
    def _parse(model: type[_Response], payload: dict) -> _Response:
        try:
            return model.model_validate(payload)
        except PydanticValidationError as exc:
            raise TransportError(f"Unexpected response from server: {exc.error_count()} invalid field(s)") from exc

    # --- Uploads ---

    async def upload_image(self, image: SourceImage) -> ImageUploadResponse:
        payload = await self._request(
            "POST", "/upload/image",
            files={"image": (image.name, image.data, image.mime_type)},
        )
        return self._parse(ImageUploadResponse, payload)

    async def upload_certificate(self, file: SourceImage) -> CertificateUploadResponse:
        payload = await self._request(
            "POST", "/upload/certificate",
            files={"certificate": (file.name, file.data, file.mime_type)},
        )
        return self._parse(CertificateUploadResponse, payload)

    async def upload_resume(
        self, file: SourceImage, title: str | None = None, designation: str | None = None,
    ) -> ResumeUploadResponse:
        form = {k: v for k, v in (("title", title), ("designation", designation)) if v}
        payload = await self._request(
            "POST", "/upload/resume",
            files={"resume": (file.name, file.data, file.mime_type)},
            data=form or None,
        )
        return self._parse(ResumeUploadResponse, payload)

    async def upload_binary(self, kind: UploadKind, file: SourceImage, metadata: dict | None = None) -> UploadResult:
        """Upload *file* to the endpoint for *kind*.

        A 2xx reply whose ``status`` is not ``"success"`` comes back as a
        failed ``UploadResult``; transport and HTTP failures raise
        ``TransportError``.
        """
        metadata = metadata or {}
        kind = UploadKind(kind)
        if kind is UploadKind.IMAGE:
            resp = await self.upload_image(file)
            url = resp.image_url
        elif kind is UploadKind.CERTIFICATE:
            resp = await self.upload_certificate(file)
            url = resp.file.url if resp.file else ""
        else:
            resp = await self.upload_resume(file, metadata.get("title"), metadata.get("designation"))
            url = str((resp.data or {}).get("url", ""))

        payload = resp.model_dump(by_alias=True)
        if not resp.ok:
            return UploadResult(False, error=resp.message or "Upload failed", payload=payload)
        logger.info("Uploaded %s (%d bytes) as %s", file.name, file.size, url or "<no url>")
        return UploadResult(True, url=url, payload=payload)

    async def fetch(self, url: str) -> bytes:
        """GET an absolute URL (a stored image, for previews)."""
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(f"Could not load {url}: {exc}") from exc
        return response.content

    # --- Management ---

    async def delete_image(self, filename: str) -> dict:
        return await self._request("DELETE", f"/upload/image/{quote(filename)}")

    async def get_resumes(self) -> dict:
        return await self._request("GET", "/upload/resume")

    async def delete_resume(self, filename: str) -> dict:
        return await self._request("DELETE", f"/upload/resume/{quote(filename)}")
