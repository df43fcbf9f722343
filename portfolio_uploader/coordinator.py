"""
Upload coordinator: the pick → validate → crop → upload lifecycle.

One ``ImageUploadCoordinator`` backs one upload control.  Each file
selection starts an ``UploadFlow`` whose ``Phase`` only moves along the
edges in ``_TRANSITIONS``::

    Idle → Selected → Validating → Invalid → Idle
                                 → PreparingCrop → Cropping → Extracting → Uploading
                                 → Uploading (cropping disabled / use original)
    PreparingCrop → Idle (cancel)
    Extracting → PreparingCrop (encoding failed, retry) | Idle (superseded)
    Uploading → Committed | Failed → Idle

A flow owns exactly one temporary reference to its source bytes and
releases it exactly once on every exit path.  Selecting a new file
supersedes the active flow: a flow still waiting in ``PreparingCrop`` is
cancelled, an in-flight one is detached and settles silently (it still
releases its own reference).  The coordinator never persists anything;
the ``on_result`` callback does.
"""

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from portfolio_uploader.config import SERVER_BASE_URL
from portfolio_uploader.errors import EncodingFailed, InvalidTransition, TransportError
from portfolio_uploader.geometry import clamp_region, normalize_for_aspect
from portfolio_uploader.image_io import compute_fingerprint, to_data_url, with_natural_size
from portfolio_uploader.models import (
    CropRegion, ExtractionRequest, SourceImage, UploaderConfig, UploadResult, ValidationOutcome,
)
from portfolio_uploader.raster import PillowRasterExtractor, RasterExtractor
from portfolio_uploader.transport import UploadKind, UploadTransport, format_image_url
from portfolio_uploader.validation import validate

logger = logging.getLogger(__name__)

ImageValue = str | dict | None
ResultCallback = Callable[[ImageValue, bool], None]


# =============================================================================
# Phases
# =============================================================================
class Phase(Enum):
    IDLE = "idle"
    SELECTED = "selected"
    VALIDATING = "validating"
    INVALID = "invalid"
    PREPARING_CROP = "preparing_crop"
    CROPPING = "cropping"
    EXTRACTING = "extracting"
    UPLOADING = "uploading"
    COMMITTED = "committed"
    FAILED = "failed"


_TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.IDLE: frozenset({Phase.SELECTED}),
    Phase.SELECTED: frozenset({Phase.VALIDATING}),
    Phase.VALIDATING: frozenset({Phase.INVALID, Phase.PREPARING_CROP, Phase.UPLOADING, Phase.IDLE}),
    Phase.INVALID: frozenset({Phase.IDLE}),
    Phase.PREPARING_CROP: frozenset({Phase.CROPPING, Phase.UPLOADING, Phase.IDLE}),
    Phase.CROPPING: frozenset({Phase.EXTRACTING}),
    Phase.EXTRACTING: frozenset({Phase.UPLOADING, Phase.PREPARING_CROP, Phase.IDLE}),
    Phase.UPLOADING: frozenset({Phase.COMMITTED, Phase.FAILED}),
    Phase.COMMITTED: frozenset(),
    Phase.FAILED: frozenset({Phase.IDLE}),
}


# =============================================================================
# Temporary references
# =============================================================================
class TempReferenceRegistry:
    """Hands out ``blob:`` ids for in-memory source bytes and revokes them."""

    def __init__(self):
        self._live: dict[str, bytes] = {}
        self._counter = itertools.count(1)
        self.revoked: list[str] = []

    def create(self, data: bytes) -> "TempReference":
        ref_id = f"blob:{compute_fingerprint(data)}-{next(self._counter)}"
        self._live[ref_id] = data
        return TempReference(self, ref_id)

    def resolve(self, ref_id: str) -> bytes:
        try:
            return self._live[ref_id]
        except KeyError:
            raise LookupError(f"{ref_id} has been revoked") from None

    def revoke(self, ref_id: str) -> None:
        if self._live.pop(ref_id, None) is None:
            raise LookupError(f"{ref_id} is not live")
        self.revoked.append(ref_id)

    @property
    def live_count(self) -> int:
        return len(self._live)


class TempReference:
    """One flow's handle on its source bytes."""

    def __init__(self, registry: TempReferenceRegistry, ref_id: str):
        self._registry = registry
        self.ref_id = ref_id
        self.released = False

    @property
    def data(self) -> bytes:
        return self._registry.resolve(self.ref_id)

    def release(self) -> bool:
        """Revoke the reference; returns False if it was already released."""
        if self.released:
            return False
        self._registry.revoke(self.ref_id)
        self.released = True
        return True


# =============================================================================
# Flow
# =============================================================================
@dataclass
class UploadFlow:
    """State of one file selection from pick to commit or abandonment."""
    flow_id: int
    source: SourceImage
    previous_preview: str = ""
    phase: Phase = Phase.IDLE
    reference: TempReference | None = None
    error: str = ""
    result: UploadResult | None = None
    superseded: bool = False
    history: list[Phase] = field(default_factory=list)
    on_change: Callable[["UploadFlow"], None] | None = field(default=None, repr=False)

    def advance(self, phase: Phase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise InvalidTransition(f"flow {self.flow_id}: {self.phase.value} -> {phase.value}")
        logger.debug("Flow %d: %s -> %s", self.flow_id, self.phase.value, phase.value)
        self.phase = phase
        self.history.append(phase)
        if self.on_change is not None:
            self.on_change(self)

    def release(self) -> None:
        if self.reference is not None and self.reference.release():
            logger.debug("Flow %d released %s", self.flow_id, self.reference.ref_id)


# =============================================================================
# Coordinator
# =============================================================================
class ImageUploadCoordinator:
    """Drives upload flows for one image control.

    *current_image* is the value the hosting record already holds: a URL
    string or a ``{"url", "alt"}`` dict.  Results are reported in the same
    shape through ``on_result(value, was_original)``.

    ``on_preview``, ``on_error`` and ``on_phase`` are optional listeners for
    a UI; they are called synchronously whenever the corresponding state
    changes.
    """

    def __init__(
        self,
        transport: UploadTransport,
        config: UploaderConfig | None = None,
        on_result: ResultCallback | None = None,
        current_image: ImageValue = None,
        extractor: RasterExtractor | None = None,
        registry: TempReferenceRegistry | None = None,
        kind: UploadKind = UploadKind.IMAGE,
        server_base_url: str | None = None,
        on_preview: Callable[[str], None] | None = None,
        on_error: Callable[[str], None] | None = None,
        on_phase: Callable[[UploadFlow], None] | None = None,
    ):
        self._transport = transport
        self.config = config or UploaderConfig()
        self._on_result = on_result
        self._extractor = extractor or PillowRasterExtractor()
        self.registry = registry or TempReferenceRegistry()
        self.kind = kind
        self._server_base_url = server_base_url or getattr(transport, "server_base_url", SERVER_BASE_URL)
        self.on_preview = on_preview
        self.on_error = on_error
        self.on_phase = on_phase

        self.current_image = current_image
        self._committed_preview = self._format(self._image_url(current_image))
        self.preview = self._committed_preview
        self.error = ""
        self._flow: UploadFlow | None = None
        self._flow_ids = itertools.count(1)

    # --- State accessors ---

    @property
    def flow(self) -> UploadFlow | None:
        return self._flow

    @property
    def phase(self) -> Phase:
        return self._flow.phase if self._flow is not None else Phase.IDLE

    @property
    def uploading(self) -> bool:
        return self.phase is Phase.UPLOADING

    # --- Helpers ---

    @staticmethod
    def _image_url(value: ImageValue) -> str:
        if isinstance(value, dict):
            return value.get("url") or ""
        return value or ""

    def _format(self, url: str) -> str:
        return format_image_url(url, self._server_base_url)

    def _set_preview(self, preview: str) -> None:
        self.preview = preview
        if self.on_preview is not None:
            self.on_preview(preview)

    def _set_error(self, message: str) -> None:
        self.error = message
        if self.on_error is not None:
            self.on_error(message)

    def _is_current(self, flow: UploadFlow) -> bool:
        return self._flow is flow and not flow.superseded

    def _close(self, flow: UploadFlow) -> None:
        flow.release()
        if self._flow is flow:
            self._flow = None

    def _require(self, *phases: Phase) -> UploadFlow:
        flow = self._flow
        if flow is None or flow.phase not in phases:
            current = flow.phase.value if flow else Phase.IDLE.value
            wanted = ", ".join(p.value for p in phases)
            raise InvalidTransition(f"expected an active flow in {wanted}, not {current}")
        return flow

    def _result_value(self, url: str, flow: UploadFlow) -> ImageValue:
        """Match the shape the caller's record already uses."""
        if isinstance(self.current_image, str):
            return url
        return {"url": url, "alt": flow.source.stem}

    def _supersede(self) -> None:
        flow = self._flow
        if flow is None:
            return
        if flow.phase in (Phase.PREPARING_CROP, Phase.VALIDATING):
            logger.info("Flow %d cancelled by a new selection", flow.flow_id)
            flow.advance(Phase.IDLE)
            self._close(flow)
            return
        # In flight: let it settle on its own, silently
        logger.info("Flow %d superseded while %s", flow.flow_id, flow.phase.value)
        flow.superseded = True
        self._flow = None

    # --- Operations ---

    def select_file(self, source: SourceImage) -> UploadFlow:
        """Start a flow for *source*: validate, then prepare the cropper.

        With cropping disabled the flow waits in ``Validating`` for
        ``use_original()``; ``handle_file()`` does both steps.
        """
        self._supersede()
        flow = UploadFlow(
            next(self._flow_ids), source,
            previous_preview=self._committed_preview,
            on_change=self.on_phase,
        )
        self._flow = flow
        flow.advance(Phase.SELECTED)
        flow.advance(Phase.VALIDATING)

        outcome = validate(source, self.config.max_file_bytes)
        if outcome.ok and self.config.cropping_enabled:
            try:
                flow.source = with_natural_size(source)
            except (OSError, ValueError) as exc:
                outcome = ValidationOutcome(False, f"Could not read image: {exc}")

        if not outcome.ok:
            logger.warning("Rejected %s: %s", source.name, outcome.reason)
            flow.error = outcome.reason
            flow.advance(Phase.INVALID)
            self._set_error(outcome.reason)
            flow.advance(Phase.IDLE)
            self._close(flow)
            return flow

        self._set_error("")
        if self.config.cropping_enabled:
            flow.reference = self.registry.create(flow.source.data)
            flow.advance(Phase.PREPARING_CROP)
        return flow

    async def handle_file(self, source: SourceImage) -> UploadFlow:
        """Select *source* and, if cropping is disabled, upload it straight away."""
        flow = self.select_file(source)
        if flow.phase is Phase.VALIDATING:
            await self._upload(flow, flow.source, was_original=True)
        return flow

    def temp_url(self) -> str:
        """The ``blob:`` id of the active flow's source, for the cropper to show."""
        flow = self._require(Phase.PREPARING_CROP)
        return flow.reference.ref_id

    def cancel(self) -> None:
        """Abandon the flow before upload; no network call is made."""
        flow = self._require(Phase.PREPARING_CROP, Phase.VALIDATING)
        flow.advance(Phase.IDLE)
        self._close(flow)

    async def use_original(self) -> UploadFlow:
        """Upload the selected file as-is, skipping extraction."""
        flow = self._require(Phase.PREPARING_CROP, Phase.VALIDATING)
        await self._upload(flow, flow.source, was_original=True)
        return flow

    async def confirm_crop(
        self,
        region: CropRegion,
        display_size: tuple[int, int] | None = None,
        device_pixel_ratio: float = 1.0,
    ) -> UploadFlow:
        """Extract *region* and upload the result.

        *region* is relative to the image as displayed at *display_size*
        (natural size if omitted).  If encoding fails the flow returns to
        ``PreparingCrop`` so the user can try again.
        """
        flow = self._require(Phase.PREPARING_CROP)
        flow.advance(Phase.CROPPING)

        source = flow.source
        if display_size is not None:
            source = source.with_display_size(*display_size)
        dw, dh = source.display_size
        crop = normalize_for_aspect(
            clamp_region(region, dw, dh, self.config.min_width, self.config.min_height),
            self.config.aspect_ratio, dw, dh, self.config.min_width, self.config.min_height,
        )
        request = ExtractionRequest.build(source, crop, device_pixel_ratio)
        flow.advance(Phase.EXTRACTING)

        cropped = None
        try:
            # Read through the flow's reference; the registry owns the bytes now
            owned = SourceImage(
                data=flow.reference.data, mime_type=source.mime_type, name=source.name,
                natural_w=source.natural_w, natural_h=source.natural_h,
            )
            cropped = await self._extractor.crop_to_source(owned, request)
        except EncodingFailed as exc:
            logger.warning("Flow %d: %s", flow.flow_id, exc)
            flow.error = str(exc)
            if flow.superseded:
                flow.advance(Phase.IDLE)
                self._close(flow)
                return flow
            flow.advance(Phase.PREPARING_CROP)
            self._set_error(f"Could not crop image: {exc}")
            return flow
        finally:
            if cropped is None and flow.phase is Phase.EXTRACTING:
                # Unexpected extractor error: drop the flow, let the error propagate
                logger.error("Flow %d: extraction aborted", flow.flow_id)
                flow.advance(Phase.IDLE)
                self._close(flow)

        if flow.superseded:
            flow.advance(Phase.IDLE)
            self._close(flow)
            return flow

        await self._upload(flow, cropped, was_original=False)
        return flow

    async def _upload(self, flow: UploadFlow, file: SourceImage, was_original: bool) -> None:
        flow.advance(Phase.UPLOADING)
        try:
            # Local preview first so the control is never blank during the call
            if self._is_current(flow):
                self._set_preview(to_data_url(file.data, file.mime_type))

            try:
                result = await self._transport.upload_binary(self.kind, file)
                if not result.ok:
                    raise TransportError(result.error or "Upload failed")
            except TransportError as exc:
                flow.error = str(exc)
                flow.advance(Phase.FAILED)
                if self._is_current(flow):
                    self._set_preview(flow.previous_preview)
                    self._set_error(f"Upload failed: {exc}")
                flow.advance(Phase.IDLE)
                return

            flow.result = result
            flow.advance(Phase.COMMITTED)
            if not self._is_current(flow):
                logger.info("Flow %d committed after being superseded; result ignored", flow.flow_id)
                return

            self._committed_preview = self._format(result.url)
            self._set_preview(self._committed_preview)
            value = self._result_value(result.url, flow)
            self.current_image = value
            if self._on_result is not None:
                self._on_result(value, was_original)
        finally:
            self._close(flow)

    def remove_image(self) -> None:
        """Clear the image: empty preview, empty value reported to the caller."""
        if self._flow is not None and self._flow.phase in (Phase.PREPARING_CROP, Phase.VALIDATING):
            self.cancel()
        value: ImageValue = "" if isinstance(self.current_image, str) else {"url": "", "alt": ""}
        self.current_image = value
        self._committed_preview = ""
        self._set_preview("")
        if self._on_result is not None:
            self._on_result(value, False)
