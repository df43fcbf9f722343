"""
Data models shared by the cropper, the coordinator and the transport.

``CropRegion`` carries its own unit: ``"%"`` regions drive the overlay
independently of zoom, ``"px"`` regions drive extraction.  Extraction
requests and upload results are frozen snapshots; the mutable flow state
lives in ``coordinator.UploadFlow``.
"""

from dataclasses import dataclass, field, replace

from portfolio_uploader.config import (
    CROP_SHAPES, DEFAULT_ASPECT_RATIO, DEFAULT_CROP_SHAPE,
    MAX_FILE_BYTES, MIN_CROP_HEIGHT, MIN_CROP_WIDTH,
)
from portfolio_uploader.errors import ValidationError

UNIT_PERCENT = "%"
UNIT_PIXELS = "px"


# =============================================================================
# Source image
# =============================================================================
@dataclass
class SourceImage:
    """A user-selected image held in memory for the duration of one flow."""
    data: bytes
    mime_type: str
    name: str = "image"
    natural_w: int = 0
    natural_h: int = 0
    display_w: int = 0  # as rendered; 0 means "same as natural"
    display_h: int = 0

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def stem(self) -> str:
        """File name without extension; the default ``alt`` text."""
        return self.name.split(".")[0]

    @property
    def natural_size(self) -> tuple[int, int]:
        return self.natural_w, self.natural_h

    @property
    def display_size(self) -> tuple[int, int]:
        if self.display_w and self.display_h:
            return self.display_w, self.display_h
        return self.natural_w, self.natural_h

    def with_display_size(self, w: int, h: int) -> "SourceImage":
        return replace(self, display_w=w, display_h=h)


# =============================================================================
# Crop region
# =============================================================================
@dataclass
class CropRegion:
    """Crop rectangle in either percentage-of-image or pixel units."""
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    unit: str = UNIT_PIXELS

    @property
    def aspect(self) -> float:
        return self.width / self.height if self.height else 0.0

    def to_pixels(self, img_w: int, img_h: int) -> "CropRegion":
        """Convert to pixel units relative to an ``img_w`` x ``img_h`` image."""
        if self.unit == UNIT_PIXELS:
            return replace(self)
        return CropRegion(
            self.x * img_w / 100,
            self.y * img_h / 100,
            self.width * img_w / 100,
            self.height * img_h / 100,
            UNIT_PIXELS,
        )

    def to_percent(self, img_w: int, img_h: int) -> "CropRegion":
        """Convert to percentage units relative to an ``img_w`` x ``img_h`` image."""
        if self.unit == UNIT_PERCENT:
            return replace(self)
        if img_w <= 0 or img_h <= 0:
            return CropRegion(0, 0, 0, 0, UNIT_PERCENT)
        return CropRegion(
            self.x * 100 / img_w,
            self.y * 100 / img_h,
            self.width * 100 / img_w,
            self.height * 100 / img_h,
            UNIT_PERCENT,
        )

    def is_degenerate(self) -> bool:
        return self.width <= 0 or self.height <= 0


# =============================================================================
# Extraction request
# =============================================================================
@dataclass(frozen=True)
class ExtractionRequest:
    """Read-only snapshot driving exactly one pixel extraction.

    ``crop`` is in display pixels; the scale factors map it onto the
    source's natural pixels.
    """
    crop: CropRegion
    natural_w: int
    natural_h: int
    display_w: int
    display_h: int
    device_pixel_ratio: float = 1.0

    @property
    def scale_x(self) -> float:
        return self.natural_w / self.display_w if self.display_w else 1.0

    @property
    def scale_y(self) -> float:
        return self.natural_h / self.display_h if self.display_h else 1.0

    def source_box(self) -> tuple[float, float, float, float]:
        """``(left, top, right, bottom)`` of the crop in natural pixels."""
        c = self.crop
        left = c.x * self.scale_x
        top = c.y * self.scale_y
        return left, top, left + c.width * self.scale_x, top + c.height * self.scale_y

    @property
    def output_size(self) -> tuple[int, int]:
        dpr = self.device_pixel_ratio
        return (
            round(self.crop.width * self.scale_x * dpr),
            round(self.crop.height * self.scale_y * dpr),
        )

    @classmethod
    def build(
        cls, source: SourceImage, crop: CropRegion, device_pixel_ratio: float = 1.0,
    ) -> "ExtractionRequest":
        """Freeze *crop* (any unit) against *source*'s current display size."""
        dw, dh = source.display_size
        return cls(
            crop=crop.to_pixels(dw, dh),
            natural_w=source.natural_w,
            natural_h=source.natural_h,
            display_w=dw,
            display_h=dh,
            device_pixel_ratio=device_pixel_ratio,
        )


# =============================================================================
# Outcomes
# =============================================================================
@dataclass(frozen=True)
class ValidationOutcome:
    ok: bool
    reason: str = ""

    def raise_for_reason(self) -> None:
        if not self.ok:
            raise ValidationError(self.reason)


@dataclass(frozen=True)
class UploadResult:
    """Outcome of one transport call."""
    ok: bool
    url: str = ""
    error: str = ""
    payload: dict = field(default_factory=dict)


# =============================================================================
# Caller contract
# =============================================================================
@dataclass
class UploaderConfig:
    """Per-control configuration supplied by the hosting form."""
    aspect_ratio: float | None = DEFAULT_ASPECT_RATIO  # None = free-form
    crop_shape: str = DEFAULT_CROP_SHAPE
    min_width: int = MIN_CROP_WIDTH
    min_height: int = MIN_CROP_HEIGHT
    max_file_bytes: int = MAX_FILE_BYTES
    cropping_enabled: bool = True

    def __post_init__(self):
        if self.crop_shape not in CROP_SHAPES:
            raise ValueError(f"crop_shape must be one of {CROP_SHAPES}, got {self.crop_shape!r}")
        if self.aspect_ratio is not None and self.aspect_ratio <= 0:
            raise ValueError(f"aspect_ratio must be positive, got {self.aspect_ratio!r}")

