"""
Crop-geometry utilities.

Pure functions over ``CropRegion``: the initial centered crop, aspect-ratio
normalisation, boundary clamping, and the move/resize math behind the
interactive overlay.  Every function works in pixel units internally and
hands percentage regions back in percentage units.

Out-of-bounds input is always clamped, never rejected.
"""

import logging

from portfolio_uploader.config import ASPECT_TOLERANCE, INITIAL_CROP_PERCENT
from portfolio_uploader.models import UNIT_PERCENT, UNIT_PIXELS, CropRegion

logger = logging.getLogger(__name__)

HANDLE_NONE = 0
HANDLE_TL = 1
HANDLE_TR = 2
HANDLE_BL = 3
HANDLE_BR = 4


# =============================================================================
# Size helpers
# =============================================================================
def calculate_max_crop(img_w: float, img_h: float, aspect: float) -> tuple[float, float]:
    """Largest ``aspect`` rectangle that fits inside an ``img_w`` x ``img_h`` image."""
    # Try full width
    crop_w = img_w
    crop_h = crop_w / aspect
    if crop_h <= img_h:
        return crop_w, crop_h
    # Full height
    crop_h = img_h
    crop_w = crop_h * aspect
    return min(crop_w, img_w), crop_h


def center_region(img_w: float, img_h: float, crop_w: float, crop_h: float) -> CropRegion:
    """Return a pixel region of the given size centered in the image."""
    return CropRegion((img_w - crop_w) / 2, (img_h - crop_h) / 2, crop_w, crop_h, UNIT_PIXELS)


def _apply_minimum(
    w: float, h: float, aspect: float | None,
    min_w: float, min_h: float, img_w: float, img_h: float,
) -> tuple[float, float]:
    """Grow ``w`` x ``h`` up to the minimums without leaving the image."""
    if w < min_w:
        w = min_w
        if aspect:
            h = w / aspect
    if h < min_h:
        h = min_h
        if aspect:
            w = h * aspect
    if w > img_w or h > img_h:
        if aspect:
            # Minimums cannot be met at this ratio; best effort is the largest fit
            return calculate_max_crop(img_w, img_h, aspect)
        return min(w, img_w), min(h, img_h)
    return w, h


# =============================================================================
# Initial crop
# =============================================================================
def initial_crop(
    img_w: int, img_h: int, aspect: float | None,
    min_w: float = 0, min_h: float = 0,
) -> CropRegion:
    """Centered crop covering ``INITIAL_CROP_PERCENT`` of the image width.

    The height follows from *aspect*; if that overflows the image the
    region shrinks to fit.  An image smaller than the minimums gets the
    whole image as its crop.  Result is in pixel units.
    """
    if img_w <= 0 or img_h <= 0:
        return CropRegion(0, 0, 0, 0, UNIT_PIXELS)

    if img_w < min_w or img_h < min_h:
        logger.debug(
            "Image %dx%d is below the %sx%s minimum; cropping to the full image",
            img_w, img_h, min_w, min_h,
        )
        return CropRegion(0, 0, img_w, img_h, UNIT_PIXELS)

    w = img_w * INITIAL_CROP_PERCENT / 100
    if aspect:
        h = w / aspect
        if h > img_h:
            h = img_h
            w = h * aspect
    else:
        h = img_h * INITIAL_CROP_PERCENT / 100

    w, h = _apply_minimum(w, h, aspect, min_w, min_h, img_w, img_h)
    return center_region(img_w, img_h, w, h)


def initial_crop_percent(
    img_w: int, img_h: int, aspect: float | None,
    min_w: float = 0, min_h: float = 0,
) -> CropRegion:
    """``initial_crop`` expressed in percentage units for the overlay."""
    return initial_crop(img_w, img_h, aspect, min_w, min_h).to_percent(img_w, img_h)


# =============================================================================
# Clamping and aspect normalisation
# =============================================================================
def clamp_region(
    region: CropRegion, img_w: float, img_h: float,
    min_w: float = 0, min_h: float = 0,
) -> CropRegion:
    """Clamp a region to image bounds, growing it to the minimum where room allows."""
    px = region.to_pixels(img_w, img_h)
    w = max(min(min_w, img_w), min(px.width, img_w))
    h = max(min(min_h, img_h), min(px.height, img_h))
    x = max(0, min(px.x, img_w - w))
    y = max(0, min(px.y, img_h - h))
    clamped = CropRegion(x, y, w, h, UNIT_PIXELS)
    if region.unit == UNIT_PERCENT:
        return clamped.to_percent(img_w, img_h)
    return clamped


def normalize_for_aspect(
    region: CropRegion, aspect: float | None, img_w: float, img_h: float,
    min_w: float = 0, min_h: float = 0,
) -> CropRegion:
    """Force ``width / height == aspect`` while keeping the region in bounds.

    Width drives: height is derived from it unless that would overflow the
    image, in which case the height is capped and the width re-derived.
    The result is then grown to the minimums at the same ratio, or to the
    largest fit when the image is too small for them.  A ``None`` aspect
    only clamps.
    """
    if not aspect:
        return clamp_region(region, img_w, img_h, min_w, min_h)

    px = region.to_pixels(img_w, img_h)
    w = min(px.width, img_w)
    h = w / aspect
    if h > img_h:
        h = img_h
        w = h * aspect
    w, h = _apply_minimum(w, h, aspect, min_w, min_h, img_w, img_h)
    x = max(0, min(px.x, img_w - w))
    y = max(0, min(px.y, img_h - h))
    result = CropRegion(x, y, w, h, UNIT_PIXELS)
    if region.unit == UNIT_PERCENT:
        return result.to_percent(img_w, img_h)
    return result


def matches_aspect(region: CropRegion, aspect: float | None, img_w: float, img_h: float) -> bool:
    """True if the region's pixel aspect equals *aspect* within tolerance."""
    if not aspect:
        return True
    px = region.to_pixels(img_w, img_h)
    return abs(px.aspect - aspect) <= ASPECT_TOLERANCE * aspect


def is_within(region: CropRegion, img_w: float, img_h: float, eps: float = 1e-6) -> bool:
    px = region.to_pixels(img_w, img_h)
    return (
        px.x >= -eps and px.y >= -eps
        and px.x + px.width <= img_w + eps
        and px.y + px.height <= img_h + eps
    )


# =============================================================================
# Interactive edits
# =============================================================================
def move_region(region: CropRegion, dx: float, dy: float, img_w: float, img_h: float) -> CropRegion:
    """Translate a pixel region by ``(dx, dy)``, stopping at the image edges."""
    x = max(0, min(region.x + dx, img_w - region.width))
    y = max(0, min(region.y + dy, img_h - region.height))
    return CropRegion(x, y, region.width, region.height, UNIT_PIXELS)


def resize_from_handle(
    start: CropRegion, handle: int, mx: float, my: float,
    aspect: float | None, img_w: float, img_h: float,
    min_w: float = 0, min_h: float = 0,
) -> CropRegion:
    """Resize *start* by dragging a corner handle to ``(mx, my)``.

    The opposite corner stays anchored.  With an aspect lock the limiting
    dimension wins; the result never leaves the image.
    """
    mx = max(0, min(mx, img_w))
    my = max(0, min(my, img_h))
    cs = start

    if handle == HANDLE_BR:
        anchor_x, anchor_y = cs.x, cs.y
        dw = mx - anchor_x
        dh = my - anchor_y
    elif handle == HANDLE_BL:
        anchor_x, anchor_y = cs.x + cs.width, cs.y
        dw = anchor_x - mx
        dh = my - anchor_y
    elif handle == HANDLE_TR:
        anchor_x, anchor_y = cs.x, cs.y + cs.height
        dw = mx - anchor_x
        dh = anchor_y - my
    elif handle == HANDLE_TL:
        anchor_x, anchor_y = cs.x + cs.width, cs.y + cs.height
        dw = anchor_x - mx
        dh = anchor_y - my
    else:
        return CropRegion(cs.x, cs.y, cs.width, cs.height, UNIT_PIXELS)

    dw = max(dw, 1)
    dh = max(dh, 1)

    if aspect:
        if dw / dh > aspect:
            new_w, new_h = dh * aspect, dh
        else:
            new_w, new_h = dw, dw / aspect
        # Both minimums hold at the locked ratio
        eff_min_w = max(min_w, min_h * aspect)
        if new_w < eff_min_w:
            new_w, new_h = eff_min_w, eff_min_w / aspect
    else:
        new_w, new_h = max(dw, min_w), max(dh, min_h)

    # Room available from the anchor
    max_w = img_w - anchor_x if handle in (HANDLE_BR, HANDLE_TR) else anchor_x
    max_h = img_h - anchor_y if handle in (HANDLE_BR, HANDLE_BL) else anchor_y

    if new_w > max_w:
        new_w = max_w
        if aspect:
            new_h = new_w / aspect
    if new_h > max_h:
        new_h = max_h
        if aspect:
            new_w = new_h * aspect

    new_x = anchor_x if handle in (HANDLE_BR, HANDLE_TR) else anchor_x - new_w
    new_y = anchor_y if handle in (HANDLE_BR, HANDLE_BL) else anchor_y - new_h

    return clamp_region(CropRegion(new_x, new_y, new_w, new_h, UNIT_PIXELS), img_w, img_h)
