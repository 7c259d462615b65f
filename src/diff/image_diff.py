"""Pixel-level image comparison using Pillow."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageChops

from src.models.classification import PixelDiffSummary

logger = logging.getLogger(__name__)

# A channel difference above this counts as a changed pixel. Forgiving enough
# for anti-aliasing and font rendering noise between otherwise identical shots.
DEFAULT_PIXEL_THRESHOLD = 40

_DIFF_COLOR = (255, 0, 0)


@dataclass
class ImageDiff:
    summary: PixelDiffSummary
    diff_png: bytes | None = None


def _load_rgb(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as img:
        return img.convert("RGB")


def _changed_mask(before: Image.Image, after: Image.Image, pixel_threshold: int) -> Image.Image:
    """Return an "L" mask, 255 wherever any channel differs by more than the threshold."""
    diff = ImageChops.difference(before, after)
    r, g, b = diff.split()
    strongest = ImageChops.lighter(ImageChops.lighter(r, g), b)
    return strongest.point(lambda v: 255 if v > pixel_threshold else 0)


def _render_diff(after: Image.Image, mask: Image.Image) -> bytes:
    faded = Image.blend(after, Image.new("RGB", after.size, (255, 255, 255)), 0.7)
    faded.paste(Image.new("RGB", after.size, _DIFF_COLOR), (0, 0), mask)
    buf = io.BytesIO()
    faded.save(buf, format="PNG")
    return buf.getvalue()


def compare_images(
    before_png: bytes,
    after_png: bytes,
    pixel_threshold: int = DEFAULT_PIXEL_THRESHOLD,
    render_diff: bool = True,
) -> ImageDiff:
    """Compare two PNG screenshots.

    When the sizes differ the overlapping region is compared pixel by pixel
    and every pixel outside it counts as changed.
    """
    try:
        before = _load_rgb(before_png)
        after = _load_rgb(after_png)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        logger.warning("Could not decode screenshot for comparison: %s", e)
        return ImageDiff(PixelDiffSummary(error=f"decode failed: {e}"))

    before_size, after_size = before.size, after.size
    width = max(before.width, after.width)
    height = max(before.height, after.height)
    total = width * height
    size_mismatch = before_size != after_size

    if size_mismatch:
        overlap_w = min(before.width, after.width)
        overlap_h = min(before.height, after.height)
        overlap_mask = _changed_mask(
            before.crop((0, 0, overlap_w, overlap_h)),
            after.crop((0, 0, overlap_w, overlap_h)),
            pixel_threshold,
        )
        mask = Image.new("L", (width, height), 255)
        mask.paste(overlap_mask, (0, 0))
        canvas = Image.new("RGB", (width, height), (255, 255, 255))
        canvas.paste(after, (0, 0))
        after = canvas
    else:
        mask = _changed_mask(before, after, pixel_threshold)

    changed = mask.histogram()[255]
    summary = PixelDiffSummary(
        changed_pixels=changed,
        total_pixels=total,
        diff_ratio=round(changed / total, 6) if total else 0.0,
        size_mismatch=size_mismatch,
        before_size=before_size,
        after_size=after_size,
    )
    diff_png = _render_diff(after, mask) if render_diff and changed else None
    return ImageDiff(summary=summary, diff_png=diff_png)
