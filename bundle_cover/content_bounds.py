from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

from PIL import Image, ImageChops


DEFAULT_ALPHA_THRESHOLD = 10
DEFAULT_WHITE_THRESHOLD = 250

# sources above this are scanned on a downscaled copy
MAX_SCAN_PIXELS = 16_000_000


@dataclass(frozen=True)
class Box:
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def as_pil(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)


def _threshold_lut(threshold: int, below: bool) -> List[int]:
    t = max(0, min(256, int(threshold)))
    if below:
        return [255] * t + [0] * (256 - t)
    return [0] * t + [255] * (256 - t)


def content_mask(img: Image.Image, white_threshold: int | None = None, alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD) -> Image.Image:
    """Return an "L" mask that is 255 where the pixel carries content."""
    rgba = img if img.mode == "RGBA" else img.convert("RGBA")
    r, g, b, a = rgba.split()

    mask = a.point(_threshold_lut(alpha_threshold, below=False))
    if white_threshold is not None:
        lut = _threshold_lut(white_threshold, below=True)
        # non-white as soon as one channel drops below the threshold
        non_white = ImageChops.lighter(ImageChops.lighter(r.point(lut), g.point(lut)), b.point(lut))
        mask = ImageChops.darker(mask, non_white)
    return mask


def content_bounding_box(
    img: Image.Image,
    white_threshold: int | None = None,
    alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD,
    max_pixels: int | None = None,
) -> Box | None:
    w, h = img.size
    if w <= 0 or h <= 0:
        return None

    if max_pixels is not None and w * h > max_pixels:
        return _scaled_bounding_box(img, white_threshold, alpha_threshold, max_pixels)

    bbox = content_mask(img, white_threshold, alpha_threshold).getbbox()
    if bbox is None:
        return None
    x0, y0, x1, y1 = bbox
    return Box(x0, y0, x1 - x0, y1 - y0)


def _scaled_bounding_box(
    img: Image.Image,
    white_threshold: int | None,
    alpha_threshold: int,
    max_pixels: int,
) -> Box | None:
    w, h = img.size
    f = math.sqrt(max_pixels / float(w * h))
    sw = max(1, int(w * f))
    sh = max(1, int(h * f))
    small = img.convert("RGBA").resize((sw, sh), resample=Image.Resampling.BOX)

    box = content_bounding_box(small, white_threshold, alpha_threshold)
    if box is None:
        return None

    fx = w / float(sw)
    fy = h / float(sh)
    x0 = max(0, int(math.floor(box.x * fx)))
    y0 = max(0, int(math.floor(box.y * fy)))
    x1 = min(w, int(math.ceil((box.x + box.width) * fx)))
    y1 = min(h, int(math.ceil((box.y + box.height) * fy)))
    return Box(x0, y0, max(1, x1 - x0), max(1, y1 - y0))


def crop_to_content(
    img: Image.Image,
    alpha_threshold: int = DEFAULT_ALPHA_THRESHOLD,
    white_threshold: int | None = None,
) -> Image.Image:
    """Crop to the content box; white margins count as empty when ``white_threshold`` is set."""
    box = content_bounding_box(img, white_threshold, alpha_threshold, max_pixels=MAX_SCAN_PIXELS)
    if box is None:
        return img
    if box.x == 0 and box.y == 0 and (box.width, box.height) == img.size:
        return img
    return img.crop(box.as_pil())


def content_area(img: Image.Image, white_threshold: int = DEFAULT_WHITE_THRESHOLD) -> int:
    box = content_bounding_box(img, white_threshold, max_pixels=MAX_SCAN_PIXELS)
    if box is None or box.area <= 0:
        return img.width * img.height
    return box.area


def median_area(areas: Sequence[float]) -> float:
    if not areas:
        return 0.0
    ordered = sorted(areas)
    return float(ordered[len(ordered) // 2])


def content_scale_factors(images: Sequence[Image.Image], white_threshold: int = DEFAULT_WHITE_THRESHOLD) -> List[float]:
    areas = [content_area(img, white_threshold) for img in images]
    med = median_area(areas)
    out: List[float] = []
    for a in areas:
        if a <= 0 or med <= 0:
            out.append(1.0)
        else:
            out.append(math.sqrt(med / float(a)))
    return out
