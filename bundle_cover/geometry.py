from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from PIL import ImageColor


Color = Tuple[int, int, int, int]

TRANSPARENT: Color = (0, 0, 0, 0)


@dataclass(frozen=True)
class CanvasSpec:
    width: int
    height: int

    @property
    def aspect(self) -> float:
        return self.width / self.height if self.height else 1.0


# output sizes for the supported aspect ratios
ASPECT_RATIOS: dict[str, CanvasSpec] = {
    "4:3": CanvasSpec(2667, 2000),
    "1:1": CanvasSpec(2048, 2048),
}

DEFAULT_ASPECT_RATIO = "4:3"


def canvas_for_aspect(aspect_ratio: str | None) -> CanvasSpec:
    if aspect_ratio is None:
        return ASPECT_RATIOS[DEFAULT_ASPECT_RATIO]
    return ASPECT_RATIOS.get(aspect_ratio.strip(), ASPECT_RATIOS[DEFAULT_ASPECT_RATIO])


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def area(self) -> float:
        return self.width * self.height

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.right and self.y <= py <= self.bottom


@dataclass(frozen=True)
class ImageFrame:
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)


def text_safe_rect(canvas_w: float, canvas_h: float, percent_of_height: float = 20.0) -> Rect:
    safe_h = canvas_h * (percent_of_height / 100.0)
    safe_w = canvas_w * 0.50
    return Rect((canvas_w - safe_w) / 2.0, (canvas_h - safe_h) / 2.0, safe_w, safe_h)


def rect_intersects(a: Rect, b: Rect) -> bool:
    # touching edges count, so a zero-size band on an item edge still selects it
    return not (
        a.right < b.x
        or b.right < a.x
        or a.bottom < b.y
        or b.bottom < a.y
    )


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(value, hi))


def normalize_degrees(deg: float) -> float:
    out = math.fmod(deg, 360.0)
    if out < 0:
        out += 360.0
    # fmod(-1e-17) + 360 rounds to 360.0
    return 0.0 if out >= 360.0 else out


def rotate_point(px: float, py: float, cx: float, cy: float, degrees: float) -> tuple[float, float]:
    """Rotate (px, py) about (cx, cy); positive degrees turn clockwise on a y-down canvas."""
    rad = math.radians(degrees)
    cos_a = math.cos(rad)
    sin_a = math.sin(rad)
    dx = px - cx
    dy = py - cy
    return (cx + dx * cos_a - dy * sin_a, cy + dx * sin_a + dy * cos_a)


def parse_color(value: str) -> Color:
    s = value.strip()
    if s.lower() == "transparent":
        return TRANSPARENT
    if len(s) in (6, 8) and not s.startswith("#") and all(c in "0123456789abcdefABCDEF" for c in s):
        s = "#" + s
    try:
        rgba = ImageColor.getcolor(s, "RGBA")
    except ValueError:
        raise ValueError(f"invalid color: {value!r}; use RRGGBB, #RRGGBB or a color name") from None
    return tuple(rgba)  # type: ignore[return-value]
