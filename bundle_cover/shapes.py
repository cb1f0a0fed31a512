from __future__ import annotations

from typing import Callable, Dict, Tuple

from PIL import ImageDraw

from .geometry import Color


RECTANGLE = "rectangle"
ROUNDED_RECT = "roundedRect"
PILL = "pill"

SHAPE_LABELS: Dict[str, str] = {
    RECTANGLE: "Rectangle",
    ROUNDED_RECT: "Rounded rectangle",
    PILL: "Pill",
}

Box = Tuple[float, float, float, float]


def _draw_rectangle(draw: ImageDraw.ImageDraw, box: Box, fill: Color) -> None:
    draw.rectangle(box, fill=fill)


def _draw_rounded(draw: ImageDraw.ImageDraw, box: Box, fill: Color) -> None:
    w = box[2] - box[0]
    h = box[3] - box[1]
    draw.rounded_rectangle(box, radius=min(w, h) * 0.12, fill=fill)


def _draw_pill(draw: ImageDraw.ImageDraw, box: Box, fill: Color) -> None:
    w = box[2] - box[0]
    h = box[3] - box[1]
    draw.rounded_rectangle(box, radius=min(w, h) / 2.0, fill=fill)


_DRAW: Dict[str, Callable[[ImageDraw.ImageDraw, Box, Color], None]] = {
    RECTANGLE: _draw_rectangle,
    ROUNDED_RECT: _draw_rounded,
    PILL: _draw_pill,
}


def draw_center_shape(draw: ImageDraw.ImageDraw, shape_id: str, box: Box, fill: Color) -> None:
    if box[2] <= box[0] or box[3] <= box[1]:
        return
    _DRAW.get(shape_id, _draw_rectangle)(draw, box, fill)
