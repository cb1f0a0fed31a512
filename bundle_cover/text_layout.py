from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Tuple

from .geometry import Rect


FONT_SIZE_MIN = 12
FONT_SIZE_MAX = 120
AUTO_FIT_STEP = 2

WIDTH_FILL = 0.85
HEIGHT_FILL = 0.90
LINE_HEIGHT = 1.2
# title/subtitle centers sit this share of (title size + subtitle size) off the shape center
STACK_OFFSET = 0.35
MIN_BLOCK_SPACING_PX = 4.0
MIN_BLOCK_SPACING_RATIO = 0.25

TITLE_WEIGHT = 600
SUBTITLE_WEIGHT = 400
BOLD_WEIGHT = 700

# (text, family, weight, size) -> rendered width in pixels
Measurer = Callable[[str, str, int, int], float]


@dataclass(frozen=True)
class TextLine:
    text: str
    x: float
    y: float
    family: str
    weight: int
    size: int


@dataclass(frozen=True)
class TextBlock:
    lines: Tuple[TextLine, ...] = ()

    @property
    def size(self) -> int:
        return self.lines[0].size if self.lines else 0

    @property
    def top(self) -> float:
        if not self.lines:
            return 0.0
        return self.lines[0].y - self.size * LINE_HEIGHT / 2.0

    @property
    def bottom(self) -> float:
        if not self.lines:
            return 0.0
        return self.lines[-1].y + self.size * LINE_HEIGHT / 2.0


@dataclass(frozen=True)
class CenterTransform:
    width_scale: float = 1.0
    height_scale: float = 1.0
    rotation: float = 0.0
    # percent of canvas width / height
    offset_x: float = 0.0
    offset_y: float = 0.0


@dataclass(frozen=True)
class CenterTextOptions:
    title: str = ""
    subtitle: str = ""
    title_font: str = "Open Sans"
    subtitle_font: str = "Open Sans"
    title_bold: bool = False
    subtitle_bold: bool = False
    title_size: int = 48
    subtitle_size: int = 28
    title_auto: bool = False
    subtitle_auto: bool = False
    wrap: bool = True

    @property
    def title_weight(self) -> int:
        return BOLD_WEIGHT if self.title_bold else TITLE_WEIGHT

    @property
    def subtitle_weight(self) -> int:
        return BOLD_WEIGHT if self.subtitle_bold else SUBTITLE_WEIGHT


@dataclass(frozen=True)
class CenterTextLayout:
    shape_rect: Rect
    title: TextBlock = field(default_factory=TextBlock)
    subtitle: TextBlock = field(default_factory=TextBlock)


def clamp_size(n: float) -> int:
    return int(min(FONT_SIZE_MAX, max(FONT_SIZE_MIN, round(n))))


def center_shape_rect(canvas_w: float, canvas_h: float, safe: Rect, transform: CenterTransform) -> Rect:
    w = safe.width * transform.width_scale
    h = safe.height * transform.height_scale
    x = (canvas_w - w) / 2.0 + canvas_w * transform.offset_x / 100.0
    y = (canvas_h - h) / 2.0 + canvas_h * transform.offset_y / 100.0
    return Rect(x, y, w, h)


def wrap_lines(text: str, max_width: float, measure: Measurer, family: str, weight: int, size: int) -> List[str]:
    words = text.split()
    lines: List[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        # an over-long single word still gets its own line
        if not current or measure(candidate, family, weight, size) <= max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def auto_font_size(
    text: str,
    family: str,
    weight: int,
    wrap: bool,
    max_width: float,
    max_height: float,
    measure: Measurer,
) -> int:
    size = FONT_SIZE_MAX
    while size > FONT_SIZE_MIN:
        if not wrap:
            if measure(text, family, weight, size) <= max_width:
                break
        else:
            lines = wrap_lines(text, max_width, measure, family, weight, size)
            too_wide = any(measure(line, family, weight, size) > max_width for line in lines)
            if not too_wide and len(lines) * size * LINE_HEIGHT <= max_height:
                break
        size -= AUTO_FIT_STEP
    return clamp_size(size)


def _block(
    text: str,
    center_y: float,
    center_x: float,
    family: str,
    weight: int,
    size: int,
    wrap: bool,
    max_width: float,
    measure: Measurer,
) -> TextBlock:
    if not text:
        return TextBlock()
    lines = wrap_lines(text, max_width, measure, family, weight, size) if wrap else [text]
    lh = size * LINE_HEIGHT
    start = center_y - (len(lines) * lh - lh) / 2.0
    return TextBlock(
        tuple(
            TextLine(text=line, x=center_x, y=start + i * lh, family=family, weight=weight, size=size)
            for i, line in enumerate(lines)
        )
    )


def _block_height(text: str, family: str, weight: int, size: int, wrap: bool, max_width: float, measure: Measurer) -> float:
    if not text:
        return 0.0
    n = len(wrap_lines(text, max_width, measure, family, weight, size)) if wrap else 1
    return n * size * LINE_HEIGHT


def layout_center_text(
    canvas_w: float,
    canvas_h: float,
    safe: Rect,
    transform: CenterTransform,
    opts: CenterTextOptions,
    measure: Measurer,
) -> CenterTextLayout:
    """Place title and subtitle lines inside the center shape.

    Line coordinates are absolute canvas pixels of each line's center, so a
    renderer draws with a middle/middle anchor.
    """
    shape = center_shape_rect(canvas_w, canvas_h, safe, transform)
    max_w = shape.width * WIDTH_FILL
    max_h = shape.height * HEIGHT_FILL

    title = opts.title.strip()
    subtitle = opts.subtitle.strip()

    if opts.title_auto and title:
        t_size = auto_font_size(title, opts.title_font, opts.title_weight, opts.wrap, max_w, max_h, measure)
    else:
        t_size = clamp_size(opts.title_size)
    if opts.subtitle_auto and subtitle:
        s_size = auto_font_size(subtitle, opts.subtitle_font, opts.subtitle_weight, opts.wrap, max_w, max_h, measure)
    else:
        s_size = clamp_size(opts.subtitle_size)

    cx, cy = shape.center
    title_cy = cy
    sub_cy = cy
    if title and subtitle:
        title_cy = cy - (t_size + s_size) * STACK_OFFSET
        sub_cy = cy + (t_size + s_size) * STACK_OFFSET

        title_h = _block_height(title, opts.title_font, opts.title_weight, t_size, opts.wrap, max_w, measure)
        sub_h = _block_height(subtitle, opts.subtitle_font, opts.subtitle_weight, s_size, opts.wrap, max_w, measure)
        min_gap = max(MIN_BLOCK_SPACING_PX, s_size * MIN_BLOCK_SPACING_RATIO)
        deficit = (title_cy + title_h / 2.0 + min_gap) - (sub_cy - sub_h / 2.0)
        if deficit > 0:
            # push the subtitle clear of the title, then re-center the pair
            sub_cy += deficit / 2.0
            title_cy -= deficit / 2.0

    return CenterTextLayout(
        shape_rect=shape,
        title=_block(title, title_cy, cx, opts.title_font, opts.title_weight, t_size, opts.wrap, max_w, measure),
        subtitle=_block(subtitle, sub_cy, cx, opts.subtitle_font, opts.subtitle_weight, s_size, opts.wrap, max_w, measure),
    )
