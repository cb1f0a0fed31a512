from __future__ import annotations

import math
from typing import List, Tuple

from .geometry import ImageFrame, Rect, clamp


GRID = "grid"
DIVIDED_GRID = "dividedGrid"
DIVIDED_GRID_ANGLED = "dividedGrid2"
CUSTOM = "custom"

LAYOUT_KINDS = (GRID, DIVIDED_GRID, DIVIDED_GRID_ANGLED, CUSTOM)

LAYOUT_LABELS: dict[str, str] = {
    GRID: "Grid",
    DIVIDED_GRID: "Divided Grid",
    DIVIDED_GRID_ANGLED: "Divided Grid 2",
    CUSTOM: "Custom",
}

MAX_ANGLE_DEG = 6.0
# smallest share of MAX_ANGLE_DEG any angled frame gets, so none ends up straight
MIN_ANGLE_SHARE = 1.0 / 3.0


def grid_shape(count: int, canvas_w: float, canvas_h: float, images_per_row: int | None = None) -> Tuple[int, int]:
    if count <= 0:
        return (0, 0)

    if images_per_row is not None and images_per_row > 0:
        cols = max(1, min(int(images_per_row), count))
        return cols, int(math.ceil(count / float(cols)))

    aspect = canvas_w / canvas_h if canvas_h else 1.0
    cols = max(1, int(math.ceil(math.sqrt(count * aspect))))
    cols = min(cols, count)
    rows = int(math.ceil(count / float(cols)))

    # drop rows that would stay completely empty
    while cols * rows - count >= cols and rows > 1:
        rows -= 1
    return cols, rows


def compute_layout_plain_grid(
    canvas_w: float,
    canvas_h: float,
    count: int,
    images_per_row: int | None = None,
    spacing_percent: float | None = None,
) -> List[ImageFrame]:
    if count <= 0:
        return []

    cols, rows = grid_shape(count, canvas_w, canvas_h, images_per_row)

    s = max(0.0, float(spacing_percent or 0.0)) / 100.0
    gap = 0.0
    if s > 0:
        provisional_w = canvas_w / (cols + (cols - 1) * s)
        provisional_h = canvas_h / (rows + (rows - 1) * s)
        gap = s * min(provisional_w, provisional_h)

    cell_w = (canvas_w - (cols - 1) * gap) / cols
    cell_h = (canvas_h - (rows - 1) * gap) / rows

    frames: List[ImageFrame] = []
    for i in range(count):
        row = i // cols
        col = i % cols
        x = col * (cell_w + gap)
        y = row * (cell_h + gap)
        frames.append(
            ImageFrame(
                x=clamp(x, 0.0, canvas_w - cell_w),
                y=clamp(y, 0.0, canvas_h - cell_h),
                width=cell_w,
                height=cell_h,
                rotation=0.0,
            )
        )
    return frames


def _section_frames(
    count: int,
    cols: int,
    cell_w: float,
    gap: float,
    margin: float,
    inner_w: float,
    canvas_w: float,
    y_start: float,
    available_h: float,
    y_min: float,
    y_max: float,
    fill_from_bottom: bool,
) -> List[ImageFrame]:
    if count <= 0:
        return []

    cols = max(1, cols)
    rows = int(math.ceil(count / float(cols)))
    cell_h = max(1.0, (available_h - gap * max(0, rows - 1)) / max(1, rows))

    row_counts = [min(cols, max(0, count - r * cols)) for r in range(rows)]

    out: List[ImageFrame] = []
    for i in range(count):
        base_row = i // cols
        col = i % cols
        visual_row = (rows - 1 - base_row) if fill_from_bottom else base_row

        # partial rows are centered on their own width
        in_row = row_counts[base_row]
        row_w = in_row * cell_w + gap * max(0, in_row - 1)
        start_x = margin + (inner_w - row_w) / 2.0

        x = start_x + col * (cell_w + gap)
        y = y_start + visual_row * (cell_h + gap)

        x = clamp(x, margin, canvas_w - margin - cell_w)
        y = clamp(y, y_min, y_max - cell_h)
        out.append(ImageFrame(x=x, y=y, width=cell_w, height=cell_h, rotation=0.0))
    return out


def compute_layout_divided_grid(
    canvas_w: float,
    canvas_h: float,
    count: int,
    safe: Rect,
    images_per_row: int | None = None,
) -> List[ImageFrame]:
    if count <= 0:
        return []

    short_side = min(canvas_w, canvas_h)
    margin = short_side * 0.02
    gap = short_side * 0.03
    inner_w = canvas_w - margin * 2

    above = int(math.ceil(count / 2.0))
    below = count // 2

    if images_per_row is not None and images_per_row > 0:
        cols = min(int(images_per_row), count)
    else:
        cols = max(1, int(math.ceil(math.sqrt(count))))

    cell_w = max(1.0, (inner_w - gap * (cols - 1)) / cols)

    frames = _section_frames(
        count=above,
        cols=min(cols, above),
        cell_w=cell_w,
        gap=gap,
        margin=margin,
        inner_w=inner_w,
        canvas_w=canvas_w,
        y_start=margin,
        available_h=safe.y - margin,
        y_min=margin,
        y_max=safe.y - gap,
        fill_from_bottom=False,
    )

    below_start = safe.bottom + gap
    frames += _section_frames(
        count=below,
        cols=min(cols, below),
        cell_w=cell_w,
        gap=gap,
        margin=margin,
        inner_w=inner_w,
        canvas_w=canvas_w,
        y_start=below_start,
        available_h=canvas_h - safe.bottom - margin,
        y_min=below_start,
        y_max=canvas_h - margin,
        fill_from_bottom=True,
    )

    # degenerate text-safe sizes can push a section off the canvas
    return [_keep_inside(f, canvas_w, canvas_h) for f in frames]


def _keep_inside(frame: ImageFrame, canvas_w: float, canvas_h: float) -> ImageFrame:
    w = min(frame.width, canvas_w)
    h = min(frame.height, canvas_h)
    return ImageFrame(
        x=clamp(frame.x, 0.0, canvas_w - w),
        y=clamp(frame.y, 0.0, canvas_h - h),
        width=w,
        height=h,
        rotation=frame.rotation,
    )


def angle_sign(index: int, count: int) -> float:
    """Alternating lean that starts negative and ends positive.

    Signs alternate outward from both ends; with an odd count the two
    halves meet at the middle frame, where one neighbouring pair shares
    a sign.
    """
    if index <= (count - 1) / 2.0:
        return -1.0 if index % 2 == 0 else 1.0
    return 1.0 if (count - 1 - index) % 2 == 0 else -1.0


def apply_angled_variation(frames: List[ImageFrame], max_rotation_deg: float = MAX_ANGLE_DEG) -> List[ImageFrame]:
    """Tilt frames from about -max at the start to +max at the end."""
    if not frames:
        return []

    n = len(frames)
    out: List[ImageFrame] = []
    for i, f in enumerate(frames):
        t = 0.0 if n <= 1 else (i / float(n - 1)) * 2.0 - 1.0
        share = max(abs(t), MIN_ANGLE_SHARE)
        sign = angle_sign(i, n)
        out.append(
            ImageFrame(
                x=f.x,
                y=f.y,
                width=f.width,
                height=f.height,
                rotation=sign * share * max_rotation_deg,
            )
        )
    return out


def compute_frames(
    layout_kind: str,
    canvas_w: float,
    canvas_h: float,
    image_count: int,
    safe: Rect,
    images_per_row: int | None = None,
    spacing_percent: float | None = None,
) -> List[ImageFrame]:
    if image_count <= 0:
        return []

    if layout_kind == GRID:
        return compute_layout_plain_grid(canvas_w, canvas_h, image_count, images_per_row, spacing_percent)
    if layout_kind == DIVIDED_GRID_ANGLED:
        base = compute_layout_divided_grid(canvas_w, canvas_h, image_count, safe, images_per_row)
        return apply_angled_variation(base)
    # custom layouts are seeded from the divided grid
    return compute_layout_divided_grid(canvas_w, canvas_h, image_count, safe, images_per_row)
