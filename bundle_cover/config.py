from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict

from .geometry import ASPECT_RATIOS, CanvasSpec, Rect, canvas_for_aspect, text_safe_rect
from .layouts import DIVIDED_GRID, GRID, LAYOUT_KINDS
from .shapes import ROUNDED_RECT, SHAPE_LABELS
from .text_layout import CenterTextOptions, CenterTransform


BACKGROUND_MODES = ("transparent", "color", "backgroundImage")
CENTER_MODES = ("image", "text")
EXPORT_FORMATS = ("png", "webp")


@dataclass
class BundleConfig:
    name: str = ""
    aspect_ratio: str = "1:1"
    layout_style: str = DIVIDED_GRID
    background_mode: str = "transparent"
    background_color: str = "#ffffff"
    text_safe_area_percent: float = 20.0
    images_per_row: int | None = None
    image_spacing_percent: float = 5.0

    center_mode: str = "text"
    center_shape: str = ROUNDED_RECT
    center_scale: float = 1.0
    center_height_scale: float = 1.0
    center_scale_locked: bool = True
    center_rotation: float = 0.0
    center_x_offset: float = 0.0
    center_y_offset: float = 0.0

    title_text: str = "Clipart Bundle"
    subtitle_text: str = "20 PNGs | Transparent | Commercial Use | 300 DPI"
    title_font: str = "Open Sans"
    subtitle_font: str = "Open Sans"
    title_bold: bool = False
    subtitle_bold: bool = False
    title_font_size: int = 48
    subtitle_font_size: int = 28
    title_font_size_auto: bool = False
    subtitle_font_size_auto: bool = False
    shape_color: str = "#fef3c7"
    title_color: str = "#1f2937"
    subtitle_color: str = "#4b5563"
    wrap_text: bool = True

    def __post_init__(self) -> None:
        if self.aspect_ratio not in ASPECT_RATIOS:
            raise ValueError(f"unknown aspect ratio {self.aspect_ratio!r}; use one of {', '.join(ASPECT_RATIOS)}")
        if self.layout_style not in LAYOUT_KINDS:
            raise ValueError(f"unknown layout {self.layout_style!r}; use one of {', '.join(LAYOUT_KINDS)}")
        if self.background_mode not in BACKGROUND_MODES:
            raise ValueError(f"unknown background mode {self.background_mode!r}")
        if self.center_mode not in CENTER_MODES:
            raise ValueError(f"unknown center mode {self.center_mode!r}")
        if self.center_shape not in SHAPE_LABELS:
            raise ValueError(f"unknown center shape {self.center_shape!r}")
        if self.images_per_row is not None and self.images_per_row <= 0:
            self.images_per_row = None

    @property
    def canvas(self) -> CanvasSpec:
        return canvas_for_aspect(self.aspect_ratio)

    def text_safe(self, canvas: CanvasSpec | None = None) -> Rect:
        c = canvas or self.canvas
        return text_safe_rect(c.width, c.height, self.text_safe_area_percent)

    @property
    def allows_center(self) -> bool:
        return self.layout_style != GRID

    @property
    def center_transform(self) -> CenterTransform:
        return CenterTransform(
            width_scale=self.center_scale,
            height_scale=self.center_scale if self.center_scale_locked else self.center_height_scale,
            rotation=self.center_rotation,
            offset_x=self.center_x_offset,
            offset_y=self.center_y_offset,
        )

    @property
    def text_options(self) -> CenterTextOptions:
        return CenterTextOptions(
            title=self.title_text,
            subtitle=self.subtitle_text,
            title_font=self.title_font,
            subtitle_font=self.subtitle_font,
            title_bold=self.title_bold,
            subtitle_bold=self.subtitle_bold,
            title_size=self.title_font_size,
            subtitle_size=self.subtitle_font_size,
            title_auto=self.title_font_size_auto,
            subtitle_auto=self.subtitle_font_size_auto,
            wrap=self.wrap_text,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BundleConfig":
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            k = _snake(key)
            if k in known:
                values[k] = value
        # presets written before independent height scaling reuse the width scale
        if "center_scale" in values and "center_height_scale" not in values:
            values["center_height_scale"] = values["center_scale"]
        return cls(**values)

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "BundleConfig":
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("preset JSON must be an object")
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Path) -> "BundleConfig":
        return cls.from_json(Path(path).read_text(encoding="utf-8"))

    def save(self, path: Path) -> None:
        Path(path).write_text(self.to_json(), encoding="utf-8")


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()
