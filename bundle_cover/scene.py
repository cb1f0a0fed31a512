from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, Sequence, Tuple, Union

from .geometry import CanvasSpec, ImageFrame, Rect, clamp, normalize_degrees


MIN_SIZE_PCT = 5.0
MAX_SIZE_PCT = 50.0

OVERLAY_DEFAULT_WIDTH_PCT = 20.0


@dataclass(frozen=True)
class ImagePosition:
    """Manual placement of one bundle image, in percent of the canvas.

    ``x``/``y`` are the item center; ``width`` is a share of the canvas
    width and ``height`` a share of the canvas height.
    """

    file_id: str
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0
    mirror_h: bool = False
    mirror_v: bool = False
    source_id: str = ""

    def __post_init__(self) -> None:
        if not self.source_id:
            object.__setattr__(self, "source_id", self.file_id)

    @property
    def id(self) -> str:
        return self.file_id


@dataclass(frozen=True)
class OverlayImage:
    id: str
    source_id: str
    x: float = 50.0
    y: float = 50.0
    width: float = OVERLAY_DEFAULT_WIDTH_PCT
    height: float = OVERLAY_DEFAULT_WIDTH_PCT
    rotation: float = 0.0
    mirror_h: bool = False
    mirror_v: bool = False
    aspect_ratio: float = 1.0


SceneItem = Union[ImagePosition, OverlayImage]


def clamp_size(value: float) -> float:
    return clamp(value, MIN_SIZE_PCT, MAX_SIZE_PCT)


def clamp_pos(value: float) -> float:
    return clamp(value, 0.0, 100.0)


def item_rect(item: SceneItem, view_w: float, view_h: float) -> Rect:
    """Axis-aligned, unrotated box of an item in view pixels."""
    w = item.width / 100.0 * view_w
    h = item.height / 100.0 * view_h
    cx = item.x / 100.0 * view_w
    cy = item.y / 100.0 * view_h
    return Rect(cx - w / 2.0, cy - h / 2.0, w, h)


def positions_from_frames(ids: Sequence[str], frames: Sequence[ImageFrame], canvas: CanvasSpec) -> Tuple[ImagePosition, ...]:
    out = []
    for file_id, f in zip(ids, frames):
        cx, cy = f.rect.center
        out.append(
            ImagePosition(
                file_id=file_id,
                x=clamp_pos(cx / canvas.width * 100.0),
                y=clamp_pos(cy / canvas.height * 100.0),
                width=clamp_size(f.width / canvas.width * 100.0),
                height=clamp_size(f.height / canvas.height * 100.0),
                rotation=normalize_degrees(f.rotation),
            )
        )
    return tuple(out)


def new_overlay(overlay_id: str, source_id: str, natural_w: int, natural_h: int, canvas: CanvasSpec) -> OverlayImage:
    aspect = natural_w / float(natural_h) if natural_w > 0 and natural_h > 0 else 1.0
    width = OVERLAY_DEFAULT_WIDTH_PCT
    # same pixel aspect as the source on this canvas
    height = width * canvas.width / (aspect * canvas.height)
    return OverlayImage(
        id=overlay_id,
        source_id=source_id,
        width=width,
        height=clamp_size(height),
        aspect_ratio=aspect,
    )


@dataclass(frozen=True)
class Scene:
    """Immutable scene value; every edit produces a new instance."""

    images: Tuple[ImagePosition, ...] = ()
    overlays: Tuple[OverlayImage, ...] = ()
    selection: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def ids(self) -> Tuple[str, ...]:
        return tuple(p.file_id for p in self.images) + tuple(o.id for o in self.overlays)

    def item(self, item_id: str) -> SceneItem | None:
        for p in self.images:
            if p.file_id == item_id:
                return p
        for o in self.overlays:
            if o.id == item_id:
                return o
        return None

    def stacking_order(self) -> Tuple[SceneItem, ...]:
        """Back to front: images first, overlays above them."""
        return tuple(self.images) + tuple(self.overlays)

    def with_selection(self, ids: Iterable[str]) -> "Scene":
        known = set(self.ids)
        return replace(self, selection=frozenset(i for i in ids if i in known))

    def with_updates(self, updates: Dict[str, dict]) -> "Scene":
        if not updates:
            return self
        images = tuple(replace(p, **updates[p.file_id]) if p.file_id in updates else p for p in self.images)
        overlays = tuple(replace(o, **updates[o.id]) if o.id in updates else o for o in self.overlays)
        return replace(self, images=images, overlays=overlays)

    def without(self, ids: Iterable[str]) -> "Scene":
        drop = set(ids)
        return Scene(
            images=tuple(p for p in self.images if p.file_id not in drop),
            overlays=tuple(o for o in self.overlays if o.id not in drop),
            selection=frozenset(i for i in self.selection if i not in drop),
        )

    def referenced_sources(self) -> FrozenSet[str]:
        return frozenset(p.source_id for p in self.images) | frozenset(o.source_id for o in self.overlays)
