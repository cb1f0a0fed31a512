from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, replace
from typing import Callable, Dict, FrozenSet, List, Sequence, Tuple

from .geometry import Rect, normalize_degrees, rect_intersects, rotate_point
from .scene import (
    MAX_SIZE_PCT,
    MIN_SIZE_PCT,
    OverlayImage,
    Scene,
    SceneItem,
    clamp_pos,
    clamp_size,
    item_rect,
)


IDLE = "idle"
DRAGGING = "dragging"
RESIZING = "resizing"
ROTATING = "rotating"
SELECTING = "selecting"

CORNER_HANDLES = ("nw", "ne", "sw", "se")
EDGE_HANDLES = ("n", "s", "e", "w")
ROTATE_HANDLE = "rotate"

HIT_HANDLE = "handle"
HIT_BODY = "body"
HIT_EMPTY = "empty"

DRAG_THRESHOLD_PX = 2.0
HANDLE_RADIUS_PX = 8.0
ROTATE_HANDLE_OFFSET_PX = 24.0

NUDGE_PCT = 0.5
NUDGE_LARGE_PCT = 2.0
DUPLICATE_OFFSET_PCT = 2.0

_KEY_DIRECTIONS: Dict[str, Tuple[float, float]] = {
    "Up": (0.0, -1.0),
    "Down": (0.0, 1.0),
    "Left": (-1.0, 0.0),
    "Right": (1.0, 0.0),
    "ArrowUp": (0.0, -1.0),
    "ArrowDown": (0.0, 1.0),
    "ArrowLeft": (-1.0, 0.0),
    "ArrowRight": (1.0, 0.0),
}

Listener = Callable[[Scene], None]


@dataclass(frozen=True)
class Geometry:
    id: str
    x: float
    y: float
    width: float
    height: float
    rotation: float

    @classmethod
    def of(cls, item: SceneItem) -> "Geometry":
        return cls(item.id, item.x, item.y, item.width, item.height, item.rotation)


@dataclass(frozen=True)
class Hit:
    kind: str
    item_id: str | None = None
    handle: str | None = None


@dataclass(frozen=True)
class GestureSnapshot:
    kind: str
    start_x: float
    start_y: float
    handle: str | None = None
    pivot: Geometry | None = None
    items: Tuple[Geometry, ...] = ()
    base_selection: FrozenSet[str] = frozenset()
    additive: bool = False
    # a plain click on a member of a multi-selection narrows it on release
    collapse_to: str | None = None
    has_moved: bool = False
    band: Rect | None = None


class SelectionEngine:
    """Pointer/keyboard state machine that edits a :class:`Scene`.

    Coordinates handed to the pointer methods are view pixels inside a view
    of ``view_size``; the scene itself stores percentages, so the same
    scene can be shown at any preview size.  All geometry changes made by a
    gesture are computed from the snapshot captured on pointer-down and
    committed as one new scene per event.
    """

    def __init__(self, scene: Scene | None = None, view_size: Tuple[float, float] = (100.0, 100.0)) -> None:
        self._scene = scene or Scene()
        self._view_w = float(view_size[0])
        self._view_h = float(view_size[1])
        self._gesture: GestureSnapshot | None = None
        self._listeners: List[Listener] = []
        self._copy_counter = itertools.count(1)

    # -- state ---------------------------------------------------------

    @property
    def scene(self) -> Scene:
        return self._scene

    @property
    def state(self) -> str:
        return self._gesture.kind if self._gesture is not None else IDLE

    @property
    def gesture(self) -> GestureSnapshot | None:
        return self._gesture

    @property
    def band(self) -> Rect | None:
        return self._gesture.band if self._gesture is not None else None

    @property
    def selection(self) -> FrozenSet[str]:
        return self._scene.selection

    def set_view_size(self, width: float, height: float) -> None:
        self._view_w = max(1.0, float(width))
        self._view_h = max(1.0, float(height))

    def set_scene(self, scene: Scene) -> None:
        self._gesture = None
        self._commit(scene)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, scene: Scene) -> None:
        if scene is self._scene:
            return
        self._scene = scene
        for listener in list(self._listeners):
            listener(scene)

    # -- hit testing ---------------------------------------------------

    def handle_points(self, item: SceneItem) -> Dict[str, Tuple[float, float]]:
        r = item_rect(item, self._view_w, self._view_h)
        cx, cy = r.center
        local = {
            "nw": (r.x, r.y),
            "ne": (r.right, r.y),
            "sw": (r.x, r.bottom),
            "se": (r.right, r.bottom),
            "n": (cx, r.y),
            "s": (cx, r.bottom),
            "e": (r.right, cy),
            "w": (r.x, cy),
            ROTATE_HANDLE: (cx, r.y - ROTATE_HANDLE_OFFSET_PX),
        }
        return {k: rotate_point(px, py, cx, cy, item.rotation) for k, (px, py) in local.items()}

    def _body_contains(self, item: SceneItem, x: float, y: float) -> bool:
        r = item_rect(item, self._view_w, self._view_h)
        cx, cy = r.center
        lx, ly = rotate_point(x, y, cx, cy, -item.rotation)
        return r.contains(lx, ly)

    def hit_test(self, x: float, y: float) -> Hit:
        """Handles of selected items win over bodies; front-most first."""
        front_to_back = tuple(reversed(self._scene.stacking_order()))
        selection = self._scene.selection

        for item in front_to_back:
            if item.id not in selection:
                continue
            for name, (hx, hy) in self.handle_points(item).items():
                if math.hypot(x - hx, y - hy) <= HANDLE_RADIUS_PX:
                    return Hit(HIT_HANDLE, item.id, name)

        for item in front_to_back:
            if self._body_contains(item, x, y):
                return Hit(HIT_BODY, item.id)

        return Hit(HIT_EMPTY)

    # -- pointer gestures ---------------------------------------------

    def pointer_down(self, x: float, y: float, additive: bool = False) -> Hit:
        self._gesture = None
        hit = self.hit_test(x, y)
        scene = self._scene

        if hit.kind == HIT_HANDLE and hit.item_id is not None:
            kind = ROTATING if hit.handle == ROTATE_HANDLE else RESIZING
            # the handle's item joins the operation without joining the selection
            operative = set(scene.selection) | {hit.item_id}
            self._gesture = self._snapshot(kind, x, y, hit.item_id, operative, handle=hit.handle)
            return hit

        if hit.kind == HIT_BODY and hit.item_id is not None:
            item_id = hit.item_id
            selection = set(scene.selection)
            collapse_to = None
            if additive:
                selection ^= {item_id}
            elif item_id not in selection:
                selection = {item_id}
            elif len(selection) > 1:
                collapse_to = item_id
            self._commit(scene.with_selection(selection))

            if item_id not in selection:
                return hit
            self._gesture = replace(
                self._snapshot(DRAGGING, x, y, item_id, selection),
                collapse_to=collapse_to,
            )
            return hit

        base = scene.selection if additive else frozenset()
        if not additive:
            self._commit(scene.with_selection(()))
        self._gesture = GestureSnapshot(
            kind=SELECTING,
            start_x=x,
            start_y=y,
            base_selection=base,
            additive=additive,
            band=Rect(x, y, 0.0, 0.0),
        )
        return hit

    def _snapshot(self, kind: str, x: float, y: float, pivot_id: str, operative: set, handle: str | None = None) -> GestureSnapshot:
        scene = self._scene
        pivot = scene.item(pivot_id)
        items = tuple(Geometry.of(it) for it in scene.stacking_order() if it.id in operative)
        return GestureSnapshot(
            kind=kind,
            start_x=x,
            start_y=y,
            handle=handle,
            pivot=Geometry.of(pivot) if pivot is not None else None,
            items=items,
        )

    def pointer_move(self, x: float, y: float) -> None:
        g = self._gesture
        if g is None:
            return

        dx = x - g.start_x
        dy = y - g.start_y
        if not g.has_moved and (abs(dx) > DRAG_THRESHOLD_PX or abs(dy) > DRAG_THRESHOLD_PX):
            g = replace(g, has_moved=True)

        if g.kind == SELECTING:
            band = Rect(min(g.start_x, x), min(g.start_y, y), abs(dx), abs(dy))
            self._gesture = replace(g, band=band)
            self._commit(self._scene.with_selection(self._band_selection(band, g)))
            return

        self._gesture = g
        if g.kind == DRAGGING:
            updates = self._drag_updates(g, dx, dy)
        elif g.kind == RESIZING:
            updates = self._resize_updates(g, x, y)
        elif g.kind == ROTATING:
            updates = self._rotate_updates(g, x, y)
        else:
            updates = {}
        self._commit(self._scene.with_updates(updates))

    def pointer_up(self, x: float | None = None, y: float | None = None) -> bool:
        """End the gesture; True when it moved far enough to count as a drag."""
        if x is not None and y is not None:
            self.pointer_move(x, y)
        g = self._gesture
        self._gesture = None
        if g is None:
            return False
        if g.kind == DRAGGING and not g.has_moved and g.collapse_to is not None:
            self._commit(self._scene.with_selection((g.collapse_to,)))
        return g.has_moved

    def cancel(self) -> None:
        """Abort the gesture, putting every operative item back where it started."""
        g = self._gesture
        self._gesture = None
        if g is None:
            return
        if g.kind == SELECTING:
            self._commit(self._scene.with_selection(g.base_selection))
            return
        restore = {
            geo.id: {"x": geo.x, "y": geo.y, "width": geo.width, "height": geo.height, "rotation": geo.rotation}
            for geo in g.items
        }
        self._commit(self._scene.with_updates(restore))

    def _band_selection(self, band: Rect, g: GestureSnapshot) -> FrozenSet[str]:
        hits = {
            it.id
            for it in self._scene.stacking_order()
            if rect_intersects(band, item_rect(it, self._view_w, self._view_h))
        }
        if g.additive:
            return frozenset(g.base_selection | hits)
        return frozenset(hits)

    def _drag_updates(self, g: GestureSnapshot, dx: float, dy: float) -> Dict[str, dict]:
        dx_pct = dx / self._view_w * 100.0
        dy_pct = dy / self._view_h * 100.0
        return {it.id: {"x": clamp_pos(it.x + dx_pct), "y": clamp_pos(it.y + dy_pct)} for it in g.items}

    def _resize_updates(self, g: GestureSnapshot, x: float, y: float) -> Dict[str, dict]:
        if g.pivot is None or g.handle is None:
            return {}
        cx = g.pivot.x / 100.0 * self._view_w
        cy = g.pivot.y / 100.0 * self._view_h

        d0x = abs(g.start_x - cx)
        d0y = abs(g.start_y - cy)
        d1x = abs(x - cx)
        d1y = abs(y - cy)

        updates: Dict[str, dict] = {}
        if g.handle in CORNER_HANDLES:
            d0 = max(d0x, d0y)
            scale = max(d1x, d1y) / d0 if d0 > 0 else 1.0
            for it in g.items:
                s = _bounded_uniform_scale(scale, it.width, it.height)
                updates[it.id] = {"width": it.width * s, "height": it.height * s}
            return updates

        sx = d1x / d0x if g.handle in ("e", "w") and d0x > 0 else 1.0
        sy = d1y / d0y if g.handle in ("n", "s") and d0y > 0 else 1.0
        for it in g.items:
            if g.handle in ("e", "w"):
                updates[it.id] = {"width": clamp_size(it.width * sx)}
            else:
                updates[it.id] = {"height": clamp_size(it.height * sy)}
        return updates

    def _rotate_updates(self, g: GestureSnapshot, x: float, y: float) -> Dict[str, dict]:
        if g.pivot is None:
            return {}
        cx = g.pivot.x / 100.0 * self._view_w
        cy = g.pivot.y / 100.0 * self._view_h
        a0 = math.atan2(g.start_y - cy, g.start_x - cx)
        a1 = math.atan2(y - cy, x - cx)
        delta = math.degrees(a1 - a0)
        return {it.id: {"rotation": normalize_degrees(it.rotation + delta)} for it in g.items}

    # -- selection & keyboard -----------------------------------------

    def select(self, ids: Sequence[str], additive: bool = False) -> None:
        chosen = set(ids)
        if additive:
            chosen |= self._scene.selection
        self._commit(self._scene.with_selection(chosen))

    def clear_selection(self) -> None:
        self._commit(self._scene.with_selection(()))

    def nudge(self, dx_pct: float, dy_pct: float) -> None:
        sel = self._scene.selection
        updates = {
            it.id: {"x": clamp_pos(it.x + dx_pct), "y": clamp_pos(it.y + dy_pct)}
            for it in self._scene.stacking_order()
            if it.id in sel
        }
        self._commit(self._scene.with_updates(updates))

    def key(self, name: str, shift: bool = False) -> bool:
        """Apply a key press; returns False when the key is not an editing key."""
        if name == "Escape":
            if self._gesture is not None:
                self.cancel()
            else:
                self.clear_selection()
            return True
        if name in ("Delete", "BackSpace"):
            return bool(self.delete())
        direction = _KEY_DIRECTIONS.get(name)
        if direction is None or not self._scene.selection:
            return False
        step = NUDGE_LARGE_PCT if shift else NUDGE_PCT
        self.nudge(direction[0] * step, direction[1] * step)
        return True

    # -- batch operations ---------------------------------------------

    def add_overlay(self, overlay: OverlayImage, select: bool = True) -> None:
        scene = replace(self._scene, overlays=self._scene.overlays + (overlay,))
        if select:
            scene = scene.with_selection((overlay.id,))
        self._commit(scene)

    def _copy_id(self, item_id: str, taken: set) -> str:
        while True:
            new_id = f"{item_id}-copy-{next(self._copy_counter)}"
            if new_id not in taken:
                taken.add(new_id)
                return new_id

    def duplicate(self) -> Tuple[str, ...]:
        scene = self._scene
        sel = scene.selection
        if not sel:
            return ()
        taken = set(scene.ids)
        new_ids: List[str] = []

        def clone(item):
            new_id = self._copy_id(item.id, taken)
            new_ids.append(new_id)
            moved = {"x": clamp_pos(item.x + DUPLICATE_OFFSET_PCT), "y": clamp_pos(item.y + DUPLICATE_OFFSET_PCT)}
            if isinstance(item, OverlayImage):
                return replace(item, id=new_id, **moved)
            return replace(item, file_id=new_id, **moved)

        images = scene.images + tuple(clone(p) for p in scene.images if p.file_id in sel)
        overlays = scene.overlays + tuple(clone(o) for o in scene.overlays if o.id in sel)
        self._commit(Scene(images=images, overlays=overlays, selection=frozenset(new_ids)))
        return tuple(new_ids)

    def delete(self) -> Tuple[str, ...]:
        scene = self._scene
        removed = tuple(it.id for it in scene.stacking_order() if it.id in scene.selection)
        if removed:
            self._gesture = None
            self._commit(scene.without(removed))
        return removed

    def remove(self, ids: Sequence[str]) -> None:
        self._commit(self._scene.without(ids))

    def _flip(self, attr: str) -> None:
        sel = self._scene.selection
        updates = {it.id: {attr: not getattr(it, attr)} for it in self._scene.stacking_order() if it.id in sel}
        self._commit(self._scene.with_updates(updates))

    def mirror_horizontal(self) -> None:
        self._flip("mirror_h")

    def mirror_vertical(self) -> None:
        self._flip("mirror_v")

    def _reorder(self, fn: Callable[[tuple, FrozenSet[str]], tuple]) -> None:
        scene = self._scene
        if not scene.selection:
            return
        self._commit(
            replace(
                scene,
                images=fn(scene.images, scene.selection),
                overlays=fn(scene.overlays, scene.selection),
            )
        )

    def bring_to_front(self) -> None:
        self._reorder(to_front)

    def send_to_back(self) -> None:
        self._reorder(to_back)

    def bring_forward(self) -> None:
        self._reorder(forward)

    def send_backward(self) -> None:
        self._reorder(backward)


def _bounded_uniform_scale(scale: float, width: float, height: float) -> float:
    """Clamp a uniform factor so both sides stay within the size limits."""
    if width <= 0 or height <= 0:
        return 1.0
    lo = max(MIN_SIZE_PCT / width, MIN_SIZE_PCT / height)
    hi = min(MAX_SIZE_PCT / width, MAX_SIZE_PCT / height)
    if lo > hi:
        return 1.0
    return max(lo, min(scale, hi))


def to_front(items: tuple, selection: FrozenSet[str]) -> tuple:
    return tuple(i for i in items if i.id not in selection) + tuple(i for i in items if i.id in selection)


def to_back(items: tuple, selection: FrozenSet[str]) -> tuple:
    return tuple(i for i in items if i.id in selection) + tuple(i for i in items if i.id not in selection)


def forward(items: tuple, selection: FrozenSet[str]) -> tuple:
    out = list(items)
    picked = [i for i, it in enumerate(out) if it.id in selection]
    for i in reversed(picked):
        if i < len(out) - 1 and out[i + 1].id not in selection:
            out[i], out[i + 1] = out[i + 1], out[i]
    return tuple(out)


def backward(items: tuple, selection: FrozenSet[str]) -> tuple:
    out = list(items)
    picked = [i for i, it in enumerate(out) if it.id in selection]
    for i in picked:
        if i > 0 and out[i - 1].id not in selection:
            out[i], out[i - 1] = out[i - 1], out[i]
    return tuple(out)
