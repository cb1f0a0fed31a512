import pytest

from bundle_cover.geometry import CanvasSpec, ImageFrame
from bundle_cover.scene import (
    MAX_SIZE_PCT,
    MIN_SIZE_PCT,
    ImagePosition,
    Scene,
    item_rect,
    new_overlay,
    positions_from_frames,
)

CANVAS = CanvasSpec(2000, 1000)


def test_positions_from_frames_store_centers_in_percent():
    frames = [ImageFrame(x=100, y=100, width=400, height=200, rotation=-6.0)]
    (p,) = positions_from_frames(["a"], frames, CANVAS)

    assert (p.x, p.y) == pytest.approx((15.0, 20.0))
    assert (p.width, p.height) == pytest.approx((20.0, 20.0))
    assert p.rotation == pytest.approx(354.0)
    assert p.source_id == "a"


def test_positions_from_frames_clamp_sizes():
    frames = [
        ImageFrame(x=0, y=0, width=20, height=10),
        ImageFrame(x=0, y=0, width=2000, height=1000),
    ]
    tiny, huge = positions_from_frames(["a", "b"], frames, CANVAS)
    assert (tiny.width, tiny.height) == (MIN_SIZE_PCT, MIN_SIZE_PCT)
    assert (huge.width, huge.height) == (MAX_SIZE_PCT, MAX_SIZE_PCT)


def test_new_overlay_keeps_natural_aspect_on_canvas():
    ov = new_overlay("o", "src", 300, 150, CANVAS)
    rect = item_rect(ov, CANVAS.width, CANVAS.height)

    assert (ov.x, ov.y) == (50.0, 50.0)
    assert ov.width == 20.0
    assert rect.width / rect.height == pytest.approx(2.0)
    assert ov.aspect_ratio == pytest.approx(2.0)


def test_scene_updates_produce_new_values():
    scene = Scene(images=(ImagePosition("a", 10, 10, 10, 10),))
    moved = scene.with_updates({"a": {"x": 40.0}})

    assert scene.item("a").x == 10
    assert moved.item("a").x == 40.0
    assert scene.with_updates({}) is scene


def test_scene_without_drops_items_and_selection():
    scene = Scene(
        images=(ImagePosition("a", 10, 10, 10, 10), ImagePosition("b", 20, 20, 10, 10)),
    ).with_selection(["a", "b"])
    rest = scene.without(["a"])

    assert rest.ids == ("b",)
    assert rest.selection == {"b"}


def test_duplicate_shares_source():
    p = ImagePosition("a-copy-1", 10, 10, 10, 10, source_id="a")
    assert p.id == "a-copy-1"
    assert Scene(images=(p,)).referenced_sources() == {"a"}
