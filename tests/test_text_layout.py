import pytest

from bundle_cover.geometry import text_safe_rect
from bundle_cover.text_layout import (
    BOLD_WEIGHT,
    FONT_SIZE_MAX,
    FONT_SIZE_MIN,
    LINE_HEIGHT,
    SUBTITLE_WEIGHT,
    TITLE_WEIGHT,
    CenterTextOptions,
    CenterTransform,
    auto_font_size,
    clamp_size,
    layout_center_text,
    wrap_lines,
)

W = H = 2048


def layout(measure, transform=CenterTransform(), **opts):
    safe = text_safe_rect(W, H, 20.0)
    return layout_center_text(W, H, safe, transform, CenterTextOptions(**opts), measure)


def test_clamp_size_keeps_font_sizes_in_range():
    assert clamp_size(5) == FONT_SIZE_MIN
    assert clamp_size(500) == FONT_SIZE_MAX
    assert clamp_size(47.6) == 48


def test_wrap_lines_breaks_on_width(measure):
    # 5 chars at size 10 measure 25px
    assert wrap_lines("aa bb cc", 30, measure, "Open Sans", 400, 10) == ["aa bb", "cc"]


def test_wrap_lines_keeps_overlong_word_on_its_own_line(measure):
    assert wrap_lines("supercalifragilistic ok", 10, measure, "Open Sans", 400, 10) == ["supercalifragilistic", "ok"]


class TestAutoFit:
    def test_auto_size_when_no_wrap_then_largest_size_that_fits_width(self, measure):
        # "Hello" is 2.5 * size wide
        assert auto_font_size("Hello", "Open Sans", 600, False, 100, 1000, measure) == 40

    def test_auto_size_when_wrap_then_height_also_limits(self, measure):
        size = auto_font_size("one two three four five six", "Open Sans", 600, True, 200, 60, measure)
        lines = wrap_lines("one two three four five six", 200, measure, "Open Sans", 600, size)
        assert len(lines) * size * LINE_HEIGHT <= 60
        assert all(measure(line, "", 0, size) <= 200 for line in lines)

    def test_auto_size_when_nothing_fits_then_floor(self, measure):
        assert auto_font_size("x" * 500, "Open Sans", 600, False, 50, 50, measure) == FONT_SIZE_MIN


class TestLayoutCenterText:
    def test_layout_when_title_only_then_centered_on_shape(self, measure):
        result = layout(measure, title="Clipart Bundle", subtitle="")
        cx, cy = result.shape_rect.center

        assert len(result.title.lines) == 1
        line = result.title.lines[0]
        assert (line.x, line.y) == pytest.approx((cx, cy))
        assert result.subtitle.lines == ()

    def test_layout_when_bold_flags_then_weights_follow(self, measure):
        plain = layout(measure, title="A", subtitle="B")
        bold = layout(measure, title="A", subtitle="B", title_bold=True, subtitle_bold=True)

        assert plain.title.lines[0].weight == TITLE_WEIGHT
        assert plain.subtitle.lines[0].weight == SUBTITLE_WEIGHT
        assert bold.title.lines[0].weight == BOLD_WEIGHT
        assert bold.subtitle.lines[0].weight == BOLD_WEIGHT

    def test_layout_when_title_wraps_then_subtitle_is_pushed_clear(self, measure):
        title = " ".join(["bundle"] * 40)
        result = layout(measure, title=title, subtitle="20 PNGs", title_size=48, subtitle_size=28)

        assert len(result.title.lines) > 1
        min_gap = max(4.0, 28 * 0.25)
        assert result.title.bottom + min_gap <= result.subtitle.top + 1e-6

        # the pair stays centered on the shape
        cy = result.shape_rect.center[1]
        title_center = (result.title.top + result.title.bottom) / 2.0
        sub_center = (result.subtitle.top + result.subtitle.bottom) / 2.0
        assert (title_center + sub_center) / 2.0 == pytest.approx(cy)

    def test_layout_when_short_texts_then_default_stacking(self, measure):
        result = layout(measure, title="Hi", subtitle="there", title_size=48, subtitle_size=28)
        cy = result.shape_rect.center[1]
        assert result.title.lines[0].y == pytest.approx(cy - 76 * 0.35)
        assert result.subtitle.lines[0].y == pytest.approx(cy + 76 * 0.35)

    def test_layout_when_no_wrap_then_single_line_each(self, measure):
        title = " ".join(["bundle"] * 40)
        result = layout(measure, title=title, subtitle="s", wrap=False)
        assert len(result.title.lines) == 1

    def test_layout_when_auto_then_title_fits_shape_width(self, measure):
        result = layout(measure, title="Mega Clipart Bundle", subtitle="", title_auto=True)
        line = result.title.lines[0]
        assert measure(line.text, "", 0, line.size) <= result.shape_rect.width * 0.85

    def test_layout_when_transform_then_shape_scaled_and_offset(self, measure):
        transform = CenterTransform(width_scale=0.5, height_scale=2.0, offset_x=10.0, offset_y=-5.0)
        result = layout(measure, transform=transform, title="T", subtitle="")
        safe = text_safe_rect(W, H, 20.0)
        shape = result.shape_rect

        assert shape.width == pytest.approx(safe.width * 0.5)
        assert shape.height == pytest.approx(safe.height * 2.0)
        assert shape.center == pytest.approx((W / 2.0 + W * 0.10, H / 2.0 - H * 0.05))
