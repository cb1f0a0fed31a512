import logging

import pytest
from PIL import Image

from bundle_cover.assets import SourceImage, SourceLibrary, decode_image
from bundle_cover.compositor import (
    CenterImage,
    compose_content,
    composite_at,
    composite_layers,
    contain_size,
    cover_fit,
    draw_transformed,
    encode_image,
    normalized_grid_sizes,
    stack_layers,
)
from bundle_cover.config import BundleConfig
from bundle_cover.errors import EncodeError
from bundle_cover.fonts import FontLibrary
from bundle_cover.geometry import CanvasSpec, ImageFrame
from bundle_cover.layouts import CUSTOM, GRID
from bundle_cover.scene import ImagePosition, OverlayImage

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)
BLACK = (0, 0, 0, 255)
EPS = 1e-6


def split_image():
    """20x10: left half red, right half blue."""
    img = Image.new("RGBA", (20, 10), RED)
    img.paste(BLUE, (10, 0, 20, 10))
    return img


class TestDrawTransformed:
    def test_rotation_turns_clockwise(self):
        out = Image.new("RGBA", (100, 100), (0, 0, 0, 0))
        draw_transformed(out, split_image(), 50, 50, 20, 10, rotation=90)

        # the red left half ends up on top
        assert out.getpixel((50, 44)) == RED
        assert out.getpixel((50, 56)) == BLUE
        assert out.getpixel((58, 50))[3] == 0

    def test_mirror_horizontal_swaps_halves(self):
        out = Image.new("RGBA", (100, 100), (0, 0, 0, 0))
        draw_transformed(out, split_image(), 50, 50, 20, 10, mirror_h=True)
        assert out.getpixel((43, 50)) == BLUE
        assert out.getpixel((57, 50)) == RED

    def test_composite_at_clips_outside_pieces(self):
        out = Image.new("RGBA", (10, 10), (0, 0, 0, 0))
        composite_at(out, Image.new("RGBA", (6, 6), RED), -3, -3)
        composite_at(out, Image.new("RGBA", (6, 6), RED), 50, 50)
        assert out.getpixel((0, 0)) == RED
        assert out.getpixel((3, 3))[3] == 0


def test_contain_and_cover_fit():
    assert contain_size(200, 100, 50, 50) == pytest.approx((50.0, 25.0))
    assert contain_size(0, 100, 50, 50) == (0.0, 0.0)
    assert cover_fit(Image.new("RGBA", (200, 100)), 50, 50).size == (50, 50)


class TestComposeContent:
    def test_grid_when_four_images_then_one_per_quadrant(self, four_sources):
        config = BundleConfig(layout_style=GRID)
        content = compose_content(four_sources, config)

        assert content.size == (2048, 2048)
        expected = [s for s in four_sources]
        quadrants = [(512, 512), (1536, 512), (512, 1536), (1536, 1536)]
        for src, xy in zip(expected, quadrants):
            assert content.getpixel(xy) == decode_image(src.data).getpixel((0, 0))
        # padding keeps the cell edges clear
        assert content.getpixel((2, 2))[3] == 0

    def test_custom_when_positions_then_drawn_at_their_centers(self, four_sources):
        config = BundleConfig(layout_style=CUSTOM)
        positions = (ImagePosition("copy", x=25, y=75, width=20, height=20, source_id="img2"),)
        content = compose_content(four_sources, config, positions=positions)

        assert content.getpixel((512, 1536)) == decode_image(four_sources[2].data).getpixel((0, 0))
        assert content.getpixel((1024, 1024))[3] == 0

    def test_unknown_source_is_skipped(self, four_sources, caplog):
        config = BundleConfig(layout_style=CUSTOM)
        positions = (ImagePosition("ghost", x=50, y=50, width=20, height=20),)
        with caplog.at_level(logging.WARNING):
            content = compose_content(four_sources, config, positions=positions)
        assert content.getbbox() is None
        assert "ghost" in caplog.text

    def test_background_image_is_cover_fit(self, four_sources):
        config = BundleConfig(layout_style=GRID)
        bg = Image.new("RGBA", (30, 10), (9, 9, 9, 255))
        content = compose_content(four_sources, config, canvas=CanvasSpec(200, 200), background_image=bg)
        assert content.getpixel((0, 0)) == (9, 9, 9, 255)

    def test_center_image_drawn_for_non_grid(self, make_source, four_sources):
        lib = SourceLibrary(four_sources + [make_source("logo", (50, 50), (0, 0, 0, 255))])
        config = BundleConfig(layout_style=CUSTOM)
        content = compose_content(lib, config, positions=(), center_image=CenterImage("logo"))
        assert content.getpixel((1024, 1024)) == (0, 0, 0, 255)


class TestGridNormalization:
    def framed(self, size, inner):
        """Opaque white image of ``size`` with a red square of ``inner`` px in the middle."""
        img = Image.new("RGBA", (size, size), (255, 255, 255, 255))
        lo = (size - inner) // 2
        img.paste(RED, (lo, lo, lo + inner, lo + inner))
        return img

    def test_visible_content_ends_up_the_same_size(self):
        tight = Image.new("RGBA", (40, 40), RED)
        padded = self.framed(80, 20)
        frames = [ImageFrame(0, 0, 500, 500), ImageFrame(520, 0, 500, 500)]

        (tw, th), (pw, ph) = normalized_grid_sizes([tight, padded], frames, pad_ratio=0.04)

        # red spans the whole tight image but only a quarter of the padded one
        assert tw == pytest.approx(pw * 20 / 80)
        assert th == pytest.approx(ph * 20 / 80)

    def test_cells_never_overflow_the_padded_frame(self):
        images = [Image.new("RGBA", (40, 40), RED), self.framed(80, 20), Image.new("RGBA", (300, 60), BLUE)]
        frames = [ImageFrame(0, 0, 400, 300), ImageFrame(400, 0, 400, 300), ImageFrame(0, 300, 400, 300)]

        sizes = normalized_grid_sizes(images, frames, pad_ratio=0.04)

        pad = 300 * 0.04
        for w, h in sizes:
            assert w <= 400 - 2 * pad + EPS
            assert h <= 300 - 2 * pad + EPS
        # the largest image touches its padded cell
        assert max(max(w / (400 - 2 * pad), h / (300 - 2 * pad)) for w, h in sizes) == pytest.approx(1.0)

    def test_grid_when_transparent_padding_differs_then_drawn_alike(self, make_source):
        margin = Image.new("RGBA", (120, 120), (0, 0, 0, 0))
        margin.paste(RED, (40, 40, 80, 80))
        sources = [
            make_source("tight", (40, 40), RED),
            SourceImage("margin", "margin.png", encode_image(margin, "png")),
        ]
        out = compose_content(sources, BundleConfig(layout_style=GRID), canvas=CanvasSpec(400, 200))

        left = out.crop((0, 0, 200, 200)).getbbox()
        right = out.crop((200, 0, 400, 200)).getbbox()
        assert left is not None and right is not None
        assert abs((left[2] - left[0]) - (right[2] - right[0])) <= 2
        assert abs((left[3] - left[1]) - (right[3] - right[1])) <= 2


class TestCompositeLayers:
    def content_bytes(self, size=(200, 200)):
        return encode_image(Image.new("RGBA", size, (0, 0, 0, 0)), "png")

    def test_color_background_under_content(self):
        config = BundleConfig(layout_style=GRID, background_mode="color", background_color="#00ff00")
        out = composite_layers(self.content_bytes(), config)
        assert out.getpixel((5, 5)) == (0, 255, 0, 255)

    def test_missing_overlay_source_omits_layer(self, caplog):
        config = BundleConfig(layout_style=GRID)
        overlays = [OverlayImage(id="o", source_id="missing")]
        with caplog.at_level(logging.WARNING):
            out = composite_layers(self.content_bytes(), config, SourceLibrary(), overlays)
        assert out.size == (200, 200)
        assert "omitting overlay o" in caplog.text

    def test_overlays_drawn_in_order(self, make_source):
        lib = SourceLibrary([make_source("r", (10, 10), RED), make_source("b", (10, 10), BLUE)])
        config = BundleConfig(layout_style=GRID)
        overlays = [OverlayImage(id="o1", source_id="r"), OverlayImage(id="o2", source_id="b")]
        out = composite_layers(self.content_bytes(), config, lib, overlays)
        assert out.getpixel((100, 100)) == BLUE

    def test_center_text_rendered_with_fallback_font(self, tmp_path):
        config = BundleConfig(shape_color="#fef3c7")
        content = Image.new("RGBA", (2048, 2048), (0, 0, 0, 0))
        out = stack_layers(content, config, fonts=FontLibrary(dirs=[tmp_path]))

        # the shape fills around the center text block
        shape_pixel = out.getpixel((560, 1024))
        assert shape_pixel == (0xFE, 0xF3, 0xC7, 255)

    def center_pixels(self, lib, **overrides):
        config = BundleConfig(center_mode="image", **overrides)
        content = Image.new("RGBA", (2048, 2048), (0, 0, 0, 0))
        out = stack_layers(content, config, lib, center_image=CenterImage("logo"))
        # box at scale 1 is 1024x409.6 around the canvas center, the square logo fills its height
        return {xy: out.getpixel(xy) for xy in [(1024, 1024), (1204, 1024), (1228, 1024), (1024, 764)]}

    def test_center_image_follows_config_transform(self, make_source):
        lib = SourceLibrary([make_source("logo", (50, 50), BLACK)])

        plain = self.center_pixels(lib)
        assert plain[(1024, 1024)] == BLACK
        assert plain[(1204, 1024)] == BLACK
        assert plain[(1024, 764)][3] == 0

        small = self.center_pixels(lib, center_scale=0.3)
        assert small[(1024, 1024)] == BLACK
        assert small[(1204, 1024)][3] == 0

        shifted = self.center_pixels(lib, center_scale=0.3, center_x_offset=10)
        assert shifted[(1024, 1024)][3] == 0
        assert shifted[(1228, 1024)] == BLACK

        # a diamond reaches further up than the square it came from
        turned = self.center_pixels(lib, center_rotation=45)
        assert turned[(1024, 764)] == BLACK

    def test_center_image_ignores_white_margins(self):
        logo = Image.new("RGBA", (100, 100), (255, 255, 255, 255))
        logo.paste((0, 0, 0, 255), (40, 40, 60, 60))
        lib = SourceLibrary()
        lib.add(SourceImage("logo", "logo.png", encode_image(logo, "png")))

        pixels = self.center_pixels(lib)
        # only the black square is fitted into the box
        assert pixels[(1204, 1024)] == BLACK

    def test_grid_draws_no_center(self, tmp_path):
        config = BundleConfig(layout_style=GRID)
        content = Image.new("RGBA", (400, 400), (0, 0, 0, 0))
        out = stack_layers(content, config, fonts=FontLibrary(dirs=[tmp_path]))
        assert out.getbbox() is None


class TestEncode:
    def test_png_and_webp(self):
        img = Image.new("RGBA", (16, 16), RED)
        assert encode_image(img, "png").startswith(b"\x89PNG")
        webp = encode_image(img, "WEBP")
        assert webp[:4] == b"RIFF" and webp[8:12] == b"WEBP"

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            encode_image(Image.new("RGBA", (4, 4)), "gif")

    def test_encoder_failure_raises_encode_error(self):
        # PNG cannot hold CMYK
        with pytest.raises(EncodeError):
            encode_image(Image.new("CMYK", (4, 4)), "png")
