from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

from PIL import Image, ImageDraw, ImageOps

from .assets import SourceImage, SourceLibrary, as_library, decode_image
from .config import BundleConfig
from .content_bounds import DEFAULT_WHITE_THRESHOLD, content_scale_factors, crop_to_content
from .errors import DecodeError, EncodeError, OptionalLayerError, SurfaceError
from .fonts import FontLibrary
from .geometry import TRANSPARENT, CanvasSpec, Color, ImageFrame, Rect, parse_color
from .layouts import CUSTOM, GRID, compute_frames
from .scene import ImagePosition, OverlayImage
from .shapes import draw_center_shape
from .text_layout import center_shape_rect, layout_center_text


logger = logging.getLogger(__name__)

GRID_PADDING_RATIO = 0.04
FRAME_PADDING_RATIO = 0.05
WEBP_QUALITY = 92


@dataclass(frozen=True)
class CenterImage:
    """The asset drawn in the center block; placement comes from the config."""

    source_id: str


def new_surface(canvas: CanvasSpec, color: Color = TRANSPARENT) -> Image.Image:
    try:
        return Image.new("RGBA", (canvas.width, canvas.height), color)
    except (MemoryError, ValueError, OSError) as e:
        raise SurfaceError(f"cannot allocate a {canvas.width}x{canvas.height} surface") from e


def safe_resize(
    img: Image.Image,
    size: Tuple[int, int],
    resample: Image.Resampling = Image.Resampling.LANCZOS,
) -> Image.Image:
    w, h = size
    if w <= 0 or h <= 0:
        raise ValueError("resize size must be positive")
    if (w, h) == img.size:
        return img
    return img.resize((w, h), resample=resample)


def contain_size(src_w: int, src_h: int, box_w: float, box_h: float) -> Tuple[float, float]:
    if src_w <= 0 or src_h <= 0 or box_w <= 0 or box_h <= 0:
        return (0.0, 0.0)
    scale = min(box_w / src_w, box_h / src_h)
    return (src_w * scale, src_h * scale)


def cover_fit(img: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to cover width x height, then center-crop."""
    ow, oh = img.size
    scale = max(width / ow, height / oh)
    new_w = max(width, int(math.ceil(ow * scale)))
    new_h = max(height, int(math.ceil(oh * scale)))
    resized = safe_resize(img, (new_w, new_h))
    left = max(0, (new_w - width) // 2)
    top = max(0, (new_h - height) // 2)
    return resized.crop((left, top, left + width, top + height))


def composite_at(dst: Image.Image, piece: Image.Image, x: int, y: int) -> None:
    """Alpha-composite piece onto dst with its top-left at (x, y), clipped to dst."""
    x0 = max(0, x)
    y0 = max(0, y)
    x1 = min(dst.width, x + piece.width)
    y1 = min(dst.height, y + piece.height)
    if x1 <= x0 or y1 <= y0:
        return
    if piece.mode != "RGBA":
        piece = piece.convert("RGBA")
    part = piece.crop((x0 - x, y0 - y, x1 - x, y1 - y))
    dst.alpha_composite(part, (x0, y0))


def draw_transformed(
    dst: Image.Image,
    img: Image.Image,
    cx: float,
    cy: float,
    width: float,
    height: float,
    rotation: float = 0.0,
    mirror_h: bool = False,
    mirror_v: bool = False,
) -> None:
    """Draw img scaled to width x height with its center at (cx, cy).

    Mirroring happens in the image's own space, then the image is rotated
    clockwise by ``rotation`` degrees about its center.
    """
    tw = max(1, int(round(width)))
    th = max(1, int(round(height)))
    piece = safe_resize(img, (tw, th))
    if mirror_h:
        piece = ImageOps.mirror(piece)
    if mirror_v:
        piece = ImageOps.flip(piece)
    if rotation % 360.0:
        # Pillow turns counter-clockwise for positive angles
        piece = piece.rotate(-rotation, resample=Image.Resampling.BICUBIC, expand=True, fillcolor=TRANSPARENT)
    composite_at(dst, piece, int(round(cx - piece.width / 2.0)), int(round(cy - piece.height / 2.0)))


def _padded(frame: ImageFrame, ratio: float) -> Tuple[float, float]:
    pad = min(frame.width, frame.height) * ratio
    return (max(1.0, frame.width - 2 * pad), max(1.0, frame.height - 2 * pad))


def normalized_grid_sizes(images: Sequence[Image.Image], frames: Sequence[ImageFrame], pad_ratio: float = GRID_PADDING_RATIO) -> List[Tuple[float, float]]:
    """Sizes that give every image the same visual content weight.

    Each image is scaled by sqrt(median content area / own content area);
    one shared factor then shrinks the whole group so every image fits its
    padded cell.
    """
    if not images:
        return []
    factors = content_scale_factors(images, DEFAULT_WHITE_THRESHOLD)

    k = math.inf
    for img, f, s in zip(images, frames, factors):
        pw, ph = _padded(f, pad_ratio)
        k = min(k, pw / (img.width * s), ph / (img.height * s))
    if not math.isfinite(k) or k <= 0:
        k = 1.0
    return [(img.width * s * k, img.height * s * k) for img, s in zip(images, factors)]


def _draw_frames(out: Image.Image, lib: SourceLibrary, config: BundleConfig, canvas: CanvasSpec, workers: int) -> None:
    ids = lib.decode_all(workers=workers, crop=True)
    images = [lib.content_image(i) for i in ids]
    frames = compute_frames(
        config.layout_style,
        canvas.width,
        canvas.height,
        len(images),
        config.text_safe(canvas),
        config.images_per_row,
        config.image_spacing_percent,
    )

    if config.layout_style == GRID:
        sizes = normalized_grid_sizes(images, frames, GRID_PADDING_RATIO)
    else:
        sizes = [contain_size(img.width, img.height, *_padded(f, FRAME_PADDING_RATIO)) for img, f in zip(images, frames)]

    for img, f, (w, h) in zip(images, frames, sizes):
        cx, cy = f.rect.center
        draw_transformed(out, img, cx, cy, w, h, f.rotation)


def _draw_positions(out: Image.Image, lib: SourceLibrary, positions: Sequence[ImagePosition], canvas: CanvasSpec) -> None:
    for pos in positions:
        try:
            img = lib.content_image(pos.source_id)
        except (KeyError, DecodeError) as e:
            logger.warning("skipping %s: %s", pos.file_id, e)
            continue
        box_w = pos.width / 100.0 * canvas.width
        box_h = pos.height / 100.0 * canvas.height
        w, h = contain_size(img.width, img.height, box_w, box_h)
        draw_transformed(
            out,
            img,
            pos.x / 100.0 * canvas.width,
            pos.y / 100.0 * canvas.height,
            w,
            h,
            pos.rotation,
            pos.mirror_h,
            pos.mirror_v,
        )


def center_image_box(config: BundleConfig, canvas: CanvasSpec) -> Rect:
    return center_shape_rect(canvas.width, canvas.height, config.text_safe(canvas), config.center_transform)


def _draw_center_image(out: Image.Image, lib: SourceLibrary, center: CenterImage, config: BundleConfig, canvas: CanvasSpec) -> None:
    try:
        img = crop_to_content(lib.image(center.source_id), white_threshold=DEFAULT_WHITE_THRESHOLD)
    except (KeyError, DecodeError) as e:
        raise OptionalLayerError(f"center image unavailable: {e}") from e
    box = center_image_box(config, canvas)
    w, h = contain_size(img.width, img.height, box.width, box.height)
    cx, cy = box.center
    draw_transformed(out, img, cx, cy, w, h, config.center_rotation)


def compose_content(
    sources: SourceLibrary | Sequence[SourceImage],
    config: BundleConfig,
    positions: Sequence[ImagePosition] | None = None,
    canvas: CanvasSpec | None = None,
    center_image: CenterImage | None = None,
    background_image: Image.Image | None = None,
    workers: int = 0,
) -> Image.Image:
    """Draw the bundle images for the configured layout onto a fresh surface."""
    canvas = canvas or config.canvas
    lib = as_library(sources)
    out = new_surface(canvas)

    if background_image is not None:
        composite_at(out, cover_fit(background_image.convert("RGBA"), canvas.width, canvas.height), 0, 0)

    if config.layout_style == CUSTOM and positions is not None:
        _draw_positions(out, lib, positions, canvas)
    else:
        _draw_frames(out, lib, config, canvas, workers)

    if center_image is not None and config.allows_center:
        _optional_layer("center image", lambda: _draw_center_image(out, lib, center_image, config, canvas))

    logger.debug("composed %s content on %dx%d", config.layout_style, canvas.width, canvas.height)
    return out


def encode_image(image: Image.Image, fmt: str = "png") -> bytes:
    fmt = fmt.lower()
    buf = io.BytesIO()
    try:
        if fmt == "png":
            image.save(buf, format="PNG")
        elif fmt == "webp":
            image.save(buf, format="WEBP", quality=WEBP_QUALITY)
        else:
            raise ValueError(f"unsupported export format: {fmt}")
    except (OSError, KeyError) as e:
        raise EncodeError(f"could not encode {fmt}: {e}") from e
    return buf.getvalue()


def _optional_layer(name: str, draw: Callable[[], None]) -> bool:
    try:
        draw()
    except (OptionalLayerError, DecodeError, KeyError, ValueError, OSError) as e:
        logger.warning("omitting %s layer: %s", name, e)
        return False
    return True


def _draw_background(out: Image.Image, config: BundleConfig, lib: SourceLibrary, background_id: str | None) -> None:
    if config.background_mode == "color":
        out.paste(parse_color(config.background_color), (0, 0, out.width, out.height))
        return
    if config.background_mode == "backgroundImage":
        if background_id is None:
            raise OptionalLayerError("no background image selected")
        try:
            img = lib.image(background_id)
        except (KeyError, DecodeError) as e:
            raise OptionalLayerError(f"background image unavailable: {e}") from e
        composite_at(out, cover_fit(img, out.width, out.height), 0, 0)


def render_center_text(out: Image.Image, config: BundleConfig, fonts: FontLibrary, canvas: CanvasSpec) -> None:
    """Draw the center shape with title and subtitle, rotated about the shape center."""
    opts = config.text_options
    fonts.load_many([opts.title_font, opts.subtitle_font])
    safe = config.text_safe(canvas)
    transform = config.center_transform
    layout = layout_center_text(canvas.width, canvas.height, safe, transform, opts, fonts.measure)

    shape = layout.shape_rect
    layer = new_surface(canvas)
    draw = ImageDraw.Draw(layer)
    draw_center_shape(draw, config.center_shape, (shape.x, shape.y, shape.right, shape.bottom), parse_color(config.shape_color))

    for block, color in ((layout.title, config.title_color), (layout.subtitle, config.subtitle_color)):
        fill = parse_color(color)
        for line in block.lines:
            font = fonts.font(line.family, line.weight, line.size)
            draw.text((line.x, line.y), line.text, font=font, fill=fill, anchor="mm")

    if transform.rotation % 360.0:
        layer = layer.rotate(-transform.rotation, resample=Image.Resampling.BICUBIC, center=shape.center, fillcolor=TRANSPARENT)
    out.alpha_composite(layer)


def _draw_overlay(out: Image.Image, lib: SourceLibrary, ov: OverlayImage) -> None:
    try:
        img = lib.image(ov.source_id)
    except (KeyError, DecodeError) as e:
        raise OptionalLayerError(f"overlay {ov.id} unavailable: {e}") from e
    w, h = contain_size(img.width, img.height, ov.width / 100.0 * out.width, ov.height / 100.0 * out.height)
    draw_transformed(
        out,
        img,
        ov.x / 100.0 * out.width,
        ov.y / 100.0 * out.height,
        w,
        h,
        ov.rotation,
        ov.mirror_h,
        ov.mirror_v,
    )


def stack_layers(
    content: Image.Image,
    config: BundleConfig,
    sources: SourceLibrary | Sequence[SourceImage] = (),
    overlays: Sequence[OverlayImage] = (),
    center_image: CenterImage | None = None,
    background_id: str | None = None,
    fonts: FontLibrary | None = None,
) -> Image.Image:
    """Stack background, content, center block and overlays into the final image.

    ``sources`` resolves the ids used by the background, the center image
    and the overlays.  A failing optional layer is logged and left out.
    """
    canvas = CanvasSpec(content.width, content.height)
    lib = as_library(sources)
    out = new_surface(canvas)

    _optional_layer("background", lambda: _draw_background(out, config, lib, background_id))
    out.alpha_composite(content if content.mode == "RGBA" else content.convert("RGBA"))

    if config.allows_center:
        if config.center_mode == "image" and center_image is not None:
            _optional_layer("center image", lambda: _draw_center_image(out, lib, center_image, config, canvas))
        elif config.center_mode == "text":
            _optional_layer("center text", lambda: render_center_text(out, config, fonts or FontLibrary(), canvas))

    for ov in overlays:
        _optional_layer(f"overlay {ov.id}", lambda ov=ov: _draw_overlay(out, lib, ov))

    return out


def composite_layers(
    content_bytes: bytes,
    config: BundleConfig,
    sources: SourceLibrary | Sequence[SourceImage] = (),
    overlays: Sequence[OverlayImage] = (),
    center_image: CenterImage | None = None,
    background_id: str | None = None,
    fonts: FontLibrary | None = None,
) -> Image.Image:
    content = decode_image(content_bytes, "content layer")
    return stack_layers(content, config, sources, overlays, center_image, background_id, fonts)
