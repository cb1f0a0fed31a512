from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path
from typing import List

from .assets import SourceLibrary, decode_image, load_folder, read_source
from .compositor import CenterImage
from .config import EXPORT_FORMATS, BundleConfig
from .errors import BundleCoverError
from .export import Exporter
from .fonts import FontLibrary
from .geometry import ASPECT_RATIOS, parse_color
from .layouts import CUSTOM, LAYOUT_KINDS, compute_frames
from .scene import Scene, new_overlay, positions_from_frames
from .shapes import SHAPE_LABELS


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bundle-cover",
        description="Compose a bundle cover image from a folder of images: a grid or divided grid of the images around a title block.",
    )

    parser.add_argument("--input", type=str, required=True, help="Folder containing the bundle images")
    parser.add_argument("--recursive", action="store_true", help="Scan input folder recursively")
    parser.add_argument("--config", type=str, default=None, help="Preset JSON file; the options below override it")
    parser.add_argument("--save-config", type=str, default=None, help="Write the effective preset to this JSON file")

    parser.add_argument("--aspect", type=str, default=None, choices=list(ASPECT_RATIOS), help="Canvas aspect ratio")
    parser.add_argument("--layout", type=str, default=None, choices=list(LAYOUT_KINDS), help="Layout algorithm")
    parser.add_argument("--images-per-row", type=int, default=None, help="Fixed column count; 0 means automatic")
    parser.add_argument("--spacing", type=float, default=None, help="Gap between grid cells in percent of a cell")
    parser.add_argument("--text-safe", type=float, default=None, help="Height of the reserved center area in percent of canvas height")

    parser.add_argument(
        "--background",
        type=str,
        default=None,
        help="Background color (RRGGBB, #RRGGBB, a color name) or 'transparent'",
    )
    parser.add_argument("--background-image", type=str, default=None, help="Image used as a cover-fit background")

    parser.add_argument("--center-image", type=str, default=None, help="Image placed in the center area instead of text")
    parser.add_argument("--center-scale", type=float, default=None, help="Scale of the center block relative to the text-safe area")
    parser.add_argument("--center-rotation", type=float, default=None, help="Clockwise rotation of the center block in degrees")
    parser.add_argument(
        "--center-offset",
        type=float,
        nargs=2,
        default=None,
        metavar=("X", "Y"),
        help="Shift of the center block in percent of canvas width and height",
    )
    parser.add_argument("--shape", type=str, default=None, choices=list(SHAPE_LABELS), help="Center shape")
    parser.add_argument("--shape-color", type=str, default=None, help="Center shape fill color")
    parser.add_argument("--title", type=str, default=None, help="Title text")
    parser.add_argument("--subtitle", type=str, default=None, help="Subtitle text")
    parser.add_argument("--title-font", type=str, default=None, help="Title font family")
    parser.add_argument("--subtitle-font", type=str, default=None, help="Subtitle font family")
    parser.add_argument("--title-size", type=int, default=None, help="Title font size in pixels")
    parser.add_argument("--subtitle-size", type=int, default=None, help="Subtitle font size in pixels")
    parser.add_argument("--auto-size", action="store_true", help="Auto-fit title and subtitle sizes to the shape")
    parser.add_argument("--no-wrap", action="store_true", help="Keep title and subtitle on a single line each")

    parser.add_argument(
        "--overlay",
        type=str,
        action="append",
        default=[],
        help="Image placed centered above the composition; repeat for several",
    )

    parser.add_argument("--format", type=str, default="png", choices=list(EXPORT_FORMATS), help="Output format")
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output file or folder. Defaults to the generated file name in the current folder.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=0,
        help="Thread workers for image decoding. 0 means auto.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug output")
    return parser


def config_from_args(args: argparse.Namespace) -> BundleConfig:
    config = BundleConfig.load(Path(args.config)) if args.config else BundleConfig()

    overrides = {
        "aspect_ratio": args.aspect,
        "layout_style": args.layout,
        "image_spacing_percent": args.spacing,
        "text_safe_area_percent": args.text_safe,
        "center_scale": args.center_scale,
        "center_rotation": args.center_rotation,
        "center_shape": args.shape,
        "shape_color": args.shape_color,
        "title_text": args.title,
        "subtitle_text": args.subtitle,
        "title_font": args.title_font,
        "subtitle_font": args.subtitle_font,
        "title_font_size": args.title_size,
        "subtitle_font_size": args.subtitle_size,
    }
    values = {k: v for k, v in overrides.items() if v is not None}

    if args.images_per_row is not None:
        values["images_per_row"] = args.images_per_row if args.images_per_row > 0 else None
    if args.background is not None:
        if args.background.strip().lower() == "transparent":
            values["background_mode"] = "transparent"
        else:
            parse_color(args.background)
            values["background_mode"] = "color"
            values["background_color"] = args.background
    if args.background_image:
        values["background_mode"] = "backgroundImage"
    if args.center_image:
        values["center_mode"] = "image"
    if args.center_offset is not None:
        values["center_x_offset"], values["center_y_offset"] = args.center_offset
    if args.auto_size:
        values["title_font_size_auto"] = True
        values["subtitle_font_size_auto"] = True
    if args.no_wrap:
        values["wrap_text"] = False

    return replace(config, **values)


def _custom_scene(library: SourceLibrary, config: BundleConfig) -> Scene:
    canvas = config.canvas
    ids = library.decode_all(crop=True)
    frames = compute_frames(CUSTOM, canvas.width, canvas.height, len(ids), config.text_safe(canvas), config.images_per_row)
    return Scene(images=positions_from_frames(ids, frames, canvas))


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = config_from_args(args)
    except (OSError, ValueError) as e:
        raise SystemExit(f"Invalid configuration: {e}")

    if args.save_config:
        config.save(Path(args.save_config))
        logger.info("saved preset to %s", args.save_config)

    folder = Path(args.input)
    try:
        library = load_folder(folder, recursive=args.recursive)
    except FileNotFoundError as e:
        raise SystemExit(str(e))
    if len(library) == 0:
        raise SystemExit(f"No images found in: {folder}")

    assets = SourceLibrary()
    center_image = None
    background_id = None
    if args.center_image:
        src = read_source(Path(args.center_image), source_id="center")
        assets.add(src)
        center_image = CenterImage(source_id=src.id)
    if args.background_image:
        src = read_source(Path(args.background_image), source_id="background")
        assets.add(src)
        background_id = src.id

    scene = _custom_scene(library, config) if config.layout_style == CUSTOM else Scene()
    for i, path in enumerate(args.overlay):
        src = read_source(Path(path), source_id=f"overlay-{i + 1}")
        assets.add(src)
        try:
            img = decode_image(src.data, src.name)
        except BundleCoverError as e:
            logger.warning("skipping overlay %s: %s", path, e)
            continue
        scene = replace(scene, overlays=scene.overlays + (new_overlay(src.id, src.id, img.width, img.height, config.canvas),))

    exporter = Exporter(fonts=FontLibrary(), workers=args.workers)
    try:
        result = exporter.export(
            library,
            config,
            scene=scene,
            fmt=args.format,
            center_image=center_image,
            background_id=background_id,
            assets=assets,
        )
    except BundleCoverError as e:
        raise SystemExit(str(e))

    out_path = Path(args.output) if args.output else Path.cwd() / result.filename
    if out_path.is_dir():
        out_path = out_path / result.filename
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(result.data)
    print(f"saved {out_path} ({result.width}x{result.height})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
