from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Sequence

from .assets import SourceImage, SourceLibrary, as_library
from .compositor import CenterImage, compose_content, composite_layers, encode_image
from .config import EXPORT_FORMATS, BundleConfig
from .errors import ExportError, ExportInProgressError
from .fonts import FontLibrary
from .layouts import CUSTOM
from .scene import Scene


logger = logging.getLogger(__name__)

EXPORT_FAILED_MESSAGE = "Export failed. Please try again."
MIN_EXPORT_IMAGES = 2


@dataclass(frozen=True)
class ExportResult:
    data: bytes = field(repr=False)
    width: int
    height: int
    fmt: str
    filename: str


def export_filename(config: BundleConfig, width: int, height: int, fmt: str) -> str:
    ratio = config.aspect_ratio.replace(":", "x")
    return f"bundle-cover-{ratio}-{config.layout_style}-{width}x{height}.{fmt}"


class Exporter:
    """Runs content -> layers -> encode; only one export at a time."""

    def __init__(self, fonts: FontLibrary | None = None, workers: int = 0) -> None:
        self.fonts = fonts or FontLibrary()
        self.workers = workers
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def export(
        self,
        sources: SourceLibrary | Sequence[SourceImage],
        config: BundleConfig,
        scene: Scene | None = None,
        fmt: str = "png",
        center_image: CenterImage | None = None,
        background_id: str | None = None,
        assets: SourceLibrary | Sequence[SourceImage] | None = None,
    ) -> ExportResult:
        fmt = fmt.lower()
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"unsupported export format {fmt!r}; use one of {', '.join(EXPORT_FORMATS)}")

        if not self._lock.acquire(blocking=False):
            raise ExportInProgressError("An export is already running.")
        try:
            return self._export(sources, config, scene, fmt, center_image, background_id, assets)
        except ExportError:
            raise
        except Exception as e:
            logger.exception("export failed")
            raise ExportError(EXPORT_FAILED_MESSAGE) from e
        finally:
            self._lock.release()

    def _export(
        self,
        sources: SourceLibrary | Sequence[SourceImage],
        config: BundleConfig,
        scene: Scene | None,
        fmt: str,
        center_image: CenterImage | None,
        background_id: str | None,
        assets: SourceLibrary | Sequence[SourceImage] | None,
    ) -> ExportResult:
        lib = as_library(sources)
        ok = lib.decode_all(workers=self.workers, crop=True)
        if len(ok) < MIN_EXPORT_IMAGES:
            raise ExportError(f"At least {MIN_EXPORT_IMAGES} images are needed to export.")

        canvas = config.canvas
        positions = scene.images if scene is not None and config.layout_style == CUSTOM else None
        logger.info("exporting %d images as %s (%s, %dx%d)", len(ok), fmt, config.layout_style, canvas.width, canvas.height)

        content = compose_content(lib, config, positions=positions, canvas=canvas, workers=self.workers)
        content_bytes = encode_image(content, "png")
        content.close()

        layer_sources = as_library(assets) if assets is not None else lib
        overlays = scene.overlays if scene is not None else ()
        final = composite_layers(
            content_bytes,
            config,
            layer_sources,
            overlays,
            center_image,
            background_id=background_id,
            fonts=self.fonts,
        )
        data = encode_image(final, fmt)
        result = ExportResult(
            data=data,
            width=final.width,
            height=final.height,
            fmt=fmt,
            filename=export_filename(config, final.width, final.height, fmt),
        )
        final.close()
        logger.info("exported %s (%d bytes)", result.filename, len(data))
        return result
