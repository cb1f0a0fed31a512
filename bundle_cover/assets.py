from __future__ import annotations

import io
import itertools
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from PIL import Image, ImageOps, UnidentifiedImageError

from .content_bounds import crop_to_content
from .errors import DecodeError


logger = logging.getLogger(__name__)

SUPPORTED_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".gif", ".tif", ".tiff"}

# allow large images; keep a very high limit to avoid PIL warning spam
Image.MAX_IMAGE_PIXELS = max(int(getattr(Image, "MAX_IMAGE_PIXELS", 0) or 0), 250_000_000)

_id_counter = itertools.count(1)


def _effective_workers(workers: int) -> int:
    if workers <= 0:
        cpu = os.cpu_count() or 4
        return min(32, max(1, cpu * 2))
    return max(1, int(workers))


def new_asset_id(prefix: str = "img") -> str:
    return f"{prefix}-{next(_id_counter)}"


@dataclass(frozen=True)
class SourceImage:
    id: str
    name: str
    data: bytes = field(repr=False)


def iter_image_files(folder: Path, recursive: bool) -> List[Path]:
    if not folder.exists() or not folder.is_dir():
        raise FileNotFoundError(f"input folder not found: {folder}")

    walker: Iterable[Path] = folder.rglob("*") if recursive else folder.glob("*")
    return sorted(p for p in walker if p.is_file() and p.suffix.lower() in SUPPORTED_EXTS)


def read_source(path: Path, source_id: str | None = None) -> SourceImage:
    return SourceImage(id=source_id or new_asset_id(), name=path.name, data=path.read_bytes())


def decode_image(data: bytes, name: str = "<bytes>") -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img = ImageOps.exif_transpose(img)
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(name, str(e)) from e

    w, h = img.size
    if w <= 0 or h <= 0:
        raise DecodeError(name, "empty image")
    return img


class SourceLibrary:
    """Ordered source assets with decoded bitmaps cached per id."""

    def __init__(self, sources: Sequence[SourceImage] = ()) -> None:
        self._sources: Dict[str, SourceImage] = {}
        self._decoded: Dict[str, Image.Image] = {}
        self._cropped: Dict[str, Image.Image] = {}
        self._lock = threading.Lock()
        for s in sources:
            self.add(s)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    def __len__(self) -> int:
        return len(self._sources)

    @property
    def ids(self) -> List[str]:
        return list(self._sources)

    def add(self, source: SourceImage) -> None:
        self._sources[source.id] = source

    def get(self, source_id: str) -> SourceImage:
        return self._sources[source_id]

    def image(self, source_id: str) -> Image.Image:
        with self._lock:
            cached = self._decoded.get(source_id)
        if cached is not None:
            return cached

        src = self._sources.get(source_id)
        if src is None:
            raise KeyError(source_id)
        img = decode_image(src.data, src.name)
        with self._lock:
            self._decoded.setdefault(source_id, img)
            return self._decoded[source_id]

    def content_image(self, source_id: str) -> Image.Image:
        """Decoded bitmap with transparent margins cropped away."""
        with self._lock:
            cached = self._cropped.get(source_id)
        if cached is not None:
            return cached
        img = crop_to_content(self.image(source_id))
        with self._lock:
            self._cropped.setdefault(source_id, img)
            return self._cropped[source_id]

    def decode_all(self, ids: Sequence[str] | None = None, workers: int = 0, crop: bool = False) -> List[str]:
        """Decode best-effort; returns the ids that decoded, in input order."""
        wanted = list(ids) if ids is not None else self.ids

        def try_decode(source_id: str) -> str | None:
            try:
                if crop:
                    self.content_image(source_id)
                else:
                    self.image(source_id)
            except DecodeError as e:
                logger.warning("skipping %s: %s", source_id, e)
                return None
            return source_id

        n_workers = _effective_workers(workers)
        if n_workers <= 1 or len(wanted) <= 2:
            results = [try_decode(i) for i in wanted]
        else:
            with ThreadPoolExecutor(max_workers=n_workers) as ex:
                results = list(ex.map(try_decode, wanted))
        return [i for i in results if i is not None]

    def release(self, source_id: str) -> None:
        self._sources.pop(source_id, None)
        with self._lock:
            for cache in (self._cropped, self._decoded):
                img = cache.pop(source_id, None)
                if img is not None:
                    img.close()

    def release_unreferenced(self, referenced: Iterable[str]) -> List[str]:
        keep = set(referenced)
        dropped = [i for i in self._sources if i not in keep]
        for i in dropped:
            self.release(i)
        return dropped


def as_library(sources: SourceLibrary | Sequence[SourceImage]) -> SourceLibrary:
    if isinstance(sources, SourceLibrary):
        return sources
    return SourceLibrary(sources)


def load_folder(folder: Path, recursive: bool = False) -> SourceLibrary:
    files = iter_image_files(folder, recursive=recursive)
    used: set[str] = set()
    sources: List[SourceImage] = []
    for p in files:
        sid = p.stem
        n = 2
        while sid in used:
            sid = f"{p.stem}-{n}"
            n += 1
        used.add(sid)
        sources.append(read_source(p, source_id=sid))
    return SourceLibrary(sources)
