from __future__ import annotations

import logging
import os
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from PIL import ImageFont


logger = logging.getLogger(__name__)

# families offered for the center title/subtitle
CENTER_TEXT_FONTS: List[str] = [
    "Open Sans",
    "Roboto",
    "Lato",
    "Montserrat",
    "Poppins",
    "Inter",
    "Nunito",
    "Work Sans",
    "DM Sans",
    "Pacifico",
    "Caveat",
    "Playfair Display",
]

DEFAULT_FONT_FAMILY = "Open Sans"

FONT_DIRS_ENV = "BUNDLE_COVER_FONT_DIRS"

FONT_EXTS = {".ttf", ".otf", ".ttc"}

_SYSTEM_FONT_DIRS = [
    "/usr/share/fonts",
    "/usr/local/share/fonts",
    "~/.fonts",
    "~/.local/share/fonts",
    "/Library/Fonts",
    "/System/Library/Fonts",
    "~/Library/Fonts",
    "C:/Windows/Fonts",
]

_WEIGHT_SUFFIXES: dict[int, tuple[str, ...]] = {
    400: ("regular", "", "book", "medium"),
    600: ("semibold", "demibold", "bold", "medium", "regular", ""),
    700: ("bold", "semibold", "extrabold", "black", "regular", ""),
}


def _norm(s: str) -> str:
    return re.sub(r"[^a-z0-9]", "", s.lower())


def default_font_dirs() -> List[Path]:
    dirs = [Path(os.path.expanduser(d)) for d in _SYSTEM_FONT_DIRS]
    extra = os.environ.get(FONT_DIRS_ENV, "")
    for d in extra.split(os.pathsep):
        if d.strip():
            dirs.insert(0, Path(os.path.expanduser(d.strip())))
    return dirs


class FontLibrary:
    """Resolves family names to font files and hands out sized Pillow fonts."""

    def __init__(self, dirs: Sequence[Path] | None = None) -> None:
        self._dirs = list(dirs) if dirs is not None else default_font_dirs()
        self._index: Dict[str, Path] | None = None
        self._families: Dict[str, Dict[str, Path]] = {}
        self._fonts: Dict[tuple, ImageFont.FreeTypeFont | ImageFont.ImageFont] = {}
        self._warned: set[str] = set()
        self._lock = threading.Lock()

    def _build_index(self) -> Dict[str, Path]:
        with self._lock:
            if self._index is not None:
                return self._index
            index: Dict[str, Path] = {}
            for d in self._dirs:
                if not d.is_dir():
                    continue
                for p in d.rglob("*"):
                    if p.suffix.lower() in FONT_EXTS and p.is_file():
                        index.setdefault(_norm(p.stem), p)
            self._index = index
            return index

    def load(self, family: str) -> bool:
        """Find the files for a family; False when none exist."""
        key = _norm(family)
        if key in self._families:
            return bool(self._families[key])

        index = self._build_index()
        styles: Dict[str, Path] = {}
        for stem, path in index.items():
            if not stem.startswith(key):
                continue
            rest = stem[len(key):]
            if rest.startswith("italic") or rest.endswith("italic"):
                continue
            # variable fonts carry their axes in the stem, e.g. OpenSans[wdth,wght]
            if "wght" in rest:
                styles.setdefault("", path)
                continue
            styles.setdefault(rest, path)

        with self._lock:
            self._families[key] = styles
        if not styles:
            logger.warning("font %r not found; using the default font", family)
        return bool(styles)

    def load_many(self, families: Iterable[str], workers: int = 4) -> Dict[str, bool]:
        """Load several families concurrently; every load settles, failures included."""
        wanted = list(dict.fromkeys(f for f in families if f))
        if not wanted:
            return {}

        def try_load(family: str) -> bool:
            try:
                return self.load(family)
            except OSError as e:
                logger.warning("font %r failed to load: %s", family, e)
                return False

        with ThreadPoolExecutor(max_workers=max(1, min(workers, len(wanted)))) as ex:
            return dict(zip(wanted, ex.map(try_load, wanted)))

    def path_for(self, family: str, weight: int = 400) -> Path | None:
        if not self.load(family):
            return None
        styles = self._families[_norm(family)]
        bucket = 700 if weight >= 700 else (600 if weight >= 600 else 400)
        for suffix in _WEIGHT_SUFFIXES[bucket]:
            if suffix in styles:
                return styles[suffix]
        return next(iter(styles.values()))

    def font(self, family: str, weight: int, size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
        size = max(1, int(round(size)))
        key = (_norm(family), weight, size)
        cached = self._fonts.get(key)
        if cached is not None:
            return cached

        path = self.path_for(family, weight)
        font: ImageFont.FreeTypeFont | ImageFont.ImageFont | None = None
        if path is not None:
            try:
                font = ImageFont.truetype(str(path), size)
            except OSError as e:
                if family not in self._warned:
                    self._warned.add(family)
                    logger.warning("font file %s unusable (%s); using the default font", path, e)
        if font is None:
            font = ImageFont.load_default(size=size)

        self._fonts[key] = font
        return font

    def measure(self, text: str, family: str, weight: int, size: int) -> float:
        return float(self.font(family, weight, size).getlength(text))
