import io
from pathlib import Path

import pytest
from PIL import Image

from bundle_cover.assets import SourceImage


def png_bytes(size=(120, 80), color=(220, 40, 40, 255), mode="RGBA") -> bytes:
    img = Image.new(mode, size, color=color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_source():
    """Factory for in-memory source images."""

    def make(source_id: str, size=(120, 80), color=(220, 40, 40, 255)) -> SourceImage:
        return SourceImage(id=source_id, name=f"{source_id}.png", data=png_bytes(size, color))

    return make


@pytest.fixture
def four_sources(make_source):
    colors = [(220, 40, 40, 255), (40, 200, 40, 255), (40, 40, 220, 255), (200, 200, 40, 255)]
    return [make_source(f"img{i}", size=(100 + i * 10, 80), color=c) for i, c in enumerate(colors)]


@pytest.fixture
def image_folder(tmp_path: Path):
    """A folder with three PNGs, one broken file and a non-image file."""
    folder = tmp_path / "bundle"
    folder.mkdir()
    for name, color in (("a", "red"), ("b", "green"), ("c", "blue")):
        Image.new("RGB", (64, 48), color=color).save(folder / f"{name}.png")
    (folder / "broken.png").write_bytes(b"not really a png")
    (folder / "notes.txt").write_text("ignore me")
    return folder


@pytest.fixture
def measure():
    """Deterministic text measurer: every character is half the font size wide."""

    def fake(text: str, family: str, weight: int, size: int) -> float:
        return len(text) * size * 0.5

    return fake
