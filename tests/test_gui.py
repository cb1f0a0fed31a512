import tkinter as tk

import pytest
from PIL import Image

from bundle_cover import gui as gui_module
from bundle_cover.config import BundleConfig


@pytest.fixture
def window():
    try:
        app = gui_module.BundleCoverGui()
    except tk.TclError as e:
        pytest.skip(f"no display: {e}")
    app.withdraw()
    yield app
    app.destroy()


def test_center_image_picker_switches_to_image_mode(window, tmp_path, monkeypatch):
    logo = tmp_path / "logo.png"
    Image.new("RGBA", (30, 30), (0, 0, 0, 255)).save(logo)
    monkeypatch.setattr(gui_module.filedialog, "askopenfilename", lambda **_: str(logo))

    window._choose_center_image()

    assert window._center_image is not None
    assert window._center_image.source_id in window.assets
    assert window._config_from_ui().center_mode == "image"


def test_center_image_picker_replaces_previous_asset(window, tmp_path, monkeypatch):
    logo = tmp_path / "logo.png"
    Image.new("RGBA", (30, 30), (0, 0, 0, 255)).save(logo)
    monkeypatch.setattr(gui_module.filedialog, "askopenfilename", lambda **_: str(logo))

    window._choose_center_image()
    first = window._center_image.source_id
    window._choose_center_image()

    assert first not in window.assets
    assert window._center_image.source_id in window.assets


def test_loaded_preset_sets_center_mode(window):
    window._apply_config(BundleConfig(center_mode="image", center_scale=0.4))
    config = window._config_from_ui()
    assert config.center_mode == "image"
    assert config.center_scale == 0.4
