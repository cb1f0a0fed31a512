from __future__ import annotations

import logging
import threading
import tkinter as tk
from dataclasses import replace
from pathlib import Path
from tkinter import filedialog, messagebox
from tkinter import ttk

from PIL import Image, ImageTk

from .assets import SourceLibrary, load_folder, new_asset_id, read_source
from .compositor import CenterImage, compose_content, stack_layers
from .config import CENTER_MODES, BundleConfig
from .engine import IDLE, ROTATE_HANDLE, SelectionEngine
from .errors import BundleCoverError, ExportInProgressError
from .export import Exporter
from .fonts import CENTER_TEXT_FONTS, FontLibrary
from .geometry import ASPECT_RATIOS, rotate_point
from .layouts import CUSTOM, LAYOUT_KINDS, compute_frames
from .scene import Scene, item_rect, new_overlay, positions_from_frames
from .shapes import SHAPE_LABELS


logger = logging.getLogger(__name__)

PREVIEW_MAX_SIDE = 640
SELECTION_COLOR = "#2563eb"
HANDLE_SIZE = 5

_SHIFT_MASK = 0x0001
_CONTROL_MASK = 0x0004


class BundleCoverGui(tk.Tk):
    def __init__(self) -> None:
        super().__init__()
        self.title("Bundle Cover")
        self.geometry("1120x760")

        self.library = SourceLibrary()
        self.assets = SourceLibrary()
        self.fonts = FontLibrary()
        self.exporter = Exporter(fonts=self.fonts)
        self.engine = SelectionEngine(Scene(), (PREVIEW_MAX_SIDE, PREVIEW_MAX_SIDE))
        self.engine.subscribe(self._on_scene_changed)

        self.input_var = tk.StringVar(value=str(Path.cwd()))
        self.recursive_var = tk.BooleanVar(value=False)
        self.aspect_var = tk.StringVar(value="1:1")
        self.layout_var = tk.StringVar(value="dividedGrid")
        self.per_row_var = tk.StringVar(value="")
        self.spacing_var = tk.DoubleVar(value=5.0)
        self.safe_var = tk.DoubleVar(value=20.0)
        self.background_var = tk.StringVar(value="transparent")
        self.background_color_var = tk.StringVar(value="#ffffff")
        self.center_mode_var = tk.StringVar(value="text")
        self.shape_var = tk.StringVar(value="roundedRect")
        self.shape_color_var = tk.StringVar(value="#fef3c7")
        self.title_var = tk.StringVar(value="Clipart Bundle")
        self.subtitle_var = tk.StringVar(value="20 PNGs | Transparent | Commercial Use | 300 DPI")
        self.title_font_var = tk.StringVar(value="Open Sans")
        self.subtitle_font_var = tk.StringVar(value="Open Sans")
        self.auto_size_var = tk.BooleanVar(value=False)
        self.wrap_var = tk.BooleanVar(value=True)
        self.status_var = tk.StringVar(value="")

        # preset fields without a widget survive load/save untouched
        self._config = BundleConfig()
        self._background_id: str | None = None
        self._center_image: CenterImage | None = None

        self._preview_tk: ImageTk.PhotoImage | None = None
        self._view_size = (PREVIEW_MAX_SIDE, PREVIEW_MAX_SIDE)
        self._render_running = False
        self._render_dirty = False
        self._progress: ttk.Progressbar | None = None

        self._build_ui()

    def _build_ui(self) -> None:
        self.columnconfigure(1, weight=1)
        self.rowconfigure(0, weight=1)

        left = ttk.Frame(self, padding=12)
        left.grid(row=0, column=0, sticky="nsw")
        right = ttk.Frame(self, padding=12)
        right.grid(row=0, column=1, sticky="nsew")
        right.columnconfigure(0, weight=1)
        right.rowconfigure(1, weight=1)

        row = 0

        def label(text: str) -> None:
            nonlocal row
            ttk.Label(left, text=text).grid(row=row, column=0, sticky="w")
            row += 1

        def place(widget: tk.Widget, pady: tuple = (2, 6)) -> None:
            nonlocal row
            widget.grid(row=row, column=0, sticky="ew", pady=pady)
            row += 1

        label("Images folder")
        in_row = ttk.Frame(left)
        in_row.columnconfigure(0, weight=1)
        ttk.Entry(in_row, textvariable=self.input_var, width=36).grid(row=0, column=0, sticky="ew")
        ttk.Button(in_row, text="Choose...", command=self._choose_input).grid(row=0, column=1, padx=(6, 0))
        place(in_row)
        place(ttk.Checkbutton(left, text="Scan subfolders", variable=self.recursive_var))

        label("Aspect ratio / layout")
        combo_row = ttk.Frame(left)
        ttk.Combobox(combo_row, textvariable=self.aspect_var, values=list(ASPECT_RATIOS), state="readonly", width=8).grid(row=0, column=0)
        ttk.Combobox(combo_row, textvariable=self.layout_var, values=list(LAYOUT_KINDS), state="readonly", width=14).grid(row=0, column=1, padx=(6, 0))
        ttk.Entry(combo_row, textvariable=self.per_row_var, width=5).grid(row=0, column=2, padx=(6, 0))
        place(combo_row)

        label("Spacing % / text-safe %")
        place(ttk.Scale(left, from_=0.0, to=20.0, variable=self.spacing_var, orient="horizontal"), pady=(2, 2))
        place(ttk.Scale(left, from_=5.0, to=60.0, variable=self.safe_var, orient="horizontal"))

        label("Background")
        bg_row = ttk.Frame(left)
        ttk.Combobox(
            bg_row,
            textvariable=self.background_var,
            values=["transparent", "color", "backgroundImage"],
            state="readonly",
            width=16,
        ).grid(row=0, column=0)
        ttk.Entry(bg_row, textvariable=self.background_color_var, width=9).grid(row=0, column=1, padx=(6, 0))
        ttk.Button(bg_row, text="Image...", command=self._choose_background).grid(row=0, column=2, padx=(6, 0))
        place(bg_row)

        label("Center")
        center_row = ttk.Frame(left)
        ttk.Combobox(center_row, textvariable=self.center_mode_var, values=list(CENTER_MODES), state="readonly", width=8).grid(row=0, column=0)
        ttk.Button(center_row, text="Center image...", command=self._choose_center_image).grid(row=0, column=1, padx=(6, 0))
        place(center_row)

        label("Center shape")
        shape_row = ttk.Frame(left)
        ttk.Combobox(shape_row, textvariable=self.shape_var, values=list(SHAPE_LABELS), state="readonly", width=14).grid(row=0, column=0)
        ttk.Entry(shape_row, textvariable=self.shape_color_var, width=9).grid(row=0, column=1, padx=(6, 0))
        place(shape_row)

        label("Title / subtitle")
        place(ttk.Entry(left, textvariable=self.title_var, width=40), pady=(2, 2))
        place(ttk.Entry(left, textvariable=self.subtitle_var, width=40))
        font_row = ttk.Frame(left)
        ttk.Combobox(font_row, textvariable=self.title_font_var, values=CENTER_TEXT_FONTS, width=16).grid(row=0, column=0)
        ttk.Combobox(font_row, textvariable=self.subtitle_font_var, values=CENTER_TEXT_FONTS, width=16).grid(row=0, column=1, padx=(6, 0))
        place(font_row)
        opt_row = ttk.Frame(left)
        ttk.Checkbutton(opt_row, text="Auto size", variable=self.auto_size_var).grid(row=0, column=0)
        ttk.Checkbutton(opt_row, text="Wrap", variable=self.wrap_var).grid(row=0, column=1, padx=(6, 0))
        place(opt_row)

        btn_row = ttk.Frame(left)
        btn_row.columnconfigure((0, 1), weight=1)
        self.preview_btn = ttk.Button(btn_row, text="Load & preview", command=self._on_preview)
        self.preview_btn.grid(row=0, column=0, sticky="ew")
        ttk.Button(btn_row, text="Add overlay...", command=self._on_add_overlay).grid(row=0, column=1, sticky="ew", padx=(6, 0))
        ttk.Button(btn_row, text="Load preset...", command=self._on_load_preset).grid(row=1, column=0, sticky="ew", pady=(6, 0))
        ttk.Button(btn_row, text="Save preset...", command=self._on_save_preset).grid(row=1, column=1, sticky="ew", padx=(6, 0), pady=(6, 0))
        self.export_btn = ttk.Button(btn_row, text="Export PNG", command=lambda: self._on_export("png"))
        self.export_btn.grid(row=2, column=0, sticky="ew", pady=(6, 0))
        self.export_webp_btn = ttk.Button(btn_row, text="Export WebP", command=lambda: self._on_export("webp"))
        self.export_webp_btn.grid(row=2, column=1, sticky="ew", padx=(6, 0), pady=(6, 0))
        place(btn_row, pady=(10, 6))

        self._progress = ttk.Progressbar(left, mode="indeterminate")
        place(self._progress)
        ttk.Label(left, textvariable=self.status_var, foreground="#444").grid(row=row, column=0, sticky="w")

        tools = ttk.Frame(right)
        tools.grid(row=0, column=0, sticky="w", pady=(0, 8))
        actions = [
            ("Duplicate", self.engine.duplicate),
            ("Delete", self._delete_selection),
            ("Mirror H", self.engine.mirror_horizontal),
            ("Mirror V", self.engine.mirror_vertical),
            ("Front", self.engine.bring_to_front),
            ("Forward", self.engine.bring_forward),
            ("Backward", self.engine.send_backward),
            ("Back", self.engine.send_to_back),
        ]
        for i, (text, command) in enumerate(actions):
            ttk.Button(tools, text=text, command=command).grid(row=0, column=i, padx=(0 if i == 0 else 4, 0))

        self.canvas = tk.Canvas(right, background="#e5e7eb", highlightthickness=0)
        self.canvas.grid(row=1, column=0, sticky="nsew")
        self.canvas.bind("<ButtonPress-1>", self._on_pointer_down)
        self.canvas.bind("<B1-Motion>", self._on_pointer_move)
        self.canvas.bind("<ButtonRelease-1>", self._on_pointer_up)
        self.canvas.bind("<KeyPress>", self._on_key)
        self.canvas.bind("<FocusOut>", self._on_focus_out)

        for var in (
            self.aspect_var,
            self.layout_var,
            self.per_row_var,
            self.spacing_var,
            self.safe_var,
            self.background_var,
            self.background_color_var,
            self.center_mode_var,
            self.shape_var,
            self.shape_color_var,
            self.title_var,
            self.subtitle_var,
            self.title_font_var,
            self.subtitle_font_var,
            self.auto_size_var,
            self.wrap_var,
        ):
            var.trace_add("write", lambda *_: self._on_config_changed())

    # -- configuration -------------------------------------------------

    def _config_from_ui(self) -> BundleConfig:
        per_row = self.per_row_var.get().strip()
        return replace(
            self._config,
            aspect_ratio=self.aspect_var.get(),
            layout_style=self.layout_var.get(),
            images_per_row=int(per_row) if per_row.isdigit() else None,
            image_spacing_percent=round(float(self.spacing_var.get()), 1),
            text_safe_area_percent=round(float(self.safe_var.get()), 1),
            background_mode=self.background_var.get(),
            background_color=self.background_color_var.get().strip(),
            center_mode=self.center_mode_var.get(),
            center_shape=self.shape_var.get(),
            shape_color=self.shape_color_var.get().strip(),
            title_text=self.title_var.get(),
            subtitle_text=self.subtitle_var.get(),
            title_font=self.title_font_var.get(),
            subtitle_font=self.subtitle_font_var.get(),
            title_font_size_auto=bool(self.auto_size_var.get()),
            subtitle_font_size_auto=bool(self.auto_size_var.get()),
            wrap_text=bool(self.wrap_var.get()),
        )

    def _apply_config(self, config: BundleConfig) -> None:
        self._config = config
        self.aspect_var.set(config.aspect_ratio)
        self.layout_var.set(config.layout_style)
        self.per_row_var.set(str(config.images_per_row or ""))
        self.spacing_var.set(config.image_spacing_percent)
        self.safe_var.set(config.text_safe_area_percent)
        self.background_var.set(config.background_mode)
        self.background_color_var.set(config.background_color)
        self.center_mode_var.set(config.center_mode)
        self.shape_var.set(config.center_shape)
        self.shape_color_var.set(config.shape_color)
        self.title_var.set(config.title_text)
        self.subtitle_var.set(config.subtitle_text)
        self.title_font_var.set(config.title_font)
        self.subtitle_font_var.set(config.subtitle_font)
        self.auto_size_var.set(config.title_font_size_auto)
        self.wrap_var.set(config.wrap_text)

    def _on_config_changed(self) -> None:
        try:
            config = self._config_from_ui()
        except ValueError as e:
            self.status_var.set(str(e))
            return
        layout_changed = config.layout_style != self._config.layout_style or config.aspect_ratio != self._config.aspect_ratio
        self._config = config
        if layout_changed:
            self._reseed_scene()
        self._update_view_size()
        self._request_render()

    def _reseed_scene(self) -> None:
        """Custom layout starts from the divided-grid frames; other layouts drop manual positions."""
        scene = self.engine.scene
        if self._config.layout_style != CUSTOM or len(self.library) == 0:
            self.engine.set_scene(Scene(overlays=scene.overlays))
            return
        canvas = self._config.canvas
        ids = self.library.decode_all(crop=True)
        frames = compute_frames(CUSTOM, canvas.width, canvas.height, len(ids), self._config.text_safe(canvas), self._config.images_per_row)
        self.engine.set_scene(Scene(images=positions_from_frames(ids, frames, canvas), overlays=scene.overlays))

    def _update_view_size(self) -> None:
        canvas = self._config.canvas
        scale = PREVIEW_MAX_SIDE / float(max(canvas.width, canvas.height))
        self._view_size = (int(round(canvas.width * scale)), int(round(canvas.height * scale)))
        self.engine.set_view_size(*self._view_size)

    # -- file actions --------------------------------------------------

    def _choose_input(self) -> None:
        folder = filedialog.askdirectory()
        if folder:
            self.input_var.set(folder)

    def _choose_background(self) -> None:
        path = filedialog.askopenfilename(filetypes=[("Images", "*.png;*.jpg;*.jpeg;*.webp"), ("All", "*.*")])
        if not path:
            return
        src = read_source(Path(path), source_id=new_asset_id("background"))
        self.assets.add(src)
        if self._background_id is not None:
            self.assets.release(self._background_id)
        self._background_id = src.id
        self.background_var.set("backgroundImage")
        self._request_render()

    def _choose_center_image(self) -> None:
        path = filedialog.askopenfilename(filetypes=[("Images", "*.png;*.jpg;*.jpeg;*.webp"), ("All", "*.*")])
        if not path:
            return
        src = read_source(Path(path), source_id=new_asset_id("center"))
        self.assets.add(src)
        if self._center_image is not None:
            self.assets.release(self._center_image.source_id)
        self._center_image = CenterImage(src.id)
        self.center_mode_var.set("image")
        self._request_render()

    def _on_add_overlay(self) -> None:
        path = filedialog.askopenfilename(filetypes=[("Images", "*.png;*.jpg;*.jpeg;*.webp"), ("All", "*.*")])
        if not path:
            return
        try:
            src = read_source(Path(path), source_id=new_asset_id("overlay"))
            self.assets.add(src)
            img = self.assets.image(src.id)
        except (OSError, BundleCoverError) as e:
            messagebox.showerror("Error", str(e))
            return
        self.engine.add_overlay(new_overlay(src.id, src.id, img.width, img.height, self._config.canvas))

    def _on_load_preset(self) -> None:
        path = filedialog.askopenfilename(filetypes=[("Preset", "*.json"), ("All", "*.*")])
        if not path:
            return
        try:
            config = BundleConfig.load(Path(path))
        except (OSError, ValueError) as e:
            messagebox.showerror("Error", f"Could not load preset: {e}")
            return
        self._apply_config(config)

    def _on_save_preset(self) -> None:
        path = filedialog.asksaveasfilename(defaultextension=".json", filetypes=[("Preset", "*.json")])
        if path:
            self._config_from_ui().save(Path(path))
            self.status_var.set(f"Saved preset: {path}")

    def _on_preview(self) -> None:
        try:
            self.library = load_folder(Path(self.input_var.get()), recursive=bool(self.recursive_var.get()))
        except FileNotFoundError as e:
            messagebox.showerror("Error", str(e))
            return
        self.status_var.set(f"{len(self.library)} images")
        self._reseed_scene()
        self._update_view_size()
        self._request_render()

    def _delete_selection(self) -> None:
        self.engine.delete()
        scene = self.engine.scene
        if self._config.layout_style == CUSTOM:
            self.library.release_unreferenced(p.source_id for p in scene.images)
        keep = {o.source_id for o in scene.overlays}
        if self._background_id is not None:
            keep.add(self._background_id)
        if self._center_image is not None:
            keep.add(self._center_image.source_id)
        self.assets.release_unreferenced(keep)

    # -- rendering -----------------------------------------------------

    def _set_busy(self, busy: bool) -> None:
        state = "disabled" if busy else "normal"
        self.export_btn.configure(state=state)
        self.export_webp_btn.configure(state=state)
        if self._progress is not None:
            if busy:
                self._progress.start(10)
            else:
                self._progress.stop()

    def _request_render(self) -> None:
        if len(self.library) == 0:
            return
        if self._render_running:
            self._render_dirty = True
            return
        self._render_running = True
        self._render_dirty = False
        config = self._config
        scene = self.engine.scene
        threading.Thread(target=self._render, args=(config, scene), daemon=True).start()

    def _render(self, config: BundleConfig, scene: Scene) -> None:
        try:
            positions = scene.images if config.layout_style == CUSTOM else None
            content = compose_content(self.library, config, positions=positions)
            img = stack_layers(
                content,
                config,
                self.assets,
                scene.overlays,
                center_image=self._center_image,
                background_id=self._background_id,
                fonts=self.fonts,
            )
            img.thumbnail(self._view_size, Image.Resampling.BILINEAR)

            def update_ui() -> None:
                self._preview_tk = ImageTk.PhotoImage(img)
                self._draw_preview()

            self.after(0, update_ui)
        except Exception as e:
            logger.exception("preview render failed")
            msg = str(e)
            self.after(0, lambda m=msg: self.status_var.set(f"Preview failed: {m}"))
        finally:
            self.after(0, self._render_done)

    def _render_done(self) -> None:
        self._render_running = False
        if self._render_dirty:
            self._request_render()

    def _on_scene_changed(self, _scene: Scene) -> None:
        self._draw_preview()
        self._request_render()

    def _draw_preview(self) -> None:
        c = self.canvas
        c.delete("all")
        if self._preview_tk is not None:
            c.create_image(0, 0, image=self._preview_tk, anchor="nw")

        vw, vh = self._view_size
        scene = self.engine.scene
        for item in scene.stacking_order():
            if item.id not in scene.selection:
                continue
            r = item_rect(item, vw, vh)
            cx, cy = r.center
            corners = [(r.x, r.y), (r.right, r.y), (r.right, r.bottom), (r.x, r.bottom)]
            points = [rotate_point(px, py, cx, cy, item.rotation) for px, py in corners]
            c.create_polygon(*[v for p in points for v in p], outline=SELECTION_COLOR, fill="", width=2)

            handles = self.engine.handle_points(item)
            top_x, top_y = handles["n"]
            rot_x, rot_y = handles[ROTATE_HANDLE]
            c.create_line(top_x, top_y, rot_x, rot_y, fill=SELECTION_COLOR)
            for name, (hx, hy) in handles.items():
                shape = c.create_oval if name == ROTATE_HANDLE else c.create_rectangle
                shape(hx - HANDLE_SIZE, hy - HANDLE_SIZE, hx + HANDLE_SIZE, hy + HANDLE_SIZE, outline=SELECTION_COLOR, fill="white")

        band = self.engine.band
        if band is not None:
            c.create_rectangle(band.x, band.y, band.right, band.bottom, outline=SELECTION_COLOR, dash=(4, 2))

    # -- pointer & keyboard -------------------------------------------

    def _on_pointer_down(self, event: tk.Event) -> None:
        self.canvas.focus_set()
        additive = bool(event.state & (_SHIFT_MASK | _CONTROL_MASK))
        self.engine.pointer_down(event.x, event.y, additive=additive)
        self._draw_preview()

    def _on_pointer_move(self, event: tk.Event) -> None:
        self.engine.pointer_move(event.x, event.y)
        self._draw_preview()

    def _on_pointer_up(self, event: tk.Event) -> None:
        self.engine.pointer_up(event.x, event.y)
        self._draw_preview()

    def _on_focus_out(self, _event: tk.Event) -> None:
        if self.engine.state != IDLE:
            self.engine.cancel()
            self._draw_preview()

    def _on_key(self, event: tk.Event) -> None:
        if event.keysym in ("Delete", "BackSpace"):
            self._delete_selection()
            return
        self.engine.key(event.keysym, shift=bool(event.state & _SHIFT_MASK))

    # -- export --------------------------------------------------------

    def _on_export(self, fmt: str) -> None:
        config = self._config_from_ui()
        scene = self.engine.scene

        def export_worker() -> None:
            try:
                self.after(0, lambda: self._set_busy(True))
                self.after(0, lambda: self.status_var.set("Exporting..."))
                result = self.exporter.export(
                    self.library,
                    config,
                    scene=scene,
                    fmt=fmt,
                    center_image=self._center_image,
                    background_id=self._background_id,
                    assets=self.assets,
                )
                self.after(0, lambda: self._save_result(result))
            except ExportInProgressError as e:
                msg = str(e)
                self.after(0, lambda m=msg: self.status_var.set(m))
            except BundleCoverError as e:
                msg = str(e)
                self.after(0, lambda m=msg: messagebox.showerror("Error", m))
            finally:
                self.after(0, lambda: self._set_busy(False))

        threading.Thread(target=export_worker, daemon=True).start()

    def _save_result(self, result) -> None:
        path = filedialog.asksaveasfilename(initialfile=result.filename, defaultextension=f".{result.fmt}")
        if not path:
            return
        out_path = Path(path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(result.data)
        self.status_var.set(f"Saved {out_path.name} ({result.width}x{result.height})")


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = BundleCoverGui()
    app.mainloop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
