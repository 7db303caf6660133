"""
Interactive GUI for Pixel Blocks.

Open or drop an image, then tune the sliders; every change re-renders the
preview immediately on the main thread.

Usage:
    python -m pixel_blocks.gui
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Optional

import numpy as np
from PIL import Image
from PySide6.QtCore import QSize, Qt
from PySide6.QtGui import QAction, QColor, QImage, QPixmap
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QColorDialog,
    QFileDialog,
    QGridLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSlider,
    QVBoxLayout,
    QWidget,
)

from .config import (
    SETTINGS_FILE,
    SLIDER_RANGES,
    RenderParameters,
    Settings,
    hex_to_rgb,
    load_settings,
    rgb_to_hex,
    save_settings,
)
from .io import DEFAULT_EXPORT_NAME, ImageLoadError, load_image, save_image
from .renderer import BlockRenderer, RenderStats, render_placeholder

logger = logging.getLogger(__name__)

SLIDER_LABELS = {
    "size": "Block size",
    "gap": "Gap %",
    "local": "Local weight",
    "edge": "Edge boost",
    "variance": "Variance split",
    "min_size": "Min block",
    "bias": "Brightness bias",
}


def numpy_to_qimage(array: np.ndarray) -> QImage:
    """Convert an RGB numpy array into a QImage."""
    if array.ndim != 3 or array.shape[2] != 3:
        raise ValueError("Expected RGB array for display.")
    height, width, _ = array.shape
    bytes_per_line = 3 * width
    if not array.flags["C_CONTIGUOUS"]:
        array = np.ascontiguousarray(array)
    return QImage(
        array.data, width, height, bytes_per_line, QImage.Format.Format_RGB888
    ).copy()


def format_slider_value(key: str, value: int) -> str:
    if key == "local":
        return f"{value / 100:.2f}"
    return str(value)


class PreviewLabel(QLabel):
    """QLabel specialised for displaying scaled pixmaps."""

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.setMinimumSize(QSize(480, 480))
        self._source: Optional[QPixmap] = None

    def set_image(self, array: np.ndarray) -> None:
        self._source = QPixmap.fromImage(numpy_to_qimage(array))
        self._rescale()

    def _rescale(self) -> None:
        if self._source is None:
            return
        # Nearest-neighbour keeps block edges crisp when zoomed out.
        self.setPixmap(
            self._source.scaled(
                self.size(),
                Qt.AspectRatioMode.KeepAspectRatio,
                Qt.TransformationMode.FastTransformation,
            )
        )

    def resizeEvent(self, event) -> None:  # noqa: N802
        self._rescale()
        super().resizeEvent(event)


class MainWindow(QMainWindow):
    def __init__(self, settings_path: Path = SETTINGS_FILE) -> None:
        super().__init__()
        self.setWindowTitle("Pixel Blocks")
        self.resize(1200, 780)

        self.settings_path = settings_path
        self.image_path: Optional[Path] = None
        self.source: Optional[Image.Image] = None
        self.output: Optional[np.ndarray] = None
        self.rng = np.random.default_rng()

        self.sliders: Dict[str, QSlider] = {}
        self.value_labels: Dict[str, QLabel] = {}
        self._block_color = "#ff5a00"
        self._bg_color = "#ffffff"
        self._suppress_render = False

        self.preview = PreviewLabel()
        self.status_label = QLabel("Ready.")
        self.statusBar().addWidget(self.status_label)

        central = QWidget()
        self.setCentralWidget(central)
        layout = QHBoxLayout()
        central.setLayout(layout)
        layout.addWidget(self.preview, stretch=3)
        layout.addWidget(self._build_controls_panel(), stretch=1)

        self.setAcceptDrops(True)
        self._create_menu()

        self.apply_settings(load_settings(self.settings_path))
        self.preview.set_image(render_placeholder())

    # ----------------------- UI construction helpers -----------------------

    def _create_menu(self) -> None:
        open_action = QAction("&Open Image", self)
        open_action.triggered.connect(self.open_image_dialog)
        self.menuBar().addAction(open_action)
        save_action = QAction("&Save PNG", self)
        save_action.triggered.connect(self.save_output_dialog)
        self.menuBar().addAction(save_action)

    def _build_controls_panel(self) -> QWidget:
        panel = QWidget()
        vbox = QVBoxLayout(panel)

        open_btn = QPushButton("Open Image...")
        open_btn.clicked.connect(self.open_image_dialog)
        vbox.addWidget(open_btn)

        slider_box = QGroupBox("Blocks")
        grid = QGridLayout(slider_box)
        for row, (key, (low, high)) in enumerate(SLIDER_RANGES.items()):
            slider = QSlider(Qt.Orientation.Horizontal)
            slider.setRange(low, high)
            value_label = QLabel()
            value_label.setMinimumWidth(40)
            slider.valueChanged.connect(lambda value, k=key: self._slider_changed(k, value))
            grid.addWidget(QLabel(SLIDER_LABELS[key]), row, 0)
            grid.addWidget(slider, row, 1)
            grid.addWidget(value_label, row, 2)
            self.sliders[key] = slider
            self.value_labels[key] = value_label
        vbox.addWidget(slider_box)

        color_box = QGroupBox("Colors")
        color_layout = QVBoxLayout(color_box)
        self.invert_check = QCheckBox("Invert")
        self.invert_check.toggled.connect(lambda _checked: self.request_render())
        color_layout.addWidget(self.invert_check)
        self.block_color_btn = QPushButton()
        self.block_color_btn.clicked.connect(lambda: self._pick_color("block"))
        self.bg_color_btn = QPushButton()
        self.bg_color_btn.clicked.connect(lambda: self._pick_color("bg"))
        color_layout.addWidget(self.block_color_btn)
        color_layout.addWidget(self.bg_color_btn)
        vbox.addWidget(color_box)

        button_row = QHBoxLayout()
        save_btn = QPushButton("Save PNG...")
        save_btn.clicked.connect(self.save_output_dialog)
        reset_btn = QPushButton("Reset")
        reset_btn.clicked.connect(self.reset_settings)
        button_row.addWidget(save_btn)
        button_row.addWidget(reset_btn)
        vbox.addLayout(button_row)

        vbox.addStretch(1)
        return panel

    # ----------------------------- Settings --------------------------------

    def current_settings(self) -> Settings:
        values = {key: slider.value() for key, slider in self.sliders.items()}
        return Settings(
            invert=self.invert_check.isChecked(),
            block_color=self._block_color,
            bg_color=self._bg_color,
            **values,
        )

    def apply_settings(self, settings: Settings) -> None:
        """Push settings into the controls without triggering a render per widget."""
        self._suppress_render = True
        try:
            data = asdict(settings)
            for key, slider in self.sliders.items():
                slider.setValue(int(data[key]))
                self.value_labels[key].setText(format_slider_value(key, slider.value()))
            self.invert_check.setChecked(settings.invert)
            self._set_color("block", settings.block_color)
            self._set_color("bg", settings.bg_color)
        finally:
            self._suppress_render = False

    def reset_settings(self) -> None:
        self.apply_settings(Settings())
        if self.source is not None:
            self.request_render()
        else:
            self.preview.set_image(render_placeholder())

    def _slider_changed(self, key: str, value: int) -> None:
        self.value_labels[key].setText(format_slider_value(key, value))
        self.request_render()

    def _set_color(self, which: str, value: str) -> None:
        try:
            r, g, b = hex_to_rgb(value)
        except ValueError:
            logger.warning("Ignoring invalid %s color %r", which, value)
            return
        hex_value = rgb_to_hex((r, g, b))
        button = self.block_color_btn if which == "block" else self.bg_color_btn
        title = "Block color" if which == "block" else "Background"
        text_color = "#000000" if 0.2126 * r + 0.7152 * g + 0.0722 * b > 128 else "#ffffff"
        button.setText(f"{title}: {hex_value}")
        button.setStyleSheet(f"background-color: {hex_value}; color: {text_color};")
        if which == "block":
            self._block_color = hex_value
        else:
            self._bg_color = hex_value

    def _pick_color(self, which: str) -> None:
        current = self._block_color if which == "block" else self._bg_color
        color = QColorDialog.getColor(QColor(current), self, "Choose color")
        if not color.isValid():
            return
        self._set_color(which, color.name())
        self.request_render()

    # ----------------------------- Drag & drop -----------------------------

    def dragEnterEvent(self, event) -> None:  # noqa: N802
        if event.mimeData().hasUrls():
            event.acceptProposedAction()
        else:
            super().dragEnterEvent(event)

    def dropEvent(self, event) -> None:  # noqa: N802
        for url in event.mimeData().urls():
            path = Path(url.toLocalFile())
            if path.is_file():
                self.load_image(path)
                break
        event.acceptProposedAction()

    # ----------------------------- Image loading ---------------------------

    def open_image_dialog(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self,
            "Select input image",
            str(Path.cwd()),
            "Images (*.png *.jpg *.jpeg *.bmp *.gif *.tiff *.webp)",
        )
        if path:
            self.load_image(Path(path))

    def load_image(self, path: Path) -> None:
        try:
            source = load_image(path)
        except ImageLoadError as exc:
            QMessageBox.critical(self, "Error", f"Please select an image file (png/jpg/webp).\n\n{exc}")
            return
        self.image_path = path
        self.source = source
        self.setWindowTitle(f"Pixel Blocks - {path.name}")
        self.request_render()

    # ------------------------------ Actions --------------------------------

    def request_render(self) -> None:
        if self._suppress_render or self.source is None:
            return
        params = RenderParameters.from_settings(self.current_settings())
        try:
            renderer = BlockRenderer(self.source, params, rng=self.rng)
            self.output = renderer.run()
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Render failed")
            QMessageBox.critical(self, "Error", f"Render failed:\n{exc}")
            return
        self.preview.set_image(self.output)
        self.status_label.setText(self._format_stats(renderer.stats))

    @staticmethod
    def _format_stats(stats: RenderStats) -> str:
        return (
            f"{stats.width}x{stats.height} | "
            f"{stats.terminal_blocks} blocks ({stats.foreground_ratio * 100:.0f}% filled) | "
            f"depth {stats.max_depth} | {stats.elapsed * 1000:.0f} ms"
        )

    def save_output_dialog(self) -> None:
        if self.output is None:
            QMessageBox.warning(self, "Nothing to save", "Please load an image first.")
            return
        path, _ = QFileDialog.getSaveFileName(
            self,
            "Save rendered image",
            str(Path.cwd() / DEFAULT_EXPORT_NAME),
            "PNG image (*.png)",
        )
        if not path:
            return
        try:
            saved = save_image(self.output, path)
        except (OSError, ValueError) as exc:
            QMessageBox.critical(self, "Error", f"Failed to save image:\n{exc}")
            return
        self.status_label.setText(f"Saved {saved}")

    def closeEvent(self, event) -> None:  # noqa: N802
        ok, error = save_settings(self.current_settings(), self.settings_path)
        if not ok:
            logger.warning("Could not save settings: %s", error)
        super().closeEvent(event)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    app = QApplication([])
    window = MainWindow()
    window.show()
    app.exec()


if __name__ == "__main__":
    main()
