"""Render settings: slider-level defaults, clamping, colors and persistence."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]

# ---------------------------------------------------------------------------
# Fixed constants
# ---------------------------------------------------------------------------
MAX_DIMENSION = 1200  # longest side of the working raster

# One speckle per this many block pixels, only on blocks wider/taller than
# SPECKLE_MIN_SIDE.
SPECKLE_AREA = 60
SPECKLE_MIN_SIDE = 4

PLACEHOLDER_SIZE = 640

DEFAULT_FOREGROUND: RGB = (255, 90, 0)

_HEX_DIGITS = re.compile(r"[0-9a-fA-F]{6}")

SETTINGS_FILE = Path.home() / ".pixel_blocks.json"


# ---------------------------------------------------------------------------
# Control ranges exposed by the GUI: (minimum, maximum)
# ---------------------------------------------------------------------------
SLIDER_RANGES: Dict[str, Tuple[int, int]] = {
    "size": (2, 64),
    "gap": (0, 50),
    "local": (0, 100),
    "edge": (0, 255),
    "variance": (0, 2000),
    "min_size": (2, 32),
    "bias": (-64, 64),
}


def hex_to_rgb(value: Optional[str]) -> RGB:
    """Parse ``#rrggbb`` / ``rrggbb`` / ``#rgb`` into an RGB triple.

    Empty values fall back to the default foreground color.
    """
    if not value:
        return DEFAULT_FOREGROUND
    text = value.strip()
    if text.startswith("#"):
        text = text[1:]
    if len(text) == 3:
        text = "".join(ch * 2 for ch in text)
    if not _HEX_DIGITS.fullmatch(text):
        raise ValueError(f"Invalid hex color: {value!r}")
    num = int(text, 16)
    return (num >> 16) & 255, (num >> 8) & 255, num & 255


def rgb_to_hex(color: RGB) -> str:
    r, g, b = (max(0, min(255, int(c))) for c in color)
    return f"#{r:02x}{g:02x}{b:02x}"


@dataclass
class Settings:
    """User-adjustable settings, stored the way the controls hold them.

    ``gap`` and ``local`` are integer percentages; everything is converted and
    clamped by :meth:`RenderParameters.from_settings`.
    """

    size: int = 12
    gap: int = 12
    local: int = 80
    edge: int = 18
    variance: float = 30.0
    min_size: int = 4
    bias: int = 0
    invert: bool = False
    block_color: str = "#ff5a00"
    bg_color: str = "#ffffff"

    def updated(self, **changes) -> "Settings":
        """Return a copy with the non-``None`` values in ``changes`` applied."""
        data = asdict(self)
        data.update({key: value for key, value in changes.items() if value is not None})
        return Settings(**data)


@dataclass(frozen=True)
class RenderParameters:
    """Immutable snapshot consumed by a single render pass."""

    block_size: int = 12
    gap_percent: float = 0.12
    local_factor: float = 0.8
    edge_boost: float = 18.0
    variance_threshold: float = 30.0
    min_block_size: int = 4
    brightness_bias: float = 0.0
    invert: bool = False
    foreground_color: RGB = DEFAULT_FOREGROUND
    background_color: RGB = (255, 255, 255)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RenderParameters":
        """Clamp raw settings into the ranges the renderer relies on."""
        return cls(
            block_size=max(2, int(settings.size)),
            gap_percent=max(0.0, min(0.5, int(settings.gap) / 100)),
            local_factor=int(settings.local) / 100,
            edge_boost=float(settings.edge),
            variance_threshold=float(settings.variance),
            min_block_size=max(2, int(settings.min_size)),
            brightness_bias=float(settings.bias),
            invert=bool(settings.invert),
            foreground_color=hex_to_rgb(settings.block_color),
            background_color=hex_to_rgb(settings.bg_color or "#ffffff"),
        )


def load_settings(path: Path = SETTINGS_FILE) -> Settings:
    """Load settings from JSON, returning defaults if the file is absent or unreadable."""
    settings = Settings()
    if not path.exists():
        return settings

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Could not load settings from %s: %s", path, exc)
        return settings

    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: expected a JSON object", path)
        return settings

    values = {}
    for field_ in fields(Settings):
        if field_.name not in data:
            continue
        try:
            values[field_.name] = _coerce_setting(data[field_.name], getattr(settings, field_.name))
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring setting %r in %s: %s", field_.name, path, exc)
    logger.debug("Loaded settings from %s", path)
    return settings.updated(**values)


def _coerce_setting(value, default):
    """Convert a JSON value to the type of the field's default, or raise."""
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise TypeError(f"expected true/false, got {value!r}")
        return value
    if isinstance(default, str):
        if not isinstance(value, str):
            raise TypeError(f"expected a hex color string, got {value!r}")
        hex_to_rgb(value)
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {value!r}")
    if isinstance(default, int):
        if value != int(value):
            raise ValueError(f"expected a whole number, got {value!r}")
        return int(value)
    return float(value)


def save_settings(settings: Settings, path: Path = SETTINGS_FILE) -> Tuple[bool, Optional[str]]:
    """Save settings to JSON.

    Returns:
        Tuple of (success, error_message)
    """
    try:
        with open(path, "w") as f:
            json.dump(asdict(settings), f, indent=2)
        return True, None
    except OSError as exc:
        return False, str(exc)
