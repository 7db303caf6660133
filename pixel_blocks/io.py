"""Loading, normalising, resampling and saving rasters."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import MAX_DIMENSION

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".tif", ".tiff", ".webp"}
DEFAULT_EXPORT_NAME = "pfp_pixel.png"

ImageSource = Union[Image.Image, np.ndarray]


class ImageLoadError(ValueError):
    """Raised when a file cannot be decoded as an image."""


def load_image(path: Union[str, Path]) -> Image.Image:
    """Open and fully decode an image file."""
    path = Path(path)
    if not path.is_file():
        raise ImageLoadError(f"Image not found: {path}")
    try:
        with Image.open(path) as img:
            img.load()
            return img.copy()
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageLoadError(f"Not a readable image: {path} ({exc})") from exc


def to_rgb_array(source: ImageSource) -> np.ndarray:
    """Normalise a PIL image or array to an ``H x W x 3`` uint8 array.

    Fully transparent pixels read as black, like a freshly cleared canvas.
    """
    if isinstance(source, Image.Image):
        if source.mode not in ("RGB", "RGBA"):
            source = source.convert("RGBA")
        array = np.asarray(source)
    else:
        array = np.asarray(source)

    if array.ndim == 2:
        array = np.stack([array] * 3, axis=-1)
    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise ValueError(f"Expected an RGB or RGBA image, got array of shape {array.shape}")
    if array.shape[0] == 0 or array.shape[1] == 0:
        raise ValueError("Image has no pixels.")

    array = array.astype(np.uint8, copy=False)
    if array.shape[2] == 4:
        rgb = array[:, :, :3].copy()
        rgb[array[:, :, 3] == 0] = 0
        return rgb
    return np.ascontiguousarray(array)


def resolve_working_size(width: int, height: int, max_dim: int = MAX_DIMENSION) -> Tuple[int, int]:
    """Aspect-preserving size capped at ``max_dim``; never upscales."""
    ratio = min(1.0, max_dim / max(width, height))
    # half-up rounding, not round-half-even
    return (
        max(1, int(math.floor(width * ratio + 0.5))),
        max(1, int(math.floor(height * ratio + 0.5))),
    )


def scale_to_working(source: ImageSource, max_dim: int = MAX_DIMENSION) -> np.ndarray:
    """Return the source as an RGB array resampled to the working size."""
    pixels = to_rgb_array(source)
    ih, iw = pixels.shape[:2]
    w, h = resolve_working_size(iw, ih, max_dim)
    if (w, h) == (iw, ih):
        return pixels
    logger.debug("Resampling %dx%d -> %dx%d", iw, ih, w, h)
    return cv2.resize(pixels, (w, h), interpolation=cv2.INTER_AREA)


def save_image(raster: np.ndarray, path: Union[str, Path]) -> Path:
    """Write an output raster; the format follows the file suffix."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(raster).save(path)
    return path
