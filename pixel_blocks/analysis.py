"""
Luminance, edge magnitude and region statistics.

Everything here is read-only with respect to the pixels it is given; the
renderer computes the luminance and edge maps once per pass and then samples
them per block.
"""

from __future__ import annotations

from typing import NamedTuple

import cv2
import numpy as np

# Rec. 709 luma weights
LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float64)


class RegionStats(NamedTuple):
    mean: float
    variance: float


def luminance(r: float, g: float, b: float) -> float:
    """Perceptual brightness of a single RGB pixel."""
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def luminance_map(pixels: np.ndarray) -> np.ndarray:
    """Per-pixel luminance of an ``H x W x C`` array; any alpha channel is ignored."""
    rgb = pixels[..., :3].astype(np.float64)
    return rgb @ LUMA_WEIGHTS


def compute_edge_map(lum: np.ndarray) -> np.ndarray:
    """
    Sobel gradient magnitude of a luminance map.

    Neighbours outside the raster replicate the nearest border pixel, so a
    flat image yields an all-zero map right up to its corners.

    Args:
        lum: ``H x W`` float luminance map

    Returns:
        ``H x W`` float64 array of non-negative magnitudes
    """
    lum = np.ascontiguousarray(lum, dtype=np.float64)
    gx = cv2.Sobel(lum, cv2.CV_64F, 1, 0, ksize=3, borderType=cv2.BORDER_REPLICATE)
    gy = cv2.Sobel(lum, cv2.CV_64F, 0, 1, ksize=3, borderType=cv2.BORDER_REPLICATE)
    return np.hypot(gx, gy)


def region_statistics(lum: np.ndarray, x: int, y: int, width: int, height: int) -> RegionStats:
    """
    Mean and population variance of luminance over a rectangle.

    The rectangle is clipped to the map; an empty region yields zeros.
    """
    h, w = lum.shape[:2]
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(w, x + width), min(h, y + height)
    if x1 <= x0 or y1 <= y0:
        return RegionStats(0.0, 0.0)

    region = lum[y0:y1, x0:x1]
    mean = float(region.mean())
    variance = float(np.square(region).mean()) - mean * mean
    return RegionStats(mean, variance)


def region_max(values: np.ndarray, x: int, y: int, width: int, height: int) -> float:
    """Largest value of a 2-D map inside a rectangle (0 for an empty region)."""
    h, w = values.shape[:2]
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(w, x + width), min(h, y + height)
    if x1 <= x0 or y1 <= y0:
        return 0.0
    return float(values[y0:y1, x0:x1].max())
