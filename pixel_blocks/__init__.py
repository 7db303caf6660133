"""Public interface for the Pixel Blocks renderer."""

from __future__ import annotations

from .analysis import RegionStats, compute_edge_map, luminance, luminance_map, region_statistics
from .config import RenderParameters, Settings, hex_to_rgb, load_settings, save_settings
from .io import ImageLoadError, load_image, save_image
from .renderer import Block, BlockRenderer, RenderStats, render, render_placeholder

__all__ = [
    "Block",
    "BlockRenderer",
    "ImageLoadError",
    "RegionStats",
    "RenderParameters",
    "RenderStats",
    "Settings",
    "compute_edge_map",
    "hex_to_rgb",
    "load_image",
    "load_settings",
    "luminance",
    "luminance_map",
    "region_statistics",
    "render",
    "render_placeholder",
    "save_image",
    "save_settings",
]
