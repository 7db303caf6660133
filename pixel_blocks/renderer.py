"""
Adaptive pixel-block renderer.

The working raster is cut into a grid of top-level blocks.  Each block is
subdivided quadtree-style while its luminance variance stays above the
threshold; terminal blocks are painted either in the foreground color or the
background color depending on local brightness and edge strength.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from .analysis import (
    compute_edge_map,
    luminance_map,
    region_max,
    region_statistics,
)
from .config import (
    MAX_DIMENSION,
    PLACEHOLDER_SIZE,
    RenderParameters,
    SPECKLE_AREA,
    SPECKLE_MIN_SIDE,
)
from .io import ImageSource, scale_to_working

logger = logging.getLogger(__name__)


class Block(NamedTuple):
    x: int
    y: int
    width: int
    height: int


@dataclass
class RenderStats:
    """Summary of one render pass."""

    width: int = 0
    height: int = 0
    global_mean: float = 0.0
    top_level_blocks: int = 0
    terminal_blocks: int = 0
    foreground_blocks: int = 0
    speckles: int = 0
    max_depth: int = 0
    elapsed: float = 0.0

    @property
    def foreground_ratio(self) -> float:
        if not self.terminal_blocks:
            return 0.0
        return self.foreground_blocks / self.terminal_blocks


# ---------------------------------------------------------------------------
# Block geometry and decisions
# ---------------------------------------------------------------------------


def split_block(block: Block) -> Optional[List[Block]]:
    """Halve a block into four quadrants that tile it exactly.

    The right column and bottom row absorb odd remainders.  Returns ``None``
    for slivers that cannot be halved in both directions.
    """
    x, y, w, h = block
    hw, hh = w // 2, h // 2
    if hw <= 0 or hh <= 0:
        return None
    return [
        Block(x, y, hw, hh),
        Block(x + hw, y, w - hw, hh),
        Block(x, y + hh, hw, h - hh),
        Block(x + hw, y + hh, w - hw, h - hh),
    ]


def should_subdivide(block: Block, variance: float, params: RenderParameters) -> bool:
    return variance > params.variance_threshold and max(block.width, block.height) > params.min_block_size


def classify_block(
    local_mean: float,
    max_edge: float,
    global_mean: float,
    params: RenderParameters,
) -> bool:
    """Return True when the block should be painted in the foreground color.

    Dark blocks (strictly below the blended threshold) and blocks crossed by a
    strong edge are foreground; ``invert`` flips the decision.
    """
    threshold = (
        global_mean * (1 - params.local_factor)
        + local_mean * params.local_factor
        + params.brightness_bias
    )
    use_foreground = local_mean < threshold or max_edge > params.edge_boost
    if params.invert:
        use_foreground = not use_foreground
    return use_foreground


# ---------------------------------------------------------------------------
# Painting
# ---------------------------------------------------------------------------


def gap_rect(block: Block, gap_percent: float) -> Tuple[int, int, int, int]:
    """Drawn rectangle ``(x, y, width, height)`` of a block after the gap inset."""
    x, y, w, h = block
    gap_x = min(w - 1, max(0, int(w * gap_percent)))
    gap_y = min(h - 1, max(0, int(h * gap_percent)))
    draw_w = max(1, w - gap_x)
    draw_h = max(1, h - gap_y)
    return x + gap_x // 2, y + gap_y // 2, draw_w, draw_h


def paint_block(
    canvas: np.ndarray,
    block: Block,
    use_foreground: bool,
    params: RenderParameters,
    rng: np.random.Generator,
) -> int:
    """Paint one terminal block into ``canvas`` in place.

    Returns:
        Number of speckle pixels drawn
    """
    dx, dy, draw_w, draw_h = gap_rect(block, params.gap_percent)
    color = params.foreground_color if use_foreground else params.background_color
    canvas[dy:dy + draw_h, dx:dx + draw_w] = color

    if not use_foreground or (block.width <= SPECKLE_MIN_SIDE and block.height <= SPECKLE_MIN_SIDE):
        return 0

    dots = (block.width * block.height) // SPECKLE_AREA
    if dots <= 0:
        return 0

    height, width = canvas.shape[:2]
    xs = dx + rng.integers(0, draw_w, size=dots)
    ys = dy + rng.integers(0, draw_h, size=dots)
    inside = (xs < width) & (ys < height)
    canvas[ys[inside], xs[inside]] = params.background_color
    return int(np.count_nonzero(inside))


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class BlockRenderer:
    """
    Single render pass over one source image.

    The working raster, its luminance and edge maps and the global mean are
    computed once in the constructor; :meth:`run` paints a fresh output
    raster each time it is called.
    """

    def __init__(
        self,
        source: ImageSource,
        params: RenderParameters,
        rng: Optional[np.random.Generator] = None,
        max_dim: int = MAX_DIMENSION,
    ):
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng()
        self.pixels = scale_to_working(source, max_dim)
        self.height, self.width = self.pixels.shape[:2]
        self.luminance = luminance_map(self.pixels)
        self.global_mean = float(self.luminance.mean())
        self.edges = compute_edge_map(self.luminance)
        self.stats = RenderStats(width=self.width, height=self.height, global_mean=self.global_mean)

    def top_level_blocks(self) -> List[Block]:
        """Row-major grid of base-size blocks, clipped at the right and bottom edges."""
        size = self.params.block_size
        return [
            Block(bx, by, min(size, self.width - bx), min(size, self.height - by))
            for by in range(0, self.height, size)
            for bx in range(0, self.width, size)
        ]

    def run(self) -> np.ndarray:
        start = time.perf_counter()
        canvas = np.empty((self.height, self.width, 3), dtype=np.uint8)
        canvas[:] = self.params.background_color

        self.stats = RenderStats(width=self.width, height=self.height, global_mean=self.global_mean)
        blocks = self.top_level_blocks()
        self.stats.top_level_blocks = len(blocks)
        for block in blocks:
            self._decompose(canvas, block)

        self.stats.elapsed = time.perf_counter() - start
        logger.debug(
            "Rendered %dx%d: %d top-level, %d terminal (%d foreground), depth %d, %.3fs",
            self.width,
            self.height,
            self.stats.top_level_blocks,
            self.stats.terminal_blocks,
            self.stats.foreground_blocks,
            self.stats.max_depth,
            self.stats.elapsed,
        )
        return canvas

    def _decompose(self, canvas: np.ndarray, root: Block) -> None:
        """Depth-first quadtree walk over one top-level block using an explicit stack."""
        params = self.params
        stack: List[Tuple[Block, int]] = [(root, 0)]
        while stack:
            block, depth = stack.pop()
            stats = region_statistics(self.luminance, *block)
            max_edge = region_max(self.edges, *block)
            use_foreground = classify_block(stats.mean, max_edge, self.global_mean, params)

            if should_subdivide(block, stats.variance, params):
                quadrants = split_block(block)
                if quadrants is not None:
                    # reversed so quadrants pop in reading order
                    stack.extend((quad, depth + 1) for quad in reversed(quadrants))
                    continue

            self.stats.terminal_blocks += 1
            self.stats.max_depth = max(self.stats.max_depth, depth)
            if use_foreground:
                self.stats.foreground_blocks += 1
            self.stats.speckles += paint_block(canvas, block, use_foreground, params, self.rng)


def render(
    source: ImageSource,
    params: RenderParameters,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Render ``source`` as adaptive pixel blocks.

    Args:
        source: PIL image or ``H x W x 3/4`` uint8 array
        params: Parameter snapshot used for the whole pass
        rng: Random source for speckle placement (fresh one if omitted)

    Returns:
        ``h x w x 3`` uint8 output raster at working resolution
    """
    return BlockRenderer(source, params, rng=rng).run()


def render_placeholder(size: int = PLACEHOLDER_SIZE) -> np.ndarray:
    """Empty-state image shown before any source image is chosen."""
    image = Image.new("RGB", (size, size), (255, 255, 255))
    draw = ImageDraw.Draw(image)
    draw.rectangle((40, 40, size - 41, size - 41), fill=(0xF3, 0xF3, 0xF3))
    font = ImageFont.load_default(size=18)
    caption = "Choose an image to start"
    left, top, right, bottom = draw.textbbox((0, 0), caption, font=font)
    draw.text(
        ((size - (right - left)) / 2 - left, (size - (bottom - top)) / 2 - top),
        caption,
        fill=(0x99, 0x99, 0x99),
        font=font,
    )
    return np.array(image)
