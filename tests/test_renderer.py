"""Tests for block decomposition, classification, painting and the full render pass."""

from __future__ import annotations

import math

import numpy as np
import pytest
from PIL import Image

from pixel_blocks.config import RenderParameters
from pixel_blocks.io import resolve_working_size, scale_to_working, to_rgb_array
from pixel_blocks.renderer import (
    Block,
    BlockRenderer,
    classify_block,
    gap_rect,
    paint_block,
    render,
    render_placeholder,
    should_subdivide,
    split_block,
)

FOREGROUND = (255, 0, 0)
BACKGROUND = (255, 255, 255)


def _params(**overrides) -> RenderParameters:
    """Parameters for the small synthetic scenarios: no gap, no blending, no edge boost."""
    values = dict(
        block_size=4,
        gap_percent=0.0,
        local_factor=0.0,
        edge_boost=1000.0,
        variance_threshold=1000.0,
        min_block_size=2,
        brightness_bias=0.0,
        invert=False,
        foreground_color=FOREGROUND,
        background_color=BACKGROUND,
    )
    values.update(overrides)
    return RenderParameters(**values)


def _white(size: int = 4) -> np.ndarray:
    return np.full((size, size, 4), 255, dtype=np.uint8)


def _gradient(width: int = 48, height: int = 32) -> np.ndarray:
    xs = np.linspace(0, 255, width, dtype=np.float64)
    ys = np.linspace(0, 255, height, dtype=np.float64)
    lum = (xs[None, :] * 0.7 + ys[:, None] * 0.3).astype(np.uint8)
    return np.stack([lum, lum, lum], axis=-1)


def _mask(canvas: np.ndarray, color) -> np.ndarray:
    return np.all(canvas == np.array(color, dtype=np.uint8), axis=-1)


# ---------------------------------------------------------------------------
# Tests: Quadtree geometry
# ---------------------------------------------------------------------------


class TestSplitBlock:
    @pytest.mark.parametrize("width,height", [(2, 2), (3, 3), (4, 7), (9, 5), (12, 12), (13, 2)])
    def test_quadrants_tile_parent(self, width, height):
        parent = Block(3, 5, width, height)
        coverage = np.zeros((20, 20), dtype=np.int32)
        for quad in split_block(parent):
            assert quad.width >= 1 and quad.height >= 1
            coverage[quad.y:quad.y + quad.height, quad.x:quad.x + quad.width] += 1

        inside = coverage[5:5 + height, 3:3 + width]
        assert np.all(inside == 1), "Quadrants must cover the parent exactly once"
        assert coverage.sum() == width * height, "Quadrants must not leak outside the parent"

    def test_odd_remainder_goes_right_and_down(self):
        quads = split_block(Block(0, 0, 5, 3))
        assert quads == [
            Block(0, 0, 2, 1),
            Block(2, 0, 3, 1),
            Block(0, 1, 2, 2),
            Block(2, 1, 3, 2),
        ]

    def test_slivers_cannot_split(self):
        assert split_block(Block(0, 0, 1, 8)) is None
        assert split_block(Block(0, 0, 8, 1)) is None

    def test_subdivision_requires_variance_and_size(self):
        params = _params(variance_threshold=10.0, min_block_size=4)
        assert should_subdivide(Block(0, 0, 8, 8), 11.0, params)
        assert not should_subdivide(Block(0, 0, 8, 8), 10.0, params)
        assert not should_subdivide(Block(0, 0, 4, 4), 500.0, params)
        assert should_subdivide(Block(0, 0, 5, 2), 500.0, params)


# ---------------------------------------------------------------------------
# Tests: Classification
# ---------------------------------------------------------------------------


class TestClassifyBlock:
    def test_equal_to_threshold_is_background(self):
        params = _params()
        assert classify_block(100.0, 0.0, 100.0, params) is False
        assert classify_block(99.5, 0.0, 100.0, params) is True

    def test_edge_boost_is_strict(self):
        params = _params(edge_boost=50.0)
        assert classify_block(200.0, 50.0, 100.0, params) is False
        assert classify_block(200.0, 50.1, 100.0, params) is True

    def test_local_factor_blends_means(self):
        # threshold = 100 * 0.5 + 80 * 0.5 + 0 = 90 -> 80 < 90
        assert classify_block(80.0, 0.0, 100.0, _params(local_factor=0.5)) is True
        # fully local: threshold equals the local mean itself
        assert classify_block(80.0, 0.0, 100.0, _params(local_factor=1.0)) is False

    def test_bias_shifts_threshold(self):
        assert classify_block(105.0, 0.0, 100.0, _params(brightness_bias=10.0)) is True
        assert classify_block(95.0, 0.0, 100.0, _params(brightness_bias=-10.0)) is False

    def test_invert_negates(self):
        assert classify_block(50.0, 0.0, 100.0, _params(invert=True)) is False
        assert classify_block(150.0, 0.0, 100.0, _params(invert=True)) is True


# ---------------------------------------------------------------------------
# Tests: Painting
# ---------------------------------------------------------------------------


class TestPaintBlock:
    def test_half_gap_centres_five_by_five(self):
        assert gap_rect(Block(0, 0, 10, 10), 0.5) == (2, 2, 5, 5)

        canvas = np.zeros((10, 10, 3), dtype=np.uint8)
        drawn = paint_block(canvas, Block(0, 0, 10, 10), False, _params(gap_percent=0.5), np.random.default_rng(0))
        assert drawn == 0
        painted = _mask(canvas, BACKGROUND)
        assert painted.sum() == 25
        assert painted[2:7, 2:7].all()
        # 2px margin before, 3px after
        assert not painted[:2].any() and not painted[7:].any()
        assert not painted[:, :2].any() and not painted[:, 7:].any()

    def test_gap_never_erases_block(self):
        assert gap_rect(Block(4, 4, 1, 1), 0.5) == (4, 4, 1, 1)
        assert gap_rect(Block(0, 0, 3, 2), 0.5) == (0, 0, 2, 1)

    def test_foreground_speckles(self):
        canvas = np.zeros((12, 12, 3), dtype=np.uint8)
        dots = paint_block(canvas, Block(0, 0, 12, 12), True, _params(), np.random.default_rng(1))
        assert dots == 144 // 60
        background = _mask(canvas, BACKGROUND).sum()
        foreground = _mask(canvas, FOREGROUND).sum()
        assert 1 <= background <= dots
        assert background + foreground == 144

    def test_speckles_stay_inside_drawn_rect(self):
        canvas = np.zeros((30, 30, 3), dtype=np.uint8)
        params = _params(gap_percent=0.5)
        paint_block(canvas, Block(0, 0, 30, 30), True, params, np.random.default_rng(4))
        x, y, w, h = gap_rect(Block(0, 0, 30, 30), 0.5)
        outside = np.ones((30, 30), dtype=bool)
        outside[y:y + h, x:x + w] = False
        assert not canvas[outside].any()

    def test_small_blocks_have_no_speckles(self):
        canvas = np.zeros((4, 4, 3), dtype=np.uint8)
        assert paint_block(canvas, Block(0, 0, 4, 4), True, _params(), np.random.default_rng(2)) == 0
        assert _mask(canvas, FOREGROUND).all()

    def test_background_blocks_have_no_speckles(self):
        canvas = np.zeros((20, 20, 3), dtype=np.uint8)
        assert paint_block(canvas, Block(0, 0, 20, 20), False, _params(), np.random.default_rng(3)) == 0
        assert _mask(canvas, BACKGROUND).all()


# ---------------------------------------------------------------------------
# Tests: Full render pass
# ---------------------------------------------------------------------------


class TestRender:
    def test_all_white_renders_background(self):
        result = render(_white(), _params(), rng=np.random.default_rng(0))
        assert result.shape == (4, 4, 3)
        assert _mask(result, BACKGROUND).all(), "Mean equal to threshold must stay background"

    def test_black_corner_subdivides(self):
        image = _white()
        image[0, 0] = (0, 0, 0, 255)
        renderer = BlockRenderer(image, _params(variance_threshold=0.0), rng=np.random.default_rng(0))
        result = renderer.run()

        assert renderer.stats.top_level_blocks == 1
        assert renderer.stats.terminal_blocks == 4
        assert renderer.stats.foreground_blocks == 1
        assert _mask(result[0:2, 0:2], FOREGROUND).all()
        rest = np.ones((4, 4), dtype=bool)
        rest[0:2, 0:2] = False
        assert _mask(result, BACKGROUND)[rest].all()

    def test_invert_flips_everything(self):
        rng = np.random.RandomState(8)
        image = rng.randint(0, 256, (16, 16, 3), dtype=np.uint8)
        params = _params(brightness_bias=-1000.0, edge_boost=1e9)

        plain = render(image, params, rng=np.random.default_rng(0))
        inverted = render(image, _params(brightness_bias=-1000.0, edge_boost=1e9, invert=True),
                          rng=np.random.default_rng(0))
        assert _mask(plain, BACKGROUND).all()
        assert _mask(inverted, FOREGROUND).all()

    def test_same_seed_is_identical(self):
        image = _gradient()
        params = _params(block_size=16, variance_threshold=20.0, local_factor=0.8, edge_boost=18.0)
        first = render(image, params, rng=np.random.default_rng(42))
        second = render(image, params, rng=np.random.default_rng(42))
        assert np.array_equal(first, second)

    def test_only_speckles_differ_between_seeds(self):
        image = _gradient()
        params = _params(block_size=16, variance_threshold=1e9, brightness_bias=1000.0)
        first_renderer = BlockRenderer(image, params, rng=np.random.default_rng(1))
        first = first_renderer.run()
        second = render(image, params, rng=np.random.default_rng(2))

        differs = np.any(first != second, axis=-1)
        assert differs.sum() <= 2 * first_renderer.stats.speckles
        fg_or_bg_first = _mask(first, FOREGROUND) | _mask(first, BACKGROUND)
        fg_or_bg_second = _mask(second, FOREGROUND) | _mask(second, BACKGROUND)
        assert fg_or_bg_first.all() and fg_or_bg_second.all()

    def test_recursion_depth_is_bounded(self):
        rng = np.random.RandomState(13)
        image = rng.randint(0, 256, (64, 64, 3), dtype=np.uint8)
        params = _params(block_size=64, variance_threshold=0.0, min_block_size=2)
        renderer = BlockRenderer(image, params, rng=np.random.default_rng(0))
        renderer.run()
        assert renderer.stats.max_depth <= math.ceil(math.log2(64 / 2))
        assert renderer.stats.terminal_blocks <= (64 // 2) ** 2

    def test_global_mean_computed_over_working_raster(self):
        image = _gradient()
        renderer = BlockRenderer(image, _params())
        assert renderer.global_mean == pytest.approx(float(renderer.luminance.mean()))

    def test_top_level_grid_is_clipped(self):
        image = np.zeros((6, 10, 3), dtype=np.uint8)
        renderer = BlockRenderer(image, _params(block_size=4))
        blocks = renderer.top_level_blocks()
        assert [b.width for b in blocks[:3]] == [4, 4, 2]
        assert [b.height for b in blocks[::3]] == [4, 2]
        assert sum(b.width * b.height for b in blocks) == 60

    def test_source_is_not_mutated(self):
        image = _gradient()
        before = image.copy()
        render(image, _params(variance_threshold=0.0), rng=np.random.default_rng(0))
        assert np.array_equal(image, before)

    def test_accepts_pil_image(self):
        pil = Image.fromarray(_gradient(20, 10))
        result = render(pil, _params())
        assert result.shape == (10, 20, 3)
        assert result.dtype == np.uint8

    def test_large_image_is_capped(self):
        image = np.zeros((100, 1300, 3), dtype=np.uint8)
        result = render(image, _params(block_size=32), rng=np.random.default_rng(0))
        assert result.shape == (92, 1200, 3)


# ---------------------------------------------------------------------------
# Tests: Working raster and placeholder
# ---------------------------------------------------------------------------


class TestWorkingRaster:
    def test_resolve_working_size(self):
        assert resolve_working_size(2400, 1200) == (1200, 600)
        assert resolve_working_size(800, 600) == (800, 600)
        assert resolve_working_size(1, 5000) == (1, 1200)
        assert resolve_working_size(2400, 5) == (1200, 3)
        assert resolve_working_size(9, 2400) == (5, 1200)

    def test_scale_to_working(self):
        image = np.zeros((1000, 2400, 3), dtype=np.uint8)
        assert scale_to_working(image).shape == (500, 1200, 3)
        tall = np.zeros((2400, 9, 3), dtype=np.uint8)
        assert scale_to_working(tall).shape == (1200, 5, 3)

    def test_transparent_pixels_read_black(self):
        image = np.full((2, 2, 4), 200, dtype=np.uint8)
        image[0, 0, 3] = 0
        rgb = to_rgb_array(image)
        assert rgb.shape == (2, 2, 3)
        assert tuple(rgb[0, 0]) == (0, 0, 0)
        assert tuple(rgb[1, 1]) == (200, 200, 200)

    def test_grayscale_and_bad_shapes(self):
        assert to_rgb_array(np.zeros((3, 5), dtype=np.uint8)).shape == (3, 5, 3)
        with pytest.raises(ValueError):
            to_rgb_array(np.zeros((3, 5, 2), dtype=np.uint8))

    def test_placeholder(self):
        image = render_placeholder()
        assert image.shape == (640, 640, 3)
        assert tuple(image[5, 5]) == (255, 255, 255)
        assert tuple(image[60, 60]) == (0xF3, 0xF3, 0xF3)
        # caption pixels are darker than the panel
        assert image[300:340, 200:440].min() < 0xF3
