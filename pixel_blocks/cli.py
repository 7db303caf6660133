"""
Batch command line interface for the Pixel Blocks renderer.

Renders every input image with one set of parameters and writes the results
as PNG files, plus an optional CSV with per-image render statistics.

Usage examples
--------------

Render every image in ``input/`` into ``output/`` with the default look::

    python -m pixel_blocks.cli input --output-dir output

Bigger blocks, no gaps, reproducible speckles::

    python -m pixel_blocks.cli photo.jpg --size 24 --gap 0 --seed 7

Reuse settings saved from the GUI and override one value::

    python -m pixel_blocks.cli photo.jpg --settings ~/.pixel_blocks.json --invert
"""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import numpy as np

from .config import RenderParameters, Settings, load_settings, save_settings
from .io import IMAGE_EXTENSIONS, ImageLoadError, load_image, save_image
from .renderer import BlockRenderer

logger = logging.getLogger("pixel_blocks")

METRIC_FIELDS = [
    "image",
    "width",
    "height",
    "global_mean",
    "top_level_blocks",
    "terminal_blocks",
    "foreground_blocks",
    "foreground_ratio",
    "speckles",
    "max_depth",
    "elapsed",
    "output_path",
]


@dataclass
class BatchConfig:
    """Runtime configuration derived from CLI arguments."""

    inputs: Sequence[Path]
    output_dir: Path
    params: RenderParameters
    seed: Optional[int]
    metrics_path: Optional[Path]


def _setup_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _gather_images(sources: Sequence[Path], recursive: bool) -> List[Path]:
    """Collect candidate image files from the provided locations."""
    seen: set[Path] = set()
    images: List[Path] = []

    for source in sources:
        if source.is_dir():
            iterator: Iterable[Path]
            iterator = source.rglob("*") if recursive else source.iterdir()
            for candidate in iterator:
                if not candidate.is_file():
                    continue
                if candidate.suffix.lower() not in IMAGE_EXTENSIONS:
                    continue
                resolved = candidate.resolve()
                if resolved in seen:
                    continue
                seen.add(resolved)
                images.append(resolved)
        elif source.is_file():
            if source.suffix.lower() not in IMAGE_EXTENSIONS:
                logger.warning("Skipping unsupported file: %s", source)
                continue
            resolved = source.resolve()
            if resolved not in seen:
                seen.add(resolved)
                images.append(resolved)
        else:
            logger.warning("Input path not found: %s", source)

    images.sort()
    return images


def _process_single_image(
    image_path: Path,
    cfg: BatchConfig,
    rng: np.random.Generator,
) -> Optional[dict]:
    """Render one image and write the result; returns its metrics row."""
    try:
        source = load_image(image_path)
    except ImageLoadError as exc:
        logger.error("Rejected %s: %s", image_path.name, exc)
        return None

    try:
        renderer = BlockRenderer(source, cfg.params, rng=rng)
        result = renderer.run()
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("Failed to render %s: %s", image_path.name, exc)
        return None

    output_path = save_image(result, cfg.output_dir / f"{image_path.stem}_blocks.png")
    stats = renderer.stats
    logger.info(
        "%s: %dx%d, %d blocks (%.0f%% foreground) -> %s",
        image_path.name,
        stats.width,
        stats.height,
        stats.terminal_blocks,
        stats.foreground_ratio * 100,
        output_path.name,
    )

    return {
        "image": image_path.name,
        "width": stats.width,
        "height": stats.height,
        "global_mean": round(stats.global_mean, 4),
        "top_level_blocks": stats.top_level_blocks,
        "terminal_blocks": stats.terminal_blocks,
        "foreground_blocks": stats.foreground_blocks,
        "foreground_ratio": round(stats.foreground_ratio, 4),
        "speckles": stats.speckles,
        "max_depth": stats.max_depth,
        "elapsed": round(stats.elapsed, 4),
        "output_path": str(output_path),
    }


def _write_metrics_csv(metrics: List[dict], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=METRIC_FIELDS)
        writer.writeheader()
        writer.writerows(metrics)
    logger.info("Metrics written to %s", path)


def _settings_from_args(args: argparse.Namespace) -> Settings:
    """Defaults, then the settings file, then explicit flags."""
    base = load_settings(args.settings) if args.settings else Settings()
    return base.updated(
        size=args.size,
        gap=args.gap,
        local=args.local,
        edge=args.edge,
        variance=args.variance,
        min_size=args.min_size,
        bias=args.bias,
        invert=args.invert,
        block_color=args.block_color,
        bg_color=args.bg_color,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render images as adaptive pixel blocks.")
    parser.add_argument(
        "inputs",
        nargs="+",
        type=Path,
        help="Image files or directories to process.",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory for rendered images (default: ./output).",
    )
    parser.add_argument(
        "--recursive",
        action="store_true",
        help="When inputs include directories, walk them recursively.",
    )

    look = parser.add_argument_group("render settings")
    look.add_argument("--size", type=int, help="Base block size in pixels (default 12).")
    look.add_argument("--gap", type=int, help="Gap between blocks, percent of block size (0-50).")
    look.add_argument("--local", type=int, help="Local vs global brightness weight, percent (0-100).")
    look.add_argument("--edge", type=int, help="Edge magnitude that forces foreground.")
    look.add_argument("--variance", type=float, help="Luminance variance that triggers subdivision.")
    look.add_argument("--min-size", type=int, help="Smallest block side worth subdividing.")
    look.add_argument("--bias", type=int, help="Brightness bias added to the threshold.")
    look.add_argument(
        "--invert",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Swap foreground and background decisions (--no-invert overrides a settings file).",
    )
    look.add_argument("--block-color", help="Foreground color as hex (default #ff5a00).")
    look.add_argument("--bg-color", help="Background color as hex (default #ffffff).")
    look.add_argument(
        "--settings",
        type=Path,
        help="JSON settings file to start from (explicit flags win).",
    )
    look.add_argument(
        "--save-settings",
        type=Path,
        help="Write the effective settings to this JSON file.",
    )

    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for speckle placement, for reproducible output.",
    )
    parser.add_argument(
        "--metrics-path",
        type=Path,
        help="Write a CSV summary to the provided path (defaults to <output>/metrics.csv).",
    )
    parser.add_argument(
        "--no-metrics",
        action="store_true",
        help="Do not emit the metrics CSV.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    _setup_logging(args.debug)

    try:
        settings = _settings_from_args(args)
        params = RenderParameters.from_settings(settings)
    except ValueError as exc:
        logger.error("Invalid settings: %s", exc)
        return 2

    if args.save_settings:
        ok, error = save_settings(settings, args.save_settings)
        if not ok:
            logger.warning("Could not save settings to %s: %s", args.save_settings, error)

    images = _gather_images(args.inputs, recursive=args.recursive)
    if not images:
        logger.error("No matching images found.")
        return 1

    output_dir = args.output_dir.resolve()
    output_dir.mkdir(parents=True, exist_ok=True)

    metrics_path: Optional[Path]
    if args.no_metrics:
        metrics_path = None
    else:
        metrics_path = args.metrics_path.resolve() if args.metrics_path else output_dir / "metrics.csv"

    cfg = BatchConfig(
        inputs=images,
        output_dir=output_dir,
        params=params,
        seed=args.seed,
        metrics_path=metrics_path,
    )
    logger.debug("Render parameters: %s", cfg.params)
    logger.info("Found %d image(s) to process -> %s", len(images), output_dir)

    rng = np.random.default_rng(cfg.seed)
    metrics_records: List[dict] = []
    for image_path in cfg.inputs:
        record = _process_single_image(image_path, cfg, rng)
        if record is not None:
            metrics_records.append(record)

    if metrics_records and cfg.metrics_path:
        _write_metrics_csv(metrics_records, cfg.metrics_path)

    return 0 if metrics_records else 1


if __name__ == "__main__":
    sys.exit(main())
