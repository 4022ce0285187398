"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from photo_mosaic.config import MosaicConfig
from photo_mosaic.corpus import TileCorpus, load_corpus
from photo_mosaic.errors import MosaicError
from photo_mosaic.image_io import (
    collect_images,
    decode_image,
    iter_tile_sources,
    make_comparison_grid,
)
from photo_mosaic.mosaic import generate_mosaic
from photo_mosaic.tiles import TileCache, prepare_tiles, stable_hash

app = typer.Typer(
    name="photo-mosaic",
    help="Rebuild a photograph from a corpus of small tile images.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def _cache_for(cfg: MosaicConfig, tile_dir: Path) -> TileCache:
    """Per-corpus, per-size cache directory under ``cfg.cache_dir``."""
    key = stable_hash(str(tile_dir.resolve()))
    size = f"{cfg.output_tile_width}x{cfg.output_tile_height}"
    return TileCache(cfg.cache_dir / f"{key}_{size}")


def _load_tiles(cfg: MosaicConfig, tile_dir: Path) -> TileCorpus:
    """Cache the tiles in *tile_dir* and load the ones still present there."""
    cache = _cache_for(cfg, tile_dir)
    prepare_tiles(
        iter_tile_sources(tile_dir, cfg.SUPPORTED_EXTENSIONS),
        cache,
        cfg.output_tile_width,
        cfg.output_tile_height,
        workers=cfg.workers,
    )
    tile_ids = [p.stem for p in collect_images(tile_dir, cfg.SUPPORTED_EXTENSIONS)]
    return load_corpus(cache, cfg.quadrant_divisions, cfg.workers, tile_ids=tile_ids)


def _render(
    cfg: MosaicConfig,
    corpus: TileCorpus,
    source_path: Path,
    output_path: Path,
    comparison: bool,
    rng: np.random.Generator,
) -> None:
    t0 = time.perf_counter()
    source_bytes = source_path.read_bytes()
    result = generate_mosaic(source_bytes, corpus, cfg, rng)
    output_path.write_bytes(result.encode(cfg.jpeg_quality))

    if comparison:
        comp_path = output_path.with_name(f"{output_path.stem}_comparison.png")
        make_comparison_grid(decode_image(source_bytes), result.image, comp_path)

    h, w = result.image.shape[:2]
    unique = len({c for column in result.grid.to_list() for c in column})
    console.print(
        f"  [green]✓[/green] {output_path.name}  "
        f"[dim]{w}x{h}  tiles={unique}/{len(corpus)}"
        f"  time={time.perf_counter() - t0:.1f}s[/dim]"
    )


def _banner(cfg: MosaicConfig, tile_dir: Path, images: int) -> None:
    console.print(Panel.fit(
        f"[bold]PHOTO MOSAIC GENERATOR[/bold]\n"
        f"Tiles: {tile_dir}  |  Tile size: {cfg.tile_width}x{cfg.tile_height}"
        f" (x{cfg.scale_multiplier})\n"
        f"Selection: {cfg.selection}  |  Radius: {cfg.dithering_radius}"
        f"  |  Divisions: {cfg.quadrant_divisions}\n"
        f"Images: {images}",
        border_style="cyan",
    ))


# Defaults come from MosaicConfig - single source of truth
_DEFAULTS = MosaicConfig()


# -- single-image command ----------------------------------------------

@app.command()
def create(
    source: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="Path to the source image",
    ),
    tile_dir: Path = typer.Option(
        _DEFAULTS.tile_dir, "--tiles", "-t", help="Folder with candidate tile images",
    ),
    output: Path = typer.Option(Path("output/mosaic.jpg"), "--output", "-o"),
    tile_width: int = typer.Option(_DEFAULTS.tile_width, "--tile-width", "-w"),
    tile_height: int = typer.Option(_DEFAULTS.tile_height, "--tile-height", "-H"),
    tile_pixels: int | None = typer.Option(
        None, "--tile-pixels", help="Square tile size; overrides width/height",
    ),
    scale: int = typer.Option(
        _DEFAULTS.scale_multiplier, "--scale", "-x", help="Output tile size multiplier",
    ),
    radius: int = typer.Option(
        _DEFAULTS.dithering_radius, "--radius", "-r",
        help="Cells within which a tile may not repeat (-1 = no limit)",
    ),
    divisions: int = typer.Option(
        _DEFAULTS.quadrant_divisions, "--divisions", "-d", help="Fingerprint grid F x F",
    ),
    selection: str = typer.Option(
        _DEFAULTS.selection, "--selection", help="'strict' or 'near_best'",
    ),
    seed: int | None = typer.Option(_DEFAULTS.seed, "--seed", "-s"),
    workers: int = typer.Option(_DEFAULTS.workers, "--workers"),
    quality: int = typer.Option(_DEFAULTS.jpeg_quality, "--quality", "-q"),
    cache_dir: Path = typer.Option(_DEFAULTS.cache_dir, "--cache"),
    comparison: bool = typer.Option(False, "--comparison/--no-comparison"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Build a mosaic of a single image."""
    _setup_logging(verbose)

    try:
        cfg = MosaicConfig(
            tile_width=tile_width,
            tile_height=tile_height,
            scale_multiplier=scale,
            dithering_radius=radius,
            quadrant_divisions=divisions,
            selection=selection,
            seed=seed,
            jpeg_quality=quality,
            workers=workers,
            tile_dir=tile_dir,
            cache_dir=cache_dir,
        ).with_tile_pixels(tile_pixels)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from exc

    output.parent.mkdir(parents=True, exist_ok=True)

    try:
        corpus = _load_tiles(cfg, tile_dir)
        _render(cfg, corpus, source, output, comparison, np.random.default_rng(cfg.seed))
    except MosaicError as exc:
        console.print(f"[red]✗ {source.name}: {exc}[/red]")
        raise typer.Exit(1) from exc


# -- batch command -----------------------------------------------------

@app.command()
def batch(
    input_dir: Path = typer.Option(
        Path("images"), "--input", "-i", help="Folder with source images",
    ),
    tile_dir: Path = typer.Option(
        _DEFAULTS.tile_dir, "--tiles", "-t", help="Folder with candidate tile images",
    ),
    output_dir: Path = typer.Option(
        _DEFAULTS.output_dir, "--output", "-o", help="Results folder",
    ),
    tile_width: int = typer.Option(_DEFAULTS.tile_width, "--tile-width", "-w"),
    tile_height: int = typer.Option(_DEFAULTS.tile_height, "--tile-height", "-H"),
    tile_pixels: int | None = typer.Option(None, "--tile-pixels"),
    scale: int = typer.Option(_DEFAULTS.scale_multiplier, "--scale", "-x"),
    radius: int = typer.Option(_DEFAULTS.dithering_radius, "--radius", "-r"),
    divisions: int = typer.Option(_DEFAULTS.quadrant_divisions, "--divisions", "-d"),
    selection: str = typer.Option(_DEFAULTS.selection, "--selection"),
    seed: int | None = typer.Option(_DEFAULTS.seed, "--seed", "-s"),
    workers: int = typer.Option(_DEFAULTS.workers, "--workers"),
    quality: int = typer.Option(_DEFAULTS.jpeg_quality, "--quality", "-q"),
    cache_dir: Path = typer.Option(_DEFAULTS.cache_dir, "--cache"),
    comparison: bool = typer.Option(True, "--comparison/--no-comparison"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Build a mosaic for every image in INPUT_DIR and write results to OUTPUT_DIR."""
    _setup_logging(verbose)
    logger = logging.getLogger("photo_mosaic")

    try:
        cfg = MosaicConfig(
            tile_width=tile_width,
            tile_height=tile_height,
            scale_multiplier=scale,
            dithering_radius=radius,
            quadrant_divisions=divisions,
            selection=selection,
            seed=seed,
            jpeg_quality=quality,
            workers=workers,
            tile_dir=tile_dir,
            cache_dir=cache_dir,
            output_dir=output_dir,
        ).with_tile_pixels(tile_pixels)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from exc

    input_dir.mkdir(exist_ok=True)
    output_dir.mkdir(parents=True, exist_ok=True)

    images = collect_images(input_dir, cfg.SUPPORTED_EXTENSIONS)
    if not images:
        console.print(f"\n[yellow]No images found in {input_dir}/[/yellow]")
        console.print("Place .jpg / .png / ... files there and re-run.\n")
        raise typer.Exit(0)

    _banner(cfg, tile_dir, len(images))

    try:
        corpus = _load_tiles(cfg, tile_dir)
    except MosaicError as exc:
        console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(1) from exc

    rng = np.random.default_rng(cfg.seed)
    failures = 0
    for idx, img_path in enumerate(images, 1):
        console.rule(f"[bold cyan][{idx}/{len(images)}] {img_path.name}[/bold cyan]")
        try:
            _render(
                cfg, corpus, img_path,
                output_dir / f"{img_path.stem}_mosaic.jpg",
                comparison, rng,
            )
        except MosaicError as exc:
            failures += 1
            logger.error("Failed %s: %s", img_path.name, exc)

    if failures:
        console.print(Panel.fit(
            f"[bold red]{failures} of {len(images)} FAILED[/bold red]"
            f" - results in [bold]{output_dir}/[/bold]",
            border_style="red",
        ))
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold green]ALL DONE[/bold green] - results in [bold]{output_dir}/[/bold]",
        border_style="green",
    ))


# -- tile preparation command ------------------------------------------

@app.command()
def prepare(
    tile_dir: Path = typer.Option(
        _DEFAULTS.tile_dir, "--tiles", "-t", help="Folder with candidate tile images",
    ),
    cache_dir: Path = typer.Option(_DEFAULTS.cache_dir, "--cache"),
    tile_width: int = typer.Option(_DEFAULTS.tile_width, "--tile-width", "-w"),
    tile_height: int = typer.Option(_DEFAULTS.tile_height, "--tile-height", "-H"),
    scale: int = typer.Option(_DEFAULTS.scale_multiplier, "--scale", "-x"),
    workers: int = typer.Option(_DEFAULTS.workers, "--workers"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Crop and resize the tile corpus into the cache ahead of time."""
    _setup_logging(verbose)

    try:
        cfg = MosaicConfig(
            tile_width=tile_width,
            tile_height=tile_height,
            scale_multiplier=scale,
            workers=workers,
            tile_dir=tile_dir,
            cache_dir=cache_dir,
        )
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from exc

    cache = _cache_for(cfg, tile_dir)
    written = prepare_tiles(
        iter_tile_sources(tile_dir, cfg.SUPPORTED_EXTENSIONS),
        cache,
        cfg.output_tile_width,
        cfg.output_tile_height,
        workers=cfg.workers,
    )
    console.print(
        f"[green]✓[/green] {written} new tiles, {len(cache)} total in {cache.directory}"
    )


if __name__ == "__main__":
    app()
