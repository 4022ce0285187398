"""Canvas compositing: tonal underlay, random-order placement, darken blend."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

import numpy as np
from PIL import Image

from photo_mosaic.image_io import encode_jpeg
from photo_mosaic.tiles import Tile

logger = logging.getLogger(__name__)

# (x, y, exclusion) -> tile id
MatchFn = Callable[[int, int, frozenset[str]], str]


class MosaicGrid:
    """Tile id assigned to each ``(x, y)`` grid cell; each cell is written once."""

    def __init__(self, x_count: int, y_count: int) -> None:
        self.x_count = x_count
        self.y_count = y_count
        self._cells: list[list[str | None]] = [[None] * y_count for _ in range(x_count)]

    def __getitem__(self, xy: tuple[int, int]) -> str | None:
        x, y = xy
        return self._cells[x][y]

    def assign(self, x: int, y: int, tile_id: str) -> None:
        if self._cells[x][y] is not None:
            msg = f"Cell ({x}, {y}) is already assigned to {self._cells[x][y]!r}"
            raise ValueError(msg)
        self._cells[x][y] = tile_id

    def is_complete(self) -> bool:
        return all(c is not None for column in self._cells for c in column)

    def neighbours(self, x: int, y: int, radius: int) -> frozenset[str]:
        """Ids already assigned within the square of *radius* cells around (x, y).

        A radius of -1 disables exclusion and always yields an empty set.
        """
        if radius < 0:
            return frozenset()
        found = set()
        for nx in range(max(0, x - radius), min(self.x_count, x + radius + 1)):
            for ny in range(max(0, y - radius), min(self.y_count, y + radius + 1)):
                tile_id = self._cells[nx][ny]
                if tile_id is not None:
                    found.add(tile_id)
        return frozenset(found)

    def to_list(self) -> list[list[str | None]]:
        """Copy of the grid indexed ``[x][y]``."""
        return [list(column) for column in self._cells]


@dataclass
class MosaicResult:
    image: np.ndarray  # (H, W, 3) uint8
    grid: MosaicGrid

    def encode(self, quality: int = 80) -> bytes:
        return encode_jpeg(self.image, quality)


def draw_underlay(
    source: np.ndarray,
    width: int,
    height: int,
    alpha: int = 200,
) -> np.ndarray:
    """Stretch *source* to ``width x height`` and wash it with white.

    The white overlay has opacity ``alpha / 255``.
    """
    stretched = Image.fromarray(source).resize((width, height), Image.LANCZOS)
    weight = alpha / 255.0
    out = np.asarray(stretched, dtype=np.float64) * (1.0 - weight) + 255.0 * weight
    return np.clip(np.round(out), 0, 255).astype(np.uint8)


def _fit_tile(image: np.ndarray, width: int, height: int) -> np.ndarray:
    if image.shape[:2] == (height, width):
        return image
    return np.asarray(Image.fromarray(image).resize((width, height), Image.LANCZOS))


def compose(
    source: np.ndarray,
    tile_width_out: int,
    tile_height_out: int,
    x_tile_count: int,
    y_tile_count: int,
    match_fn: MatchFn,
    tiles: Mapping[str, Tile],
    *,
    dithering_radius: int = -1,
    underlay_alpha: int = 200,
    rng: np.random.Generator | None = None,
) -> MosaicResult:
    """Assemble the mosaic canvas.

    Cells are visited in random order without replacement. Each cell is
    matched and drawn before the next one is picked, so the exclusion set
    always reflects every earlier assignment. Tiles are drawn into a layer
    that is merged onto the underlay with darken (per-channel minimum).

    Args:
        source:           (H, W, 3) uint8 source image.
        tile_width_out:   Width of a tile on the canvas.
        tile_height_out:  Height of a tile on the canvas.
        x_tile_count:     Grid columns.
        y_tile_count:     Grid rows.
        match_fn:         ``(x, y, exclusion) -> tile_id``.
        tiles:            Lookup of tile id to :class:`Tile`.
        dithering_radius: Exclusion radius in cells (-1 = none).
        underlay_alpha:   Opacity of the white wash over the source.
        rng:              Random source for the visiting order.

    Returns:
        :class:`MosaicResult` holding the raster and the filled grid.
    """
    if x_tile_count <= 0 or y_tile_count <= 0:
        msg = f"Grid must have at least one cell, got {x_tile_count}x{y_tile_count}"
        raise ValueError(msg)
    rng = rng if rng is not None else np.random.default_rng()

    width = x_tile_count * tile_width_out
    height = y_tile_count * tile_height_out
    logger.info(
        "Compositing %dx%d canvas (%dx%d tiles of %dx%d) …",
        width, height, x_tile_count, y_tile_count, tile_width_out, tile_height_out,
    )
    t0 = time.perf_counter()

    base = draw_underlay(source, width, height, underlay_alpha)
    layer = np.zeros_like(base)
    covered = np.zeros((height, width), dtype=bool)
    grid = MosaicGrid(x_tile_count, y_tile_count)

    remaining = [(x, y) for x in range(x_tile_count) for y in range(y_tile_count)]
    while remaining:
        x, y = remaining.pop(int(rng.integers(len(remaining))))

        exclusion = grid.neighbours(x, y, dithering_radius)
        tile_id = match_fn(x, y, exclusion)
        grid.assign(x, y, tile_id)

        left, top = x * tile_width_out, y * tile_height_out
        layer[top : top + tile_height_out, left : left + tile_width_out] = _fit_tile(
            tiles[tile_id].image, tile_width_out, tile_height_out,
        )
        covered[top : top + tile_height_out, left : left + tile_width_out] = True

    canvas = np.where(covered[..., np.newaxis], np.minimum(base, layer), base)

    logger.info("Canvas composed  (%.2f s)", time.perf_counter() - t0)
    return MosaicResult(canvas.astype(np.uint8), grid)
