"""Partition the source image into tile-sized cells and fingerprint each one."""

from __future__ import annotations

import logging
import time

import numpy as np

from photo_mosaic.fingerprint import fingerprint

logger = logging.getLogger(__name__)


def grid_shape(
    width: int,
    height: int,
    tile_width: int,
    tile_height: int,
) -> tuple[int, int]:
    """Number of whole tiles ``(x_count, y_count)``; any remainder is dropped."""
    return width // tile_width, height // tile_height


def analyze(
    source: np.ndarray,
    tile_width: int,
    tile_height: int,
    divisions: int = 1,
) -> np.ndarray:
    """Fingerprint every full cell of *source*.

    Cell ``(x, y)`` covers ``(x * tile_width, y * tile_height, tile_width,
    tile_height)``.

    Returns:
        (x_count, y_count, F, F, 3) uint8 - indexed ``[x, y]``.
    """
    h, w = source.shape[:2]
    x_count, y_count = grid_shape(w, h, tile_width, tile_height)

    t0 = time.perf_counter()
    cells = np.zeros((x_count, y_count, divisions, divisions, 3), dtype=np.uint8)
    for y in range(y_count):
        for x in range(x_count):
            rect = (x * tile_width, y * tile_height, tile_width, tile_height)
            cells[x, y] = fingerprint(source, rect, divisions)

    logger.info(
        "Analysed %dx%d source into %dx%d cells  (%.2f s)",
        w, h, x_count, y_count, time.perf_counter() - t0,
    )
    return cells
