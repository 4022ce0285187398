"""Average-colour fingerprints and the quadrant distance metric."""

from __future__ import annotations

import numpy as np
from skimage.util import view_as_blocks

from photo_mosaic.errors import InvalidRegionError

Rect = tuple[int, int, int, int]  # (x, y, width, height)


def fingerprint(
    bitmap: np.ndarray,
    rect: Rect,
    divisions: int = 1,
) -> np.ndarray:
    """Reduce a region of *bitmap* to an F x F grid of average colours.

    The region is split into ``divisions x divisions`` equal sub-rectangles
    using integer division; pixels left over in the last row/column are not
    averaged. Each channel mean is truncated to an integer.

    Args:
        bitmap:    (H, W, 3) uint8 RGB.
        rect:      ``(x, y, width, height)`` of the region.
        divisions: Quadrant division count F.

    Returns:
        (F, F, 3) uint8 - indexed ``[row, column, channel]``.
    """
    if divisions <= 0:
        msg = f"Division count must be positive, got {divisions}"
        raise InvalidRegionError(msg)
    if bitmap.ndim != 3 or bitmap.shape[2] < 3:
        msg = f"Expected an (H, W, 3) bitmap, got shape {bitmap.shape}"
        raise InvalidRegionError(msg)

    x, y, width, height = rect
    bitmap_h, bitmap_w = bitmap.shape[:2]
    if (
        x < 0 or y < 0 or width <= 0 or height <= 0
        or x + width > bitmap_w or y + height > bitmap_h
    ):
        msg = f"Region {rect} lies outside the {bitmap_w}x{bitmap_h} bitmap"
        raise InvalidRegionError(msg)

    sub_w = width // divisions
    sub_h = height // divisions
    if sub_w == 0 or sub_h == 0:
        msg = f"Region {width}x{height} is too small for {divisions} divisions"
        raise InvalidRegionError(msg)

    region = bitmap[y : y + sub_h * divisions, x : x + sub_w * divisions, :3]
    # (F, F, 1, sub_h, sub_w, 3)
    blocks = view_as_blocks(region, (sub_h, sub_w, 3))
    sums = blocks.sum(axis=(2, 3, 4), dtype=np.int64)
    return (sums // (sub_h * sub_w)).astype(np.uint8)


def fingerprint_distances(query: np.ndarray, stack: np.ndarray) -> np.ndarray:
    """Distance from *query* to every fingerprint in *stack*.

    For each quadrant the absolute differences of the *squared* channel
    values are summed and square-rooted; the per-quadrant results are then
    summed.

    Args:
        query: (F, F, 3) fingerprint.
        stack: (N, F, F, 3) fingerprints.

    Returns:
        (N,) float64.
    """
    q2 = query.astype(np.float64) ** 2
    s2 = stack.astype(np.float64) ** 2
    per_quadrant = np.sqrt(np.sum(np.abs(s2 - q2), axis=-1))
    return per_quadrant.reshape(len(stack), -1).sum(axis=1)


def fingerprint_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Distance between two fingerprints of the same granularity."""
    if a.shape != b.shape:
        msg = f"Fingerprint shapes differ: {a.shape} vs {b.shape}"
        raise ValueError(msg)
    return float(fingerprint_distances(a, b[np.newaxis])[0])
