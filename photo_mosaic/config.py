"""Centralised configuration via a frozen dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path

SELECTION_MODES = ("strict", "near_best")


@dataclass(frozen=True)
class MosaicConfig:
    """All tuneable parameters for a mosaic run.

    Attributes:
        tile_width:         Width of a source cell in pixels.
        tile_height:        Height of a source cell in pixels.
        scale_multiplier:   Each output tile is ``tile_* x scale_multiplier``.
        dithering_radius:   Grid radius within which a tile may not repeat
                            (-1 = unbounded reuse).
        quadrant_divisions: Fingerprint granularity F (F x F average colours).
        selection:          "strict" (best match) or "near_best" (4/5 best,
                            1/5 runner-up).
        seed:               Random seed for placement order and near-best
                            selection (None = non-deterministic).
        underlay_alpha:     Opacity (0-255) of the white wash over the source
                            underlay.
        jpeg_quality:       Quality of the encoded output image.
        workers:            Thread count for tile preprocessing.
        tile_dir:           Folder holding raw candidate tile images.
        cache_dir:          Folder for normalised tiles.
        output_dir:         Folder for results.
    """

    # Grid
    tile_width: int = 20
    tile_height: int = 20
    scale_multiplier: int = 1

    # Matching
    dithering_radius: int = -1
    quadrant_divisions: int = 1
    selection: str = "strict"  # see SELECTION_MODES
    seed: int | None = None

    # Compositing
    underlay_alpha: int = 200
    jpeg_quality: int = 80

    # Preprocessing
    workers: int = 4

    # Paths
    tile_dir: Path = field(default_factory=lambda: Path("tiles"))
    cache_dir: Path = field(default_factory=lambda: Path(".mosaic_cache"))
    output_dir: Path = field(default_factory=lambda: Path("output"))

    SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
        {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp", ".jfif"}
    )

    def __post_init__(self) -> None:
        if self.tile_width <= 0 or self.tile_height <= 0:
            msg = f"Tile size must be positive, got {self.tile_width}x{self.tile_height}"
            raise ValueError(msg)
        if self.scale_multiplier <= 0:
            msg = f"scale_multiplier must be positive, got {self.scale_multiplier}"
            raise ValueError(msg)
        if self.dithering_radius < -1:
            msg = f"dithering_radius must be -1 or >= 0, got {self.dithering_radius}"
            raise ValueError(msg)
        if self.quadrant_divisions <= 0:
            msg = f"quadrant_divisions must be positive, got {self.quadrant_divisions}"
            raise ValueError(msg)
        if self.selection not in SELECTION_MODES:
            msg = f"Unknown selection {self.selection!r}. Choose from: {SELECTION_MODES}"
            raise ValueError(msg)
        if not 0 <= self.underlay_alpha <= 255:
            msg = f"underlay_alpha must be within 0-255, got {self.underlay_alpha}"
            raise ValueError(msg)
        if not 1 <= self.jpeg_quality <= 100:
            msg = f"jpeg_quality must be within 1-100, got {self.jpeg_quality}"
            raise ValueError(msg)
        if self.workers <= 0:
            msg = f"workers must be positive, got {self.workers}"
            raise ValueError(msg)

    @property
    def output_tile_width(self) -> int:
        return self.tile_width * self.scale_multiplier

    @property
    def output_tile_height(self) -> int:
        return self.tile_height * self.scale_multiplier

    def with_tile_pixels(self, tile_pixels: int | None) -> MosaicConfig:
        """Return a copy using square ``tile_pixels`` tiles (0 / None keeps the current size)."""
        if not tile_pixels:
            return self
        return replace(self, tile_width=tile_pixels, tile_height=tile_pixels)
