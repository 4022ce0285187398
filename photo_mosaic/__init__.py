"""
Photo Mosaic Generator
======================

Rebuild a source photograph from a corpus of small tile images. Each
source cell is reduced to an average-colour fingerprint, matched against
the tile corpus, and drawn over a washed-out copy of the source with a
darken blend so the source's light and shadow show through.

Two tile selection policies ship:

- **Strict best** (closest fingerprint)
- **Near best** (closest 4/5 of the time, runner-up 1/5)
"""

__version__ = "1.0.0"

from photo_mosaic.analyzer import analyze, grid_shape
from photo_mosaic.compositor import MosaicGrid, MosaicResult, compose, draw_underlay
from photo_mosaic.config import MosaicConfig
from photo_mosaic.corpus import TileCorpus, build_corpus, load_corpus
from photo_mosaic.errors import (
    DecodeError,
    EmptyCorpusError,
    InvalidRegionError,
    MosaicError,
    NoCandidateError,
)
from photo_mosaic.fingerprint import fingerprint, fingerprint_distance
from photo_mosaic.matcher import (
    NearBestSelection,
    StrictBestSelection,
    TileMatcher,
    make_selection,
)
from photo_mosaic.mosaic import create_mosaic, generate_mosaic
from photo_mosaic.tiles import Tile, TileCache, crop_box, normalize, prepare_tiles

__all__ = [
    "DecodeError",
    "EmptyCorpusError",
    "InvalidRegionError",
    "MosaicConfig",
    "MosaicError",
    "MosaicGrid",
    "MosaicResult",
    "NearBestSelection",
    "NoCandidateError",
    "StrictBestSelection",
    "Tile",
    "TileCache",
    "TileCorpus",
    "TileMatcher",
    "analyze",
    "build_corpus",
    "compose",
    "create_mosaic",
    "crop_box",
    "draw_underlay",
    "fingerprint",
    "fingerprint_distance",
    "generate_mosaic",
    "grid_shape",
    "load_corpus",
    "make_selection",
    "normalize",
    "prepare_tiles",
]
