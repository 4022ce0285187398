"""End-to-end mosaic generation: decode, analyse, match, compose, encode."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable

import numpy as np

from photo_mosaic.analyzer import analyze
from photo_mosaic.compositor import MosaicResult, compose
from photo_mosaic.config import MosaicConfig
from photo_mosaic.corpus import TileCorpus, build_corpus
from photo_mosaic.errors import EmptyCorpusError, InvalidRegionError
from photo_mosaic.image_io import decode_image
from photo_mosaic.matcher import TileMatcher, make_selection

logger = logging.getLogger(__name__)


def generate_mosaic(
    source_bytes: bytes,
    corpus: TileCorpus,
    config: MosaicConfig,
    rng: np.random.Generator | None = None,
) -> MosaicResult:
    """Build a mosaic of *source_bytes* from the tiles in *corpus*.

    The run fails as a whole if any cell cannot be matched; no partially
    filled mosaic is returned.

    Raises:
        DecodeError:        source bytes cannot be decoded.
        EmptyCorpusError:   the corpus holds no tiles.
        InvalidRegionError: the source is smaller than a single tile.
        NoCandidateError:   the dithering radius excluded every tile for a cell.
    """
    source = decode_image(source_bytes)

    if not len(corpus):
        raise EmptyCorpusError("Cannot build a mosaic from an empty tile corpus")
    if corpus.divisions != config.quadrant_divisions:
        msg = (
            f"Corpus fingerprints use {corpus.divisions} divisions, "
            f"config asks for {config.quadrant_divisions}"
        )
        raise ValueError(msg)

    h, w = source.shape[:2]
    if w < config.tile_width or h < config.tile_height:
        msg = f"Source {w}x{h} is smaller than one {config.tile_width}x{config.tile_height} tile"
        raise InvalidRegionError(msg)

    rng = rng if rng is not None else np.random.default_rng(config.seed)
    cells = analyze(source, config.tile_width, config.tile_height, config.quadrant_divisions)
    x_count, y_count = cells.shape[:2]

    matcher = TileMatcher(corpus, make_selection(config.selection, rng))

    def _match(x: int, y: int, exclusion: frozenset[str]) -> str:
        return matcher.match(cells[x, y], exclusion)

    logger.info(
        "Matching %d cells against %d tiles  (selection=%s, radius=%d)",
        x_count * y_count, len(corpus), config.selection, config.dithering_radius,
    )
    t0 = time.perf_counter()
    result = compose(
        source,
        config.output_tile_width,
        config.output_tile_height,
        x_count,
        y_count,
        _match,
        corpus,
        dithering_radius=config.dithering_radius,
        underlay_alpha=config.underlay_alpha,
        rng=rng,
    )
    logger.info("Mosaic generated  (%.1f s)", time.perf_counter() - t0)
    return result


def create_mosaic(
    source_bytes: bytes,
    tile_sources: Iterable[tuple[str, bytes]],
    config: MosaicConfig,
    rng: np.random.Generator | None = None,
) -> bytes:
    """Normalise *tile_sources*, build the mosaic and return it as JPEG bytes."""
    corpus = build_corpus(
        tile_sources,
        config.tile_width,
        config.tile_height,
        config.scale_multiplier,
        config.quadrant_divisions,
        config.workers,
    )
    result = generate_mosaic(source_bytes, corpus, config, rng)
    return result.encode(config.jpeg_quality)
