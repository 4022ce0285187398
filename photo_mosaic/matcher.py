"""Tile matching with pluggable selection strategies."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence
from typing import Protocol

import numpy as np

from photo_mosaic.config import SELECTION_MODES
from photo_mosaic.corpus import TileCorpus

logger = logging.getLogger(__name__)


class SelectionStrategy(Protocol):
    def select(self, ranked: Sequence[tuple[str, float]]) -> str:
        """Pick a tile id from candidates sorted by ascending distance."""
        ...


class StrictBestSelection:
    """Always the closest tile."""

    def select(self, ranked: Sequence[tuple[str, float]]) -> str:
        return ranked[0][0]


class NearBestSelection:
    """Usually the closest tile, sometimes the runner-up.

    With probability *runner_up_probability* the second-best candidate is
    returned instead of the best one.

    Args:
        rng: Random source; pass a seeded generator for reproducible runs.
        runner_up_probability: Chance of returning the second-best tile.
    """

    def __init__(
        self,
        rng: np.random.Generator | None = None,
        runner_up_probability: float = 0.2,
    ) -> None:
        if not 0.0 <= runner_up_probability <= 1.0:
            msg = f"runner_up_probability must be within [0, 1], got {runner_up_probability}"
            raise ValueError(msg)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.runner_up_probability = runner_up_probability

    def select(self, ranked: Sequence[tuple[str, float]]) -> str:
        if len(ranked) < 2:
            return ranked[0][0]
        if self.rng.random() < self.runner_up_probability:
            return ranked[1][0]
        return ranked[0][0]


def make_selection(
    name: str,
    rng: np.random.Generator | None = None,
) -> SelectionStrategy:
    """Build the selection strategy named in :class:`MosaicConfig`."""
    if name == "strict":
        return StrictBestSelection()
    if name == "near_best":
        return NearBestSelection(rng)
    msg = f"Unknown selection {name!r}. Choose from: {SELECTION_MODES}"
    raise ValueError(msg)


class TileMatcher:
    """Match source-cell fingerprints against a :class:`TileCorpus`."""

    def __init__(
        self,
        corpus: TileCorpus,
        selection: SelectionStrategy | None = None,
    ) -> None:
        self.corpus = corpus
        self.selection = selection if selection is not None else StrictBestSelection()

    def match(
        self,
        fingerprint: np.ndarray,
        exclusion: Collection[str] = frozenset(),
    ) -> str:
        """Return the id of the selected tile for *fingerprint*.

        Tiles whose id is in *exclusion* are never returned.

        Raises:
            EmptyCorpusError: if the corpus holds no tiles.
            NoCandidateError: if *exclusion* removes every tile.
        """
        if isinstance(self.selection, StrictBestSelection):
            return self.corpus.query(fingerprint, exclusion)
        ranked = self.corpus.ranked(fingerprint, exclusion)
        return self.selection.select(ranked)
