"""Tile corpus: normalised tiles plus a brute-force fingerprint index."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Collection, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np

from photo_mosaic.errors import DecodeError, EmptyCorpusError, NoCandidateError
from photo_mosaic.fingerprint import fingerprint_distances
from photo_mosaic.image_io import load_image
from photo_mosaic.tiles import Tile, TileCache, normalize

logger = logging.getLogger(__name__)


class TileCorpus:
    """Registered tiles, queried by fingerprint distance.

    Every query scans all fingerprints. Ties are broken by insertion order:
    the tile that was added first wins.
    """

    def __init__(self, tiles: Iterable[Tile] = ()) -> None:
        self._lock = threading.Lock()
        self._tiles: dict[str, Tile] = {}
        self._ids: list[str] = []
        self._stack: np.ndarray | None = None
        for tile in tiles:
            self.add(tile)

    def add(self, tile: Tile) -> None:
        """Register *tile*. Safe to call from several threads."""
        with self._lock:
            if tile.tile_id in self._tiles:
                msg = f"Tile {tile.tile_id!r} is already registered"
                raise ValueError(msg)
            if self._ids:
                expected = self._tiles[self._ids[0]].fingerprint.shape
                if tile.fingerprint.shape != expected:
                    msg = (
                        f"Tile {tile.tile_id!r} fingerprint shape "
                        f"{tile.fingerprint.shape} != corpus shape {expected}"
                    )
                    raise ValueError(msg)
            self._tiles[tile.tile_id] = tile
            self._ids.append(tile.tile_id)
            self._stack = None

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, tile_id: object) -> bool:
        return tile_id in self._tiles

    def __iter__(self) -> Iterator[Tile]:
        return (self._tiles[tid] for tid in list(self._ids))

    def __getitem__(self, tile_id: str) -> Tile:
        return self._tiles[tile_id]

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    @property
    def divisions(self) -> int | None:
        """Fingerprint granularity F of the registered tiles (None when empty)."""
        if not self._ids:
            return None
        return self._tiles[self._ids[0]].fingerprint.shape[0]

    def _fingerprint_stack(self) -> np.ndarray:
        with self._lock:
            if self._stack is None:
                self._stack = np.stack([self._tiles[t].fingerprint for t in self._ids])
            return self._stack

    def distances(self, fingerprint: np.ndarray) -> np.ndarray:
        """(N,) distances from *fingerprint* to every tile, in insertion order."""
        if not self._ids:
            raise EmptyCorpusError("No tiles registered in the corpus")
        stack = self._fingerprint_stack()
        if fingerprint.shape != stack.shape[1:]:
            msg = f"Fingerprint shape {fingerprint.shape} != corpus shape {stack.shape[1:]}"
            raise ValueError(msg)
        return fingerprint_distances(fingerprint, stack)

    def _candidate_mask(self, exclusion: Collection[str]) -> np.ndarray:
        mask = np.ones(len(self._ids), dtype=bool)
        if exclusion:
            for i, tid in enumerate(self._ids):
                if tid in exclusion:
                    mask[i] = False
        if not mask.any():
            msg = f"All {len(self._ids)} tiles are excluded"
            raise NoCandidateError(msg)
        return mask

    def ranked(
        self,
        fingerprint: np.ndarray,
        exclusion: Collection[str] = frozenset(),
    ) -> list[tuple[str, float]]:
        """Candidates sorted by ascending distance, excluded ids removed.

        Raises:
            EmptyCorpusError: if no tiles are registered.
            NoCandidateError: if *exclusion* removes every tile.
        """
        dist = self.distances(fingerprint)
        mask = self._candidate_mask(exclusion)
        order = np.argsort(dist, kind="stable")
        return [(self._ids[i], float(dist[i])) for i in order if mask[i]]

    def query(
        self,
        fingerprint: np.ndarray,
        exclusion: Collection[str] = frozenset(),
    ) -> str:
        """Id of the closest non-excluded tile."""
        dist = self.distances(fingerprint)
        mask = self._candidate_mask(exclusion)
        return self._ids[int(np.argmin(np.where(mask, dist, np.inf)))]


def build_corpus(
    sources: Iterable[tuple[str, bytes]],
    tile_width: int,
    tile_height: int,
    scale_multiplier: int = 1,
    divisions: int = 1,
    workers: int = 4,
) -> TileCorpus:
    """Normalise raw ``(tile_id, bytes)`` sources into a corpus.

    Tiles are normalised on a thread pool but registered in source order, so
    strict-best tie-breaking is reproducible. Undecodable sources and
    duplicate ids are logged and skipped.
    """

    def _normalize(item: tuple[str, bytes]) -> Tile | None:
        tile_id, raw = item
        try:
            return normalize(
                raw, tile_width, tile_height, scale_multiplier, divisions, tile_id=tile_id,
            )
        except DecodeError as exc:
            logger.warning("Skipping tile %s: %s", tile_id, exc)
            return None

    logger.info("Normalising tiles to %dx%d (x%d) …", tile_width, tile_height, scale_multiplier)
    t0 = time.perf_counter()
    corpus = TileCorpus()
    with ThreadPoolExecutor(max_workers=workers) as executor:
        for tile in executor.map(_normalize, sources):
            _register(corpus, tile)
    logger.info("Corpus ready  %d tiles  (%.1f s)", len(corpus), time.perf_counter() - t0)
    return corpus


def load_corpus(
    cache: TileCache,
    divisions: int = 1,
    workers: int = 4,
    tile_ids: Iterable[str] | None = None,
) -> TileCorpus:
    """Load tiles already normalised into *cache*.

    With *tile_ids* only those tiles are loaded, and ids that are not cached
    are skipped. Otherwise every cached file is loaded and its stem becomes
    the tile id.
    """
    if tile_ids is None:
        entries = [(path.stem, path) for path in cache.paths()]
    else:
        entries = []
        for tile_id in tile_ids:
            path = cache.path_for(tile_id)
            if path.exists():
                entries.append((tile_id, path))
            else:
                logger.debug("Tile %s is not cached, skipping", tile_id)

    def _load(entry: tuple[str, Path]) -> Tile | None:
        tile_id, path = entry
        try:
            return Tile.from_array(tile_id, load_image(path), divisions)
        except DecodeError as exc:
            logger.warning("Skipping cached tile %s: %s", path.name, exc)
            return None

    t0 = time.perf_counter()
    corpus = TileCorpus()
    with ThreadPoolExecutor(max_workers=workers) as executor:
        for tile in executor.map(_load, entries):
            _register(corpus, tile)
    logger.info(
        "Loaded %d cached tiles from %s  (%.1f s)",
        len(corpus), cache.directory, time.perf_counter() - t0,
    )
    return corpus


def _register(corpus: TileCorpus, tile: Tile | None) -> None:
    if tile is None:
        return
    if tile.tile_id in corpus:
        logger.warning("Duplicate tile id %s, keeping the first", tile.tile_id)
        return
    corpus.add(tile)
