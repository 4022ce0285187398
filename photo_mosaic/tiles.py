"""Tile preprocessing: aspect-ratio centre-crop, Lanczos resample, on-disk cache.

Candidate images arrive as raw bytes plus an identifier. Each is cropped to
the target aspect ratio around its centre and resampled to the output tile
size. Normalised tiles can be written to a :class:`TileCache`; an identifier
that is already cached is never normalised again.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image

from photo_mosaic.errors import DecodeError
from photo_mosaic.fingerprint import fingerprint
from photo_mosaic.image_io import open_image

logger = logging.getLogger(__name__)

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class Tile:
    """A normalised tile image with its fingerprint.

    Attributes:
        tile_id:     Unique identifier within a corpus.
        image:       (H, W, 3) uint8, read-only.
        fingerprint: (F, F, 3) uint8, read-only.
    """

    tile_id: str
    image: np.ndarray
    fingerprint: np.ndarray

    @classmethod
    def from_array(cls, tile_id: str, image: np.ndarray, divisions: int = 1) -> Tile:
        image = np.array(image[..., :3], dtype=np.uint8)
        h, w = image.shape[:2]
        fp = fingerprint(image, (0, 0, w, h), divisions)
        image.setflags(write=False)
        fp.setflags(write=False)
        return cls(tile_id, image, fp)


# -- identifiers -------------------------------------------------------

def stable_hash(value: str) -> int:
    """Stable signed 32-bit string hash (``hash = hash * 31 + char``, seed 23).

    The value is identical across interpreter runs.
    """
    h = 23
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h - (1 << 32) if h >= (1 << 31) else h


def content_tile_id(raw: bytes) -> str:
    """Identifier derived from the image bytes."""
    return hashlib.sha1(raw).hexdigest()[:16]


def safe_tile_id(tile_id: str) -> str:
    """Make *tile_id* usable as a file name.

    Ids that had to be rewritten get a short hash of the original appended,
    so distinct ids never share a file name.
    """
    cleaned = _UNSAFE_ID_CHARS.sub("_", tile_id).strip("._")
    if cleaned == tile_id:
        return cleaned
    digest = hashlib.sha1(tile_id.encode("utf-8")).hexdigest()[:8]
    return f"{cleaned}-{digest}" if cleaned else digest


# -- crop / resize -----------------------------------------------------

def crop_box(
    width: int,
    height: int,
    target_width: int,
    target_height: int,
) -> tuple[int, int, int, int]:
    """Centred crop matching the target aspect ratio.

    The longer dimension (relative to the target ratio) is trimmed equally
    from both sides; the offset is ``(dimension - cropped_dimension) // 2``.

    Returns:
        ``(left, top, right, bottom)`` box for :meth:`PIL.Image.Image.crop`.
    """
    if width * target_height > height * target_width:
        new_w = max(1, height * target_width // target_height)
        left = (width - new_w) // 2
        return left, 0, left + new_w, height
    if width * target_height < height * target_width:
        new_h = max(1, width * target_height // target_width)
        top = (height - new_h) // 2
        return 0, top, width, top + new_h
    return 0, 0, width, height


def normalize(
    raw: bytes,
    target_width: int,
    target_height: int,
    scale_multiplier: int = 1,
    divisions: int = 1,
    tile_id: str | None = None,
) -> Tile:
    """Decode, centre-crop and resample raw image bytes into a :class:`Tile`.

    Args:
        raw:              Encoded image bytes.
        target_width:     Tile width before scaling.
        target_height:    Tile height before scaling.
        scale_multiplier: Output tile size multiplier.
        divisions:        Fingerprint granularity F.
        tile_id:          Identifier; defaults to a hash of *raw*.

    Raises:
        DecodeError: on malformed image bytes.
    """
    img = open_image(raw)
    box = crop_box(img.width, img.height, target_width, target_height)
    out_size = (target_width * scale_multiplier, target_height * scale_multiplier)
    img = img.crop(box).resize(out_size, Image.LANCZOS)
    return Tile.from_array(tile_id or content_tile_id(raw), np.asarray(img), divisions)


# -- cache -------------------------------------------------------------

class TileCache:
    """Directory of normalised tiles stored as ``<tile_id>.png``."""

    SUFFIX = ".png"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, tile_id: str) -> Path:
        return self.directory / f"{safe_tile_id(tile_id)}{self.SUFFIX}"

    def __contains__(self, tile_id: str) -> bool:
        return self.path_for(tile_id).exists()

    def __len__(self) -> int:
        return len(self.paths())

    def paths(self) -> list[Path]:
        if not self.directory.exists():
            return []
        return sorted(self.directory.glob(f"*{self.SUFFIX}"))

    def store(
        self,
        tile_id: str,
        raw: bytes,
        target_width: int,
        target_height: int,
        scale_multiplier: int = 1,
    ) -> bool:
        """Normalise *raw* into the cache unless *tile_id* is already there.

        A cached file that no longer decodes is replaced. New files are
        written to a temporary name and renamed into place.

        Returns:
            ``True`` if a new file was written, ``False`` if it already existed.
        """
        path = self.path_for(tile_id)
        if path.exists():
            try:
                open_image(path.read_bytes())
            except DecodeError as exc:
                logger.warning("Cached tile %s is unreadable, rebuilding: %s", tile_id, exc)
            else:
                logger.debug("Tile %s already cached, skipping", tile_id)
                return False

        tile = normalize(raw, target_width, target_height, scale_multiplier, tile_id=tile_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        try:
            Image.fromarray(tile.image).save(tmp_path, format="PNG")
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)
        logger.debug("Cached tile %s -> %s", tile_id, path.name)
        return True


def prepare_tiles(
    sources: Iterable[tuple[str, bytes]],
    cache: TileCache,
    target_width: int,
    target_height: int,
    scale_multiplier: int = 1,
    workers: int = 4,
) -> int:
    """Normalise every ``(tile_id, raw)`` source into *cache*.

    Undecodable images are logged and skipped.

    Returns:
        Number of tiles newly written.
    """
    logger.info("Preparing tiles into %s …", cache.directory)
    t0 = time.perf_counter()
    written = skipped = failed = 0

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_id = {}
        seen: dict[Path, str] = {}
        for tile_id, raw in sources:
            path = cache.path_for(tile_id)
            if path in seen:
                logger.warning(
                    "Tile %s maps to the same cache file as %s, skipping",
                    tile_id, seen[path],
                )
                continue
            future = executor.submit(
                cache.store, tile_id, raw,
                target_width, target_height, scale_multiplier,
            )
            future_to_id[future] = tile_id
            seen[path] = tile_id

        for future in as_completed(future_to_id):
            tile_id = future_to_id[future]
            try:
                if future.result():
                    written += 1
                else:
                    skipped += 1
            except DecodeError as exc:
                failed += 1
                logger.warning("Skipping tile %s: %s", tile_id, exc)

    logger.info(
        "Tiles ready  written=%d  cached=%d  failed=%d  (%.1f s)",
        written, skipped, failed, time.perf_counter() - t0,
    )
    return written
