"""Image decoding/encoding, source providers, and comparison-grid generation."""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFont, ImageOps

from photo_mosaic.errors import DecodeError

logger = logging.getLogger(__name__)


def open_image(data: bytes) -> Image.Image:
    """Decode raw bytes into an RGB Pillow image (EXIF orientation applied).

    Raises:
        DecodeError: if the bytes are not a readable image.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        img = ImageOps.exif_transpose(img)
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        msg = f"Cannot decode image ({len(data)} bytes): {exc}"
        raise DecodeError(msg) from exc
    return img.convert("RGB")


def decode_image(data: bytes) -> np.ndarray:
    """Decode raw bytes into an (H, W, 3) uint8 array."""
    return np.array(open_image(data), dtype=np.uint8)


def load_image(path: str | Path) -> np.ndarray:
    """Load an image file into an (H, W, 3) uint8 array."""
    return decode_image(Path(path).read_bytes())


def encode_jpeg(array: np.ndarray, quality: int = 80) -> bytes:
    """Encode an (H, W, 3) uint8 array as JPEG bytes."""
    buf = io.BytesIO()
    Image.fromarray(array.astype(np.uint8)).save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def collect_images(folder: Path, extensions: frozenset[str]) -> list[Path]:
    if not folder.exists():
        return []
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in extensions
    )


def iter_tile_sources(
    folder: Path,
    extensions: frozenset[str],
) -> Iterator[tuple[str, bytes]]:
    """Yield ``(tile_id, raw_bytes)`` for every image file in *folder*.

    The file stem is used as the tile identifier.
    """
    paths = collect_images(folder, extensions)
    logger.info("Found %d candidate tiles in %s", len(paths), folder)
    for path in paths:
        yield path.stem, path.read_bytes()


def make_comparison_grid(
    source: np.ndarray,
    mosaic: np.ndarray,
    output_path: str | Path,
    panel_height: int = 480,
) -> None:
    """Create a 2-panel comparison: Source | Mosaic.

    Both panels are scaled to *panel_height*, keeping their aspect ratio.
    """
    label_height = 36

    def _panel(array: np.ndarray) -> Image.Image:
        h, w = array.shape[:2]
        panel_w = max(1, round(w * panel_height / h))
        return Image.fromarray(array).resize((panel_w, panel_height), Image.LANCZOS)

    panels = [_panel(source), _panel(mosaic)]
    mh, mw = mosaic.shape[:2]
    labels = ["Source", f"Mosaic {mw}x{mh}"]

    gap = 8
    total_w = sum(p.width for p in panels) + (len(panels) - 1) * gap
    total_h = panel_height + label_height

    canvas = Image.new("RGB", (total_w, total_h), (30, 30, 30))
    draw = ImageDraw.Draw(canvas)

    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", 18,
        )
    except OSError:
        font = ImageFont.load_default()

    x = 0
    for panel, label in zip(panels, labels, strict=True):
        canvas.paste(panel, (x, label_height))

        bbox = draw.textbbox((0, 0), label, font=font)
        text_w = bbox[2] - bbox[0]
        tx = x + (panel.width - text_w) // 2
        draw.text((tx, 6), label, fill=(220, 220, 220), font=font)
        x += panel.width + gap

    canvas.save(output_path)
