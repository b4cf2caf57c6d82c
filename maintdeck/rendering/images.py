"""Pillow helpers for raw 72x72 RGB key buffers."""

from __future__ import annotations

import io
import logging
from pathlib import Path

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

TILE_SIZE = 72
BYTES_PER_PIXEL = 3


def buffer_length(width: int = TILE_SIZE, height: int = TILE_SIZE) -> int:
    return width * height * BYTES_PER_PIXEL


def image_to_rgb(image: Image.Image, width: int = TILE_SIZE, height: int = TILE_SIZE) -> bytes:
    """Flatten a Pillow image to row-major RGB bytes of the given size.

    Alpha is composited onto black. The image is resized only when its size
    differs from the target.
    """
    if image.mode in ("RGBA", "LA", "P"):
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
        image = Image.alpha_composite(background, rgba)
    rgb = image.convert("RGB")
    if rgb.size != (width, height):
        rgb = rgb.resize((width, height), Image.LANCZOS)
    return rgb.tobytes()


def png_to_rgb(data: bytes, width: int = TILE_SIZE, height: int = TILE_SIZE) -> bytes:
    """Decode PNG bytes into raw RGB.

    Raises:
        ValueError: If the data is not a decodable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return image_to_rgb(img, width, height)
    except (OSError, Image.DecompressionBombError) as exc:
        raise ValueError(f"could not decode rendered image: {exc}") from exc


def load_icon(path: str | Path, width: int = TILE_SIZE, height: int = TILE_SIZE) -> bytes:
    """Load an icon file and fit it to the key size.

    Raises:
        OSError: If the file is missing or not an image.
    """
    with Image.open(path) as img:
        img.load()
        fitted = ImageOps.fit(img.convert("RGBA"), (width, height), Image.LANCZOS)
        return image_to_rgb(fitted, width, height)


def solid_tile(color: tuple[int, int, int] = (0, 0, 0), width: int = TILE_SIZE, height: int = TILE_SIZE) -> bytes:
    return bytes(color) * (width * height)


def placeholder_tile(width: int = TILE_SIZE, height: int = TILE_SIZE) -> bytes:
    """Tile shown for empty slots and unprovisioned devices."""
    return solid_tile((0, 0, 0), width, height)


def swap_red_blue(buffer: bytes) -> bytes:
    """Convert interleaved RGB to BGR (or back)."""
    out = bytearray(buffer)
    out[0::3] = buffer[2::3]
    out[2::3] = buffer[0::3]
    return bytes(out)
