"""Image metadata extraction.

Dimensions are read from the image header only; pixel data is not decoded.
"""

from __future__ import annotations

from pathlib import Path
from typing import Final

from PIL import Image, UnidentifiedImageError

from media_vault.storage.keys import normalize_ext

# Raster formats the import pipeline derives dimensions and thumbnails for
IMAGE_EXTENSIONS: Final[frozenset[str]] = frozenset({"png", "jpg", "jpeg", "webp", "gif", "bmp"})


def is_image_extension(ext: str) -> bool:
    return normalize_ext(ext) in IMAGE_EXTENSIONS


def read_image_dimensions(path: Path) -> tuple[int, int]:
    """Return ``(width, height)`` of the image at ``path``.

    Raises:
        ValueError: the file is not a recognizable image or exceeds
            Pillow's pixel limit.
        OSError: the file cannot be opened.
    """
    try:
        with Image.open(path) as img:
            width, height = img.size
    except UnidentifiedImageError as err:
        raise ValueError(f"failed to detect image format {path}: {err}") from err
    except Image.DecompressionBombError as err:
        raise ValueError(f"image too large to inspect {path}: {err}") from err
    return int(width), int(height)
