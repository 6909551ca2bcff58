"""Image metadata extraction and thumbnail derivation."""

from media_vault.extraction.image import (
    IMAGE_EXTENSIONS,
    is_image_extension,
    read_image_dimensions,
)
from media_vault.extraction.thumbnail import (
    ThumbnailGenerator,
    ThumbnailTimings,
    compute_target_size,
)

__all__ = [
    "IMAGE_EXTENSIONS",
    "ThumbnailGenerator",
    "ThumbnailTimings",
    "compute_target_size",
    "is_image_extension",
    "read_image_dimensions",
]
