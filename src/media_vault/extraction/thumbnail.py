"""Thumbnail generation.

Thumbnails are WebP previews keyed by content key, so every record sharing
a blob shares one thumbnail. Generation is idempotent: an existing output
is left untouched and reported as such.
"""

from __future__ import annotations

import io
import logging
import math
import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from media_vault.errors import ThumbnailError, VaultIOError
from media_vault.storage.keys import THUMBNAIL_EXT, ContentKey, thumbnail_filename

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 480
DEFAULT_WEBP_QUALITY = 60


def _elapsed_ms(started_at: float) -> float:
    return (time.perf_counter() - started_at) * 1000


def compute_target_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Scale so the longer side equals ``max_dimension``; never upscale.

    Each side is rounded half-up and kept at least 1.
    """
    bounded_max = max(max_dimension, 1)
    longest_side = max(width, height)
    if longest_side <= bounded_max:
        return width, height
    scale = bounded_max / longest_side
    target_width = max(1, math.floor(width * scale + 0.5))
    target_height = max(1, math.floor(height * scale + 0.5))
    return target_width, target_height


@dataclass(frozen=True)
class ThumbnailTimings:
    """Per-stage timings of one generation call, in milliseconds."""

    decode_ms: float = 0.0
    resize_ms: float = 0.0
    encode_ms: float = 0.0
    total_ms: float = 0.0
    source_size: tuple[int, int] | None = None
    target_size: tuple[int, int] | None = None
    skipped_existing: bool = False


class ThumbnailGenerator:
    """Decode, downsample and WebP-encode previews under ``thumbs_root``."""

    def __init__(
        self,
        thumbs_root: Path,
        *,
        quality: int = DEFAULT_WEBP_QUALITY,
        preview_ext: str = THUMBNAIL_EXT,
    ) -> None:
        self._root = thumbs_root
        self._quality = quality
        self._preview_ext = preview_ext

    @property
    def root(self) -> Path:
        return self._root

    def ensure_root(self) -> Path:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise VaultIOError("create thumbs root", self._root, err) from err
        return self._root

    def path_for(self, key: ContentKey | str) -> Path:
        return self._root / thumbnail_filename(key, self._preview_ext)

    def remove_for_key(self, key: ContentKey | str) -> bool:
        """Delete the thumbnail for ``key``; False when there was none."""
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as err:
            raise VaultIOError("remove thumbnail", path, err) from err
        return True

    def generate_for_key(
        self, key: ContentKey | str, input_path: Path, max_dimension: int = DEFAULT_MAX_SIZE
    ) -> Path:
        output_path = self.path_for(key)
        self.generate(input_path, output_path, max_dimension)
        return output_path

    def generate(
        self, input_path: Path, output_path: Path, max_dimension: int = DEFAULT_MAX_SIZE
    ) -> ThumbnailTimings:
        """Write a thumbnail of ``input_path`` to ``output_path``.

        Raises:
            ThumbnailError: missing/non-file input, undecodable image, zero
                dimensions, or an encode/write failure.
        """
        total_started_at = time.perf_counter()

        if not input_path.exists():
            raise ThumbnailError("open", input_path, "source file does not exist")
        if not input_path.is_file():
            raise ThumbnailError("open", input_path, "source is not a file")

        if output_path.exists():
            logger.debug("Thumbnail already exists, skipping: %s", output_path)
            return ThumbnailTimings(skipped_existing=True)

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise ThumbnailError("write", output_path, f"cannot create directory: {err}") from err

        decode_started_at = time.perf_counter()
        try:
            with Image.open(input_path) as opened:
                opened.load()
                source = opened.copy()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as err:
            raise ThumbnailError("decode", input_path, str(err)) from err
        decode_ms = _elapsed_ms(decode_started_at)

        width, height = source.size
        if width == 0 or height == 0:
            raise ThumbnailError("decode", input_path, f"invalid dimensions {width}x{height}")

        resize_started_at = time.perf_counter()
        target_size = compute_target_size(width, height, max_dimension)
        try:
            if source.mode not in ("RGB", "RGBA"):
                source = source.convert("RGBA")
            if target_size != (width, height):
                resized = source.resize(target_size, Image.Resampling.BILINEAR)
            else:
                resized = source
        except (OSError, ValueError) as err:
            raise ThumbnailError("resize", input_path, str(err)) from err
        resize_ms = _elapsed_ms(resize_started_at)

        encode_started_at = time.perf_counter()
        buffer = io.BytesIO()
        try:
            resized.save(buffer, format="WEBP", quality=self._quality)
        except (OSError, ValueError, KeyError) as err:
            raise ThumbnailError("encode", output_path, str(err)) from err
        self._write_atomic(output_path, buffer.getvalue())
        encode_ms = _elapsed_ms(encode_started_at)

        timings = ThumbnailTimings(
            decode_ms=decode_ms,
            resize_ms=resize_ms,
            encode_ms=encode_ms,
            total_ms=_elapsed_ms(total_started_at),
            source_size=(width, height),
            target_size=resized.size,
        )
        logger.info(
            "Thumbnail source=%s output=%s source=%dx%d target=%dx%d max_size=%d quality=%d "
            "decode_ms=%.1f resize_ms=%.1f encode_ms=%.1f total_ms=%.1f",
            input_path,
            output_path,
            width,
            height,
            resized.width,
            resized.height,
            max(max_dimension, 1),
            self._quality,
            timings.decode_ms,
            timings.resize_ms,
            timings.encode_ms,
            timings.total_ms,
        )
        return timings

    def _write_atomic(self, output_path: Path, data: bytes) -> None:
        temp_path = output_path.with_name(f".{output_path.name}.{uuid.uuid4().hex}.tmp")
        try:
            with temp_path.open("wb") as output:
                output.write(data)
                output.flush()
                os.fsync(output.fileno())
            os.replace(temp_path, output_path)
        except OSError as err:
            raise ThumbnailError("write", output_path, str(err)) from err
        finally:
            temp_path.unlink(missing_ok=True)
