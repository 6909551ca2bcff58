"""Import pipeline: raw file or buffer → stored, optionally thumbnailed blob.

Stages (each timed):
1. place   - hash, dedupe and write the blob (failure aborts the import)
2. metadata - read image dimensions (images only, best-effort)
3. thumb   - generate a WebP preview when the image is larger than the
             threshold and the caller asked for one (best-effort)

The import succeeds once the bytes are stored. Dimension and thumbnail
problems are reported through `thumbnail_status` and never abort the call.

All stages are blocking; from an event loop use the ``*_async`` entry
points, which run the pipeline on a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from media_vault.errors import InvalidKeyError, InvalidSourceError, ThumbnailError, VaultIOError
from media_vault.extraction.image import is_image_extension, read_image_dimensions
from media_vault.extraction.thumbnail import DEFAULT_MAX_SIZE, ThumbnailGenerator
from media_vault.models.enums import ThumbStatus
from media_vault.storage.blob_store import BlobStore
from media_vault.storage.keys import ContentKey

logger = logging.getLogger(__name__)


def _elapsed_ms(started_at: float) -> float:
    return (time.perf_counter() - started_at) * 1000


@dataclass(frozen=True)
class StageTimings:
    """Cumulative per-stage timings in milliseconds."""

    hash_ms: float = 0.0
    copy_ms: float = 0.0
    metadata_ms: float = 0.0
    thumb_ms: float = 0.0
    total_ms: float = 0.0


@dataclass(frozen=True)
class PipelineResult:
    """Result envelope of one import. Not persisted."""

    content_key: ContentKey
    size_bytes: int
    canonical_path: Path
    original_filename: str
    created_at: datetime
    thumbnail_status: ThumbStatus
    stage_timings: StageTimings
    deduped: bool
    width: int | None = None
    height: int | None = None
    thumbnail_path: Path | None = None

    @property
    def vault_key(self) -> str:
        return self.content_key.token

    @property
    def is_image(self) -> bool:
        return is_image_extension(self.content_key.ext)


class ImportPipeline:
    """Run the place → metadata → thumbnail sequence.

    Usage:
        pipeline = ImportPipeline(store, thumbnails)
        result = pipeline.run_path(Path("photo.jpg"))
        result.thumbnail_status  # ThumbStatus.READY / SKIPPED / PENDING / ERROR
    """

    def __init__(
        self,
        store: BlobStore,
        thumbnails: ThumbnailGenerator,
        thumb_max_size: int = DEFAULT_MAX_SIZE,
    ) -> None:
        self._store = store
        self._thumbnails = thumbnails
        self._thumb_max_size = thumb_max_size

    def run_path(
        self, path: Path, make_thumbnail: bool = True, filename_hint: str | None = None
    ) -> PipelineResult:
        """Import a file from disk.

        Raises:
            VaultIOError: the path does not exist, or placement failed.
            InvalidSourceError: the path is not a regular file.
        """
        if not path.exists():
            raise VaultIOError("open", path, FileNotFoundError("file does not exist"))
        if not path.is_file():
            raise InvalidSourceError(f"path is not a file: {path}")
        return self.run(
            source_path=path,
            filename_hint=filename_hint or path.name,
            make_thumbnail=make_thumbnail,
        )

    def run_bytes(
        self,
        data: bytes,
        ext_hint: str | None = None,
        filename_hint: str | None = None,
        make_thumbnail: bool = True,
    ) -> PipelineResult:
        """Import an in-memory buffer (clipboard paste, drag-and-drop, download).

        Raises:
            InvalidSourceError: ``data`` is empty.
            VaultIOError: placement failed.
        """
        if not data:
            raise InvalidSourceError("cannot import empty byte buffer")
        return self.run(
            source_bytes=data,
            ext_hint=ext_hint,
            filename_hint=filename_hint,
            make_thumbnail=make_thumbnail,
        )

    async def run_path_async(
        self, path: Path, make_thumbnail: bool = True, filename_hint: str | None = None
    ) -> PipelineResult:
        return await asyncio.to_thread(self.run_path, path, make_thumbnail, filename_hint)

    async def run_bytes_async(
        self,
        data: bytes,
        ext_hint: str | None = None,
        filename_hint: str | None = None,
        make_thumbnail: bool = True,
    ) -> PipelineResult:
        return await asyncio.to_thread(
            self.run_bytes, data, ext_hint, filename_hint, make_thumbnail
        )

    def run(
        self,
        *,
        source_path: Path | None = None,
        source_bytes: bytes | None = None,
        ext_hint: str | None = None,
        filename_hint: str | None = None,
        make_thumbnail: bool = True,
    ) -> PipelineResult:
        started_at = time.perf_counter()

        placed = self._store.place(
            source_path=source_path,
            source_bytes=source_bytes,
            requested_ext=ext_hint,
            original_filename=filename_hint,
        )
        key = placed.content_key

        is_image = is_image_extension(key.ext)
        status = ThumbStatus.PENDING if is_image else ThumbStatus.READY
        width: int | None = None
        height: int | None = None
        thumbnail_path: Path | None = None
        metadata_ms = 0.0
        thumb_ms = 0.0

        if is_image:
            metadata_started_at = time.perf_counter()
            try:
                width, height = read_image_dimensions(placed.path)
            except (OSError, ValueError) as err:
                logger.warning("Failed to read dimensions for %s: %s", placed.path, err)
                status = ThumbStatus.ERROR
            metadata_ms = _elapsed_ms(metadata_started_at)

            if width is not None and height is not None:
                if max(width, height) <= self._thumb_max_size:
                    status = ThumbStatus.SKIPPED
                elif make_thumbnail:
                    thumb_started_at = time.perf_counter()
                    try:
                        thumbnail_path = self._thumbnails.generate_for_key(
                            key, placed.path, self._thumb_max_size
                        )
                        status = ThumbStatus.READY
                    except (ThumbnailError, InvalidKeyError) as err:
                        logger.warning("Failed to generate thumbnail for %s: %s", placed.path, err)
                        status = ThumbStatus.ERROR
                    thumb_ms = _elapsed_ms(thumb_started_at)

        timings = StageTimings(
            hash_ms=placed.hash_ms,
            copy_ms=placed.copy_ms,
            metadata_ms=metadata_ms,
            thumb_ms=thumb_ms,
            total_ms=_elapsed_ms(started_at),
        )
        logger.info(
            "Import file=%s key=%s hash_ms=%.1f copy_ms=%.1f metadata_ms=%.1f thumb_ms=%.1f "
            "total_ms=%.1f deduped=%s thumb_status=%s",
            placed.original_filename,
            key.token,
            timings.hash_ms,
            timings.copy_ms,
            timings.metadata_ms,
            timings.thumb_ms,
            timings.total_ms,
            placed.deduped,
            status.value,
        )

        return PipelineResult(
            content_key=key,
            size_bytes=placed.size,
            canonical_path=placed.path,
            original_filename=placed.original_filename,
            created_at=placed.created_at,
            thumbnail_status=status,
            stage_timings=timings,
            deduped=placed.deduped,
            width=width,
            height=height,
            thumbnail_path=thumbnail_path,
        )
