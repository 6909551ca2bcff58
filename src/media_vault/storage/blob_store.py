"""Write-once, content-addressed blob store.

`place` hashes a source, looks for an existing copy of the resulting key
and writes the bytes only when none exists. It never touches the ledger:
callers that associate the blob with a record do the accounting.

Two concurrent `place` calls for the same new content can both miss the
lookup and both write. Both target the same bucket path and the final
rename is atomic, so the outcome is one intact blob and correct ledger
accounting through the ledger's upsert.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from media_vault.errors import InvalidSourceError, VaultIOError
from media_vault.storage.hashing import DEFAULT_CHUNK_SIZE, sha256_bytes, sha256_file
from media_vault.storage.keys import (
    DEFAULT_EXT,
    ContentKey,
    extension_from_filename,
    extension_from_path,
    normalize_ext,
)
from media_vault.storage.placement import BlobPlacement

logger = logging.getLogger(__name__)

DEFAULT_BYTES_FILENAME = "clipboard-image"
DEFAULT_PATH_FILENAME = "imported.bin"


def _elapsed_ms(started_at: float) -> float:
    return (time.perf_counter() - started_at) * 1000


@dataclass(frozen=True)
class PlaceResult:
    """Outcome of a placement call."""

    content_key: ContentKey
    path: Path
    size: int
    deduped: bool
    original_filename: str
    created_at: datetime
    hash_ms: float = 0.0
    copy_ms: float = 0.0


class BlobStore:
    """Hash + dedupe + place, on top of a `BlobPlacement`.

    Usage:
        store = BlobStore(BlobPlacement(settings.storage_root))
        placed = store.place(source_path=Path("photo.jpg"))
        placed.content_key.token, placed.deduped
    """

    def __init__(self, placement: BlobPlacement, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._placement = placement
        self._chunk_size = chunk_size

    @property
    def placement(self) -> BlobPlacement:
        return self._placement

    def place(
        self,
        *,
        source_path: Path | None = None,
        source_bytes: bytes | None = None,
        requested_ext: str | None = None,
        original_filename: str | None = None,
    ) -> PlaceResult:
        """Store a path or byte-buffer source exactly once.

        Exactly one of ``source_path`` / ``source_bytes`` must be given. For a
        path the extension comes from the path; for bytes it comes from
        ``requested_ext``, else ``original_filename``, else ``"bin"``.

        Raises:
            InvalidSourceError: neither/both sources, or an empty buffer.
            VaultIOError: the source cannot be read or the destination written.
        """
        source: Path | bytes
        if source_path is not None and source_bytes is None:
            source = source_path
        elif source_bytes is not None and source_path is None:
            if not source_bytes:
                raise InvalidSourceError("cannot import empty byte buffer")
            source = source_bytes
        else:
            raise InvalidSourceError(
                "invalid import request: provide either source_path or source_bytes"
            )

        self._placement.ensure_root()

        # Stage 1: hash
        hash_started_at = time.perf_counter()
        if isinstance(source, bytes):
            digest = sha256_bytes(source)
            if requested_ext is not None:
                ext = normalize_ext(requested_ext)
            else:
                ext = extension_from_filename(original_filename) or DEFAULT_EXT
            fallback_filename = DEFAULT_BYTES_FILENAME
        else:
            digest = sha256_file(source, self._chunk_size)
            ext = extension_from_path(source)
            fallback_filename = source.name or DEFAULT_PATH_FILENAME
        key = ContentKey.build(digest, ext)
        hash_ms = _elapsed_ms(hash_started_at)

        # Stage 2: dedupe lookup, then write if absent
        copy_started_at = time.perf_counter()
        existing = self._placement.locate_one(key)
        if existing is not None:
            final_path = existing
            deduped = True
        else:
            final_path = self._placement.month_bucket() / key.token
            self._write(final_path, source)
            deduped = False
        copy_ms = _elapsed_ms(copy_started_at)

        # Stage 3: authoritative size
        try:
            size = final_path.stat().st_size
        except OSError as err:
            raise VaultIOError("read metadata", final_path, err) from err

        logger.debug(
            "Placed %s at %s (deduped=%s, size=%d)", key.token, final_path, deduped, size
        )
        return PlaceResult(
            content_key=key,
            path=final_path,
            size=size,
            deduped=deduped,
            original_filename=original_filename or fallback_filename,
            created_at=datetime.now(timezone.utc),
            hash_ms=hash_ms,
            copy_ms=copy_ms,
        )

    def _write(self, destination: Path, source: Path | bytes) -> None:
        """Write into a hidden temp file beside ``destination``, then rename.

        A crash never leaves a truncated file under the key's name, so a
        later lookup cannot mistake partial bytes for a dedupe hit.
        """
        temp_path = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.tmp")
        try:
            if isinstance(source, bytes):
                try:
                    with temp_path.open("wb") as output:
                        output.write(source)
                        output.flush()
                        os.fsync(output.fileno())
                except OSError as err:
                    raise VaultIOError("write destination", destination, err) from err
            else:
                try:
                    shutil.copyfile(source, temp_path)
                except OSError as err:
                    raise VaultIOError(f"copy {source} to", destination, err) from err
            try:
                os.replace(temp_path, destination)
            except OSError as err:
                raise VaultIOError("finalize destination", destination, err) from err
        finally:
            temp_path.unlink(missing_ok=True)
