"""Time-bucketed blob placement.

New blobs land in ``{root}/{YYYY}/{MM}/{key}`` for the current month. Lookup
never trusts the bucket: it scans every year/month directory, so a blob is
found wherever it was first written and the store stays usable without an
index.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

from media_vault.errors import VaultIOError
from media_vault.storage.keys import ContentKey


class BlobPlacement:
    """Decide where new blobs go and find existing ones by scanning."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def ensure_root(self) -> Path:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise VaultIOError("create storage root", self._root, err) from err
        return self._root

    def month_bucket(self, now: datetime | None = None) -> Path:
        """Create (idempotently) and return the bucket for ``now``."""
        now = now or datetime.now(timezone.utc)
        bucket = self._root / f"{now.year:04d}" / f"{now.month:02d}"
        try:
            bucket.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise VaultIOError("create month directory", bucket, err) from err
        return bucket

    def _bucket_dirs(self) -> Iterator[Path]:
        if not self._root.is_dir():
            return
        try:
            years = sorted(p for p in self._root.iterdir() if p.is_dir())
            for year in years:
                yield from sorted(p for p in year.iterdir() if p.is_dir())
        except OSError as err:
            raise VaultIOError("scan storage root", self._root, err) from err

    def locate(self, key: ContentKey | str) -> list[Path]:
        """Every copy of ``key`` in any bucket, oldest bucket first."""
        filename = key.token if isinstance(key, ContentKey) else key
        return [
            bucket / filename for bucket in self._bucket_dirs() if (bucket / filename).is_file()
        ]

    def locate_one(self, key: ContentKey | str) -> Path | None:
        matches = self.locate(key)
        return matches[-1] if matches else None

    def iter_blobs(self) -> Iterator[Path]:
        """All stored files, skipping hidden (in-progress) files."""
        for bucket in self._bucket_dirs():
            try:
                entries = sorted(bucket.iterdir())
            except OSError as err:
                raise VaultIOError("scan month directory", bucket, err) from err
            for entry in entries:
                if entry.is_file() and not entry.name.startswith("."):
                    yield entry
