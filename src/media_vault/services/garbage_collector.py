"""Two-phase garbage collection of unreferenced blobs.

For each candidate key:

1. Read the ledger count fresh in a short transaction. Anything above zero
   is left alone.
2. Outside any transaction, delete every physical copy of the blob and its
   thumbnail. Files that are already gone count as deleted, so repeated
   sweeps converge.
3. Only if every deletion succeeded, remove the ledger row in a second short
   transaction, guarded on the count still being <= 0.

A crash between phases leaves a zero-ref row that the next sweep retries.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from sqlalchemy import distinct, select, update
from sqlalchemy.orm import Session, sessionmaker

from media_vault.errors import VaultIOError
from media_vault.extraction.thumbnail import ThumbnailGenerator
from media_vault.models.item import Item
from media_vault.models.vault_file import VaultFile
from media_vault.services.ledger import ReferenceLedger
from media_vault.storage.keys import try_parse_key
from media_vault.storage.placement import BlobPlacement

logger = logging.getLogger(__name__)


@dataclass
class CleanupOutcome:
    """What happened to one key during collection."""

    key: str
    path: str = ""
    blobs_deleted: int = 0
    thumbnail_deleted: bool = False
    cleanup_ok: bool = True
    row_removed: bool = False
    skipped_reason: str | None = None

    @property
    def deleted_from_disk(self) -> bool:
        return self.blobs_deleted > 0


@dataclass
class SweepReport:
    """Summary of a sweep over the ledger (and optionally orphans)."""

    outcomes: list[CleanupOutcome] = field(default_factory=list)
    orphans_pruned: int = 0
    duplicates_pruned: int = 0

    @property
    def rows_removed(self) -> int:
        return sum(1 for o in self.outcomes if o.row_removed)

    @property
    def rows_retained(self) -> int:
        return sum(1 for o in self.outcomes if not o.row_removed)

    @property
    def blobs_deleted(self) -> int:
        return sum(o.blobs_deleted for o in self.outcomes)

    @property
    def thumbnails_deleted(self) -> int:
        return sum(1 for o in self.outcomes if o.thumbnail_deleted)


class GarbageCollector:
    """Reclaim blobs and thumbnails whose ledger count reached zero."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        placement: BlobPlacement,
        thumbnails: ThumbnailGenerator,
    ) -> None:
        self._session_factory = session_factory
        self._placement = placement
        self._thumbnails = thumbnails

    def sweep_zero_refs(self) -> SweepReport:
        """Collect every ledger row at ref_count <= 0."""
        with self._session_factory() as session:
            keys = ReferenceLedger(session).zero_ref_keys()

        report = SweepReport(outcomes=self.collect(keys))
        if keys:
            logger.info(
                "Sweep finished: %d row(s) removed, %d retained, %d blob(s) deleted",
                report.rows_removed,
                report.rows_retained,
                report.blobs_deleted,
            )
        return report

    def collect(self, keys: Iterable[str]) -> list[CleanupOutcome]:
        """Run both phases for the given keys."""
        return [self._reclaim(key) for key in keys]

    def _reclaim(self, key: str) -> CleanupOutcome:
        with self._session_factory() as session:
            row = ReferenceLedger(session).get(key)
            if row is None:
                return CleanupOutcome(key=key, skipped_reason="no ledger row")
            outcome = CleanupOutcome(key=key, path=row.path)
            if row.ref_count > 0:
                outcome.skipped_reason = f"ref_count={row.ref_count}"
                logger.debug("Not collecting %s: still referenced (%d)", key, row.ref_count)
                return outcome

        parsed = try_parse_key(key)
        if parsed is None:
            logger.warning("Skipping invalid vault key during sweep: %r", key)
            outcome.cleanup_ok = False
            outcome.skipped_reason = "invalid key"
            return outcome

        # Phase 1: physical deletion, no transaction held
        for path in self._placement.locate(parsed):
            if self._unlink(path):
                outcome.blobs_deleted += 1
            else:
                outcome.cleanup_ok = False
        try:
            outcome.thumbnail_deleted = self._thumbnails.remove_for_key(key)
        except VaultIOError as err:
            logger.warning("Failed to remove thumbnail for vault key %s: %s", key, err)
            outcome.cleanup_ok = False

        if not outcome.cleanup_ok:
            logger.warning("Cleanup incomplete for %s; ledger row kept for retry", key)
            return outcome

        # Phase 2: row deletion, guarded on the count still being zero
        with self._session_factory.begin() as session:
            outcome.row_removed = ReferenceLedger(session).delete_if_unreferenced(key)
        if not outcome.row_removed:
            logger.warning(
                "Vault key %s was re-referenced during collection; row kept", key
            )
        return outcome

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink(missing_ok=True)
        except OSError as err:
            logger.warning("Failed to remove vault file %s: %s", path, err)
            return False
        return True

    def prune_orphans(
        self, grace_seconds: float = 3600, now: float | None = None
    ) -> tuple[int, int]:
        """Remove blobs the ledger cannot account for.

        - Keys with no ledger row and no referencing item, all of whose
          copies are older than ``grace_seconds``, are deleted with their
          thumbnail. The grace period protects imports whose record has not
          been written yet.
        - Keys with a ledger row but several physical copies keep the copy
          at the row's canonical path (else the newest bucket's copy).
          Items pointing at a pruned copy are repointed to the kept one
          before any file is removed.

        Files whose names are not canonical key tokens are never touched.

        Returns:
            ``(orphans_pruned, duplicates_pruned)`` counted in files.
        """
        now = time.time() if now is None else now
        with self._session_factory() as session:
            canonical_paths = {
                key: path for key, path in session.execute(select(VaultFile.key, VaultFile.path))
            }
            item_keys = set(session.scalars(select(distinct(Item.vault_key))))

        copies: dict[str, list[Path]] = defaultdict(list)
        for blob in self._placement.iter_blobs():
            parsed = try_parse_key(blob.name)
            if parsed is None or parsed.token != blob.name:
                continue
            copies[parsed.token].append(blob)

        orphans_pruned = 0
        duplicates_pruned = 0
        for token, paths in copies.items():
            if token in canonical_paths:
                if len(paths) < 2:
                    continue
                canonical = Path(canonical_paths[token])
                keep = canonical if canonical in paths else paths[-1]
                self._repoint_items(token, keep)
                for path in paths:
                    if path != keep and self._unlink(path):
                        duplicates_pruned += 1
                        logger.info("Pruned duplicate copy of %s at %s", token, path)
                continue

            if token in item_keys:
                continue
            if any(self._age_seconds(path, now) < grace_seconds for path in paths):
                continue
            removed = [path for path in paths if self._unlink(path)]
            orphans_pruned += len(removed)
            if len(removed) == len(paths):
                try:
                    self._thumbnails.remove_for_key(token)
                except VaultIOError as err:
                    logger.warning("Failed to remove orphan thumbnail for %s: %s", token, err)
            logger.info("Pruned %d unreferenced copy(ies) of %s", len(removed), token)

        return orphans_pruned, duplicates_pruned

    def _repoint_items(self, key: str, keep: Path) -> None:
        with self._session_factory.begin() as session:
            result = session.execute(
                update(Item)
                .where(Item.vault_key == key, Item.vault_path != str(keep))
                .values(vault_path=str(keep))
            )
            repointed = result.rowcount
        if repointed:
            logger.info("Repointed %d item(s) for %s to %s", repointed, key, keep)

    @staticmethod
    def _age_seconds(path: Path, now: float) -> float:
        try:
            return now - path.stat().st_mtime
        except OSError:
            return 0.0
