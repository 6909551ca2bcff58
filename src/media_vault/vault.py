"""Vault facade: wires storage, ledger, pipeline and garbage collection.

Usage:
    vault = Vault(Settings(app_root=Path("~/Vault").expanduser()))
    vault.startup()                       # migrate, reconcile, sweep
    result = vault.import_path(Path("photo.jpg"))
    item = vault.records.insert_item(item_from_import(result))
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path

from media_vault.config import Settings
from media_vault.config import settings as default_settings
from media_vault.db import create_db_engine, create_session_factory, init_db
from media_vault.extraction.thumbnail import ThumbnailGenerator
from media_vault.models.enums import ThumbStatus
from media_vault.pipeline import ImportPipeline, PipelineResult
from media_vault.services.garbage_collector import GarbageCollector, SweepReport
from media_vault.services.ledger import ReferenceLedger
from media_vault.services.records import RecordService
from media_vault.services.thumbnail_queue import ThumbnailJobResult, ThumbnailQueue, ThumbnailTask
from media_vault.storage.blob_store import BlobStore
from media_vault.storage.placement import BlobPlacement

logger = logging.getLogger(__name__)


class Vault:
    """One application root: storage/, thumbs/ and the ledger database."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings
        self.engine = create_db_engine(self.settings)
        self.session_factory = create_session_factory(self.engine)

        self.placement = BlobPlacement(self.settings.storage_root)
        self.store = BlobStore(self.placement, chunk_size=self.settings.hash_chunk_size)
        self.thumbnails = ThumbnailGenerator(
            self.settings.thumbs_root, quality=self.settings.thumb_webp_quality
        )
        self.pipeline = ImportPipeline(
            self.store, self.thumbnails, thumb_max_size=self.settings.thumb_max_size
        )
        self.collector = GarbageCollector(self.session_factory, self.placement, self.thumbnails)
        self.records = RecordService(self.session_factory, self.collector)

    def startup(self) -> SweepReport:
        """Migrate, ensure roots, reconcile an empty ledger, then sweep."""
        init_db(self.engine)
        self.placement.ensure_root()
        self.placement.month_bucket()
        self.thumbnails.ensure_root()
        self.reconcile_if_empty()
        return self.sweep()

    def close(self) -> None:
        self.engine.dispose()

    def reconcile_if_empty(self) -> int:
        with self.session_factory.begin() as session:
            return ReferenceLedger(session).reconcile_if_empty()

    def sweep(self) -> SweepReport:
        """Collect zero-ref rows, then prune orphans when enabled."""
        report = self.collector.sweep_zero_refs()
        if self.settings.prune_orphans:
            report.orphans_pruned, report.duplicates_pruned = self.collector.prune_orphans(
                self.settings.orphan_grace_seconds
            )
        return report

    def import_path(self, path: Path, make_thumbnail: bool = True) -> PipelineResult:
        return self.pipeline.run_path(path, make_thumbnail)

    def import_bytes(
        self,
        data: bytes,
        ext_hint: str | None = None,
        filename_hint: str | None = None,
        make_thumbnail: bool = True,
    ) -> PipelineResult:
        return self.pipeline.run_bytes(data, ext_hint, filename_hint, make_thumbnail)

    async def import_path_async(self, path: Path, make_thumbnail: bool = True) -> PipelineResult:
        return await self.pipeline.run_path_async(path, make_thumbnail)

    async def import_bytes_async(
        self,
        data: bytes,
        ext_hint: str | None = None,
        filename_hint: str | None = None,
        make_thumbnail: bool = True,
    ) -> PipelineResult:
        return await self.pipeline.run_bytes_async(data, ext_hint, filename_hint, make_thumbnail)

    def backfill_thumbnails(self) -> list[ThumbnailJobResult]:
        """Generate previews for image items still marked pending.

        Items whose recorded dimensions are already within the threshold
        are marked skipped without generating anything.
        """
        item_ids_by_key: dict[str, list[str]] = defaultdict(list)
        paths_by_key: dict[str, Path] = {}
        for item in self.records.items_pending_thumbnails():
            if item.width is not None and item.height is not None:
                if max(item.width, item.height) <= self.settings.thumb_max_size:
                    self.records.update_item_media_state(item.id, thumb_status=ThumbStatus.SKIPPED)
                    continue
            if not item.vault_key:
                continue
            item_ids_by_key[item.vault_key].append(item.id)
            paths_by_key.setdefault(item.vault_key, Path(item.vault_path))

        if not item_ids_by_key:
            return []

        def _mark(item_ids: list[str], status: ThumbStatus) -> None:
            for item_id in item_ids:
                self.records.update_item_media_state(item_id, thumb_status=status)

        with ThumbnailQueue(
            self.thumbnails,
            concurrency=self.settings.thumbnail_queue_concurrency,
            max_retries=self.settings.thumbnail_max_retries,
        ) as queue:
            for key, item_ids in item_ids_by_key.items():
                source = self.placement.locate_one(key) or paths_by_key[key]
                queue.enqueue(
                    ThumbnailTask(
                        dedupe_key=key,
                        input_path=source,
                        output_path=self.thumbnails.path_for(key),
                        max_size=self.settings.thumb_max_size,
                        on_success=lambda _path, ids=item_ids: _mark(ids, ThumbStatus.READY),
                        on_error=lambda _err, ids=item_ids: _mark(ids, ThumbStatus.ERROR),
                    )
                )
            results = queue.wait()

        logger.info(
            "Thumbnail backfill finished: %d ok, %d failed",
            sum(1 for r in results if r.ok),
            sum(1 for r in results if not r.ok),
        )
        return results
