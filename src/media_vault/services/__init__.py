"""Services built on the blob store: ledger, garbage collection, records, thumbnail pass."""

from media_vault.services.garbage_collector import CleanupOutcome, GarbageCollector, SweepReport
from media_vault.services.ledger import ReferenceLedger
from media_vault.services.records import (
    DeleteItemsResult,
    RecordService,
    add_item,
    item_from_import,
)
from media_vault.services.thumbnail_queue import ThumbnailJobResult, ThumbnailQueue, ThumbnailTask

__all__ = [
    "CleanupOutcome",
    "DeleteItemsResult",
    "GarbageCollector",
    "RecordService",
    "ReferenceLedger",
    "SweepReport",
    "ThumbnailJobResult",
    "ThumbnailQueue",
    "ThumbnailTask",
    "add_item",
    "item_from_import",
]
