"""Record lifecycle: the item operations that drive the reference ledger.

Every item write that adds or drops a blob reference updates the ledger in
the same transaction. Blobs whose count reaches zero on delete are
collected after that transaction commits.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from media_vault.errors import RecordNotFoundError
from media_vault.models.enums import ImportStatus, ItemType, ThumbStatus, normalize_thumb_status
from media_vault.models.item import Item
from media_vault.models.vault_file import utc_now
from media_vault.pipeline import PipelineResult
from media_vault.services.garbage_collector import CleanupOutcome, GarbageCollector
from media_vault.services.ledger import ReferenceLedger
from media_vault.storage.keys import try_parse_key

logger = logging.getLogger(__name__)


@dataclass
class DeleteItemsResult:
    deleted_rows: int = 0
    cleanup: list[CleanupOutcome] = field(default_factory=list)


def item_from_import(
    result: PipelineResult,
    *,
    item_id: str | None = None,
    title: str | None = None,
) -> Item:
    """Build an unsaved item for a finished import."""
    return Item(
        id=item_id or str(uuid4()),
        type=ItemType.IMAGE if result.is_image else ItemType.FILE,
        title=title or result.original_filename,
        filename=result.original_filename,
        vault_key=result.vault_key,
        vault_path=str(result.canonical_path),
        width=result.width,
        height=result.height,
        thumb_status=result.thumbnail_status,
        import_status=ImportStatus.READY,
    )


def add_item(session: Session, item: Item) -> None:
    """Insert ``item`` and count its blob reference in the same session."""
    session.add(item)
    session.flush()
    if item.vault_key.strip():
        ReferenceLedger(session).increment(item.vault_key, item.vault_path)


class RecordService:
    """Item operations with reference accounting.

    Usage:
        records = RecordService(session_factory, collector)
        records.insert_item(item_from_import(result))
        records.delete_items_with_cleanup([item_id])
    """

    def __init__(
        self, session_factory: sessionmaker[Session], collector: GarbageCollector
    ) -> None:
        self._session_factory = session_factory
        self._collector = collector

    def get_item(self, item_id: str) -> Item | None:
        with self._session_factory() as session:
            return session.get(Item, item_id)

    def insert_item(self, item: Item) -> Item:
        with self._session_factory.begin() as session:
            add_item(session, item)
        return item

    def insert_items(self, items: Iterable[Item]) -> list[Item]:
        """Insert a batch atomically: all items and references, or none."""
        inserted = list(items)
        if not inserted:
            return inserted
        with self._session_factory.begin() as session:
            for item in inserted:
                add_item(session, item)
        return inserted

    def delete_items_with_cleanup(self, item_ids: Iterable[str]) -> DeleteItemsResult:
        """Delete items, drop their references, then collect keys that hit zero."""
        ids = [i.strip() for i in item_ids if i and i.strip()]
        if not ids:
            return DeleteItemsResult()

        candidates: list[str] = []
        with self._session_factory.begin() as session:
            items = list(session.scalars(select(Item).where(Item.id.in_(ids))))
            counts_by_key = Counter(item.vault_key for item in items if item.vault_key.strip())
            for item in items:
                session.delete(item)
            session.flush()

            ledger = ReferenceLedger(session)
            for vault_key, deleted in counts_by_key.items():
                if try_parse_key(vault_key) is None:
                    logger.warning("Cannot clean up invalid vault key after delete: %r", vault_key)
                    continue
                refs_after = ledger.decrement(vault_key, deleted)
                remaining = session.scalar(
                    select(func.count()).select_from(Item).where(Item.vault_key == vault_key)
                )
                if refs_after == 0 and not remaining:
                    candidates.append(vault_key)
            deleted_rows = len(items)

        cleanup = self._collector.collect(candidates) if candidates else []
        return DeleteItemsResult(deleted_rows=deleted_rows, cleanup=cleanup)

    def finalize_item_import(
        self,
        item_id: str,
        *,
        vault_key: str,
        vault_path: str,
        title: str | None = None,
        filename: str | None = None,
        width: int | None = None,
        height: int | None = None,
        thumb_status: str | ThumbStatus = ThumbStatus.PENDING,
    ) -> datetime:
        """Point an item at newly stored content.

        When the key changes, the old key loses one reference and the new
        key gains one, in the same transaction as the item update.
        """
        next_key = vault_key.strip()
        next_path = vault_path.strip()
        if not next_key or not next_path:
            raise ValueError("cannot finalize import without a vault key/path")

        with self._session_factory.begin() as session:
            item = session.get(Item, item_id)
            if item is None:
                raise RecordNotFoundError(item_id, "finalizing import")

            ledger = ReferenceLedger(session)
            current_key = item.vault_key
            if current_key != next_key:
                if current_key.strip():
                    ledger.decrement(current_key, 1)
                ledger.increment(next_key, next_path)

            updated_at = utc_now()
            if title is not None:
                item.title = title
            if filename is not None:
                item.filename = filename
            item.vault_key = next_key
            item.vault_path = next_path
            item.width = width
            item.height = height
            item.thumb_status = normalize_thumb_status(thumb_status)
            item.import_status = ImportStatus.READY
            item.updated_at = updated_at
        return updated_at

    def mark_item_import_error(self, item_id: str) -> datetime:
        with self._session_factory.begin() as session:
            item = session.get(Item, item_id)
            if item is None:
                raise RecordNotFoundError(item_id, "marking import error")
            updated_at = utc_now()
            item.import_status = ImportStatus.ERROR
            if item.type == ItemType.IMAGE:
                item.thumb_status = ThumbStatus.ERROR
            item.updated_at = updated_at
        return updated_at

    def update_item_media_state(
        self,
        item_id: str,
        *,
        width: int | None = None,
        height: int | None = None,
        thumb_status: str | ThumbStatus | None = None,
    ) -> datetime:
        """Update dimensions and/or thumbnail status; None leaves a field as is."""
        with self._session_factory.begin() as session:
            item = session.get(Item, item_id)
            if item is None:
                raise RecordNotFoundError(item_id, "updating media state")
            updated_at = utc_now()
            if width is not None:
                item.width = width
            if height is not None:
                item.height = height
            if thumb_status is not None:
                item.thumb_status = normalize_thumb_status(thumb_status)
            item.updated_at = updated_at
        return updated_at

    def items_pending_thumbnails(self) -> list[Item]:
        with self._session_factory() as session:
            return list(
                session.scalars(
                    select(Item)
                    .where(Item.type == ItemType.IMAGE, Item.thumb_status == ThumbStatus.PENDING)
                    .order_by(Item.created_at)
                )
            )
