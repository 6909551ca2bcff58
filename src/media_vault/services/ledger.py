"""Reference ledger for stored blobs.

One `vault_files` row per content key counts the live records pointing at
it. All mutation goes through `increment` / `decrement`, and both must run
in the same transaction as the record write that motivates them, so a crash
leaves both effects durable or neither.

Usage:
    with session_factory.begin() as session:
        session.add(item)
        ReferenceLedger(session).increment(item.vault_key, item.vault_path)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from media_vault.errors import InvalidKeyError
from media_vault.models.item import Item
from media_vault.models.vault_file import VaultFile, utc_now
from media_vault.storage.keys import ContentKey

logger = logging.getLogger(__name__)

# Dialects with an INSERT ... ON CONFLICT DO UPDATE construct
UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


def insert_for_dialect(dialect_name: str) -> Any:
    """Upsert-capable ``insert`` for a dialect.

    Raises:
        NotImplementedError: the dialect has no ON CONFLICT upsert.
    """
    try:
        return UPSERT_INSERTS[dialect_name]
    except KeyError:
        raise NotImplementedError(
            f"reference ledger needs SQLite or PostgreSQL, not {dialect_name!r}"
        ) from None


def _file_size(path: str) -> int:
    try:
        return Path(path).stat().st_size
    except OSError:
        return 0


class ReferenceLedger:
    """Transactional reference counting over `vault_files`.

    The ledger works inside the caller's session and never commits; the
    caller's transaction scope decides atomicity.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def increment(self, key: str, canonical_path: str | Path, size_bytes: int | None = None) -> int:
        """Add one reference to ``key``, creating the row at 1 if absent.

        Refreshes the canonical path and timestamps on every call.

        Raises:
            InvalidKeyError: ``key`` does not parse.
        """
        parsed = ContentKey.parse(key)
        token = key.strip()
        path = str(canonical_path)
        now = utc_now()
        size = size_bytes if size_bytes is not None else _file_size(path)

        insert = insert_for_dialect(self._session.get_bind().dialect.name)
        stmt = insert(VaultFile).values(
            key=token,
            path=path,
            digest=parsed.digest,
            ext=parsed.ext,
            size_bytes=size,
            ref_count=1,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[VaultFile.key],
            set_={
                "ref_count": VaultFile.ref_count + 1,
                "path": stmt.excluded.path,
                "digest": stmt.excluded.digest,
                "ext": stmt.excluded.ext,
                "size_bytes": case(
                    (stmt.excluded.size_bytes > 0, stmt.excluded.size_bytes),
                    else_=VaultFile.size_bytes,
                ),
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self._session.execute(stmt)
        refs = self.ref_count(token)
        logger.debug("Incremented %s to %d", token, refs)
        return refs

    def decrement(self, key: str, by: int = 1) -> int:
        """Drop ``by`` references (clamped to >= 0), flooring the count at zero.

        Returns the resulting count, 0 when no row exists.

        Raises:
            InvalidKeyError: ``key`` does not parse.
        """
        ContentKey.parse(key)
        token = key.strip()
        bounded = max(by, 0)
        self._session.execute(
            update(VaultFile)
            .where(VaultFile.key == token)
            .values(
                ref_count=case(
                    (VaultFile.ref_count > bounded, VaultFile.ref_count - bounded),
                    else_=0,
                ),
                updated_at=utc_now(),
            )
        )
        refs = self.ref_count(token)
        logger.debug("Decremented %s by %d to %d", token, bounded, refs)
        return refs

    def ref_count(self, key: str) -> int:
        refs = self._session.scalar(select(VaultFile.ref_count).where(VaultFile.key == key.strip()))
        return int(refs or 0)

    def get(self, key: str) -> VaultFile | None:
        return self._session.get(VaultFile, key.strip())

    def count_rows(self) -> int:
        return int(self._session.scalar(select(func.count()).select_from(VaultFile)) or 0)

    def entries(self, *, zero_only: bool = False) -> list[VaultFile]:
        stmt = select(VaultFile).order_by(VaultFile.created_at, VaultFile.key)
        if zero_only:
            stmt = stmt.where(VaultFile.ref_count <= 0)
        return list(self._session.scalars(stmt))

    def zero_ref_keys(self) -> list[str]:
        return list(
            self._session.scalars(
                select(VaultFile.key).where(VaultFile.ref_count <= 0).order_by(VaultFile.key)
            )
        )

    def delete_if_unreferenced(self, key: str) -> bool:
        """Remove the row only while its count is still <= 0."""
        result = self._session.execute(
            delete(VaultFile).where(VaultFile.key == key, VaultFile.ref_count <= 0)
        )
        return bool(result.rowcount)

    def reconcile_if_empty(self) -> int:
        """Rebuild counts from items when the ledger has no rows.

        Bootstrap path for databases that predate the ledger. Items with
        unparseable keys are logged and skipped.

        Returns:
            Number of ledger rows created.
        """
        if self.count_rows() > 0:
            return 0

        rows = self._session.execute(
            select(Item.vault_key, func.min(Item.vault_path), func.count())
            .where(Item.vault_key != "")
            .group_by(Item.vault_key)
        ).all()

        created = 0
        now = utc_now()
        for vault_key, vault_path, count in rows:
            try:
                parsed = ContentKey.parse(vault_key)
            except InvalidKeyError:
                logger.warning("Skipping invalid vault key during reconciliation: %r", vault_key)
                continue
            self._session.add(
                VaultFile(
                    key=vault_key.strip(),
                    path=vault_path or "",
                    digest=parsed.digest,
                    ext=parsed.ext,
                    size_bytes=_file_size(vault_path or ""),
                    ref_count=int(count),
                    created_at=now,
                    updated_at=now,
                )
            )
            created += 1

        if created:
            self._session.flush()
            logger.info("Reconciled %d vault ledger row(s) from existing items", created)
        return created
