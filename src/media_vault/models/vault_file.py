"""Reference ledger row: one per stored content key."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from media_vault.models.base import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VaultFile(Base):
    """Reference-counted ledger entry for a stored blob.

    `ref_count` equals the number of live records pointing at `key`. It is
    only ever changed through the ledger's increment/decrement and never
    drops below zero. A row is removed only by the garbage collector, after
    the blob and its thumbnail are gone.
    """

    __tablename__ = "vault_files"
    __table_args__ = (CheckConstraint("ref_count >= 0", name="ck_vault_files_ref_count"),)

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    path: Mapped[str] = mapped_column(String(4096))
    digest: Mapped[str] = mapped_column(String(64))
    ext: Mapped[str] = mapped_column(String(32))
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    ref_count: Mapped[int] = mapped_column(Integer, default=0, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
