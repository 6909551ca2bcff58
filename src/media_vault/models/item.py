"""Logical record that references a stored blob."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from media_vault.models.base import Base
from media_vault.models.enums import ImportStatus, ItemType, ThumbStatus
from media_vault.models.vault_file import utc_now


class Item(Base):
    """A vault item (image, file or bookmark preview).

    Items point at blobs by content key. Several items may share one key;
    the ledger counts them.
    """

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[ItemType] = mapped_column(default=ItemType.FILE)
    title: Mapped[str] = mapped_column(String(1024), default="")
    filename: Mapped[str] = mapped_column(String(1024), default="")
    vault_key: Mapped[str] = mapped_column(String(255), default="", index=True)
    vault_path: Mapped[str] = mapped_column(String(4096), default="")
    width: Mapped[int | None] = mapped_column(Integer)
    height: Mapped[int | None] = mapped_column(Integer)
    thumb_status: Mapped[ThumbStatus] = mapped_column(default=ThumbStatus.PENDING)
    import_status: Mapped[ImportStatus] = mapped_column(default=ImportStatus.READY)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
