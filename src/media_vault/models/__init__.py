"""Database models for media-vault."""

from media_vault.models.base import Base
from media_vault.models.enums import ImportStatus, ItemType, ThumbStatus, normalize_thumb_status
from media_vault.models.item import Item
from media_vault.models.vault_file import VaultFile

__all__ = [
    "Base",
    "ImportStatus",
    "Item",
    "ItemType",
    "ThumbStatus",
    "VaultFile",
    "normalize_thumb_status",
]
