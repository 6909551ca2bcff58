"""Enumerations for the media-vault data model."""

from enum import Enum


class ThumbStatus(str, Enum):
    """Outcome of the thumbnail stage for an imported file.

    READY doubles as "not applicable" for non-image content.
    """

    PENDING = "pending"  # Image awaiting a later thumbnail pass
    SKIPPED = "skipped"  # Image already small enough, no thumbnail needed
    READY = "ready"
    ERROR = "error"  # Dimensions or thumbnail could not be produced


class ImportStatus(str, Enum):
    """Lifecycle status of an item's import."""

    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


class ItemType(str, Enum):
    """What kind of logical record an item is."""

    IMAGE = "image"
    FILE = "file"
    BOOKMARK = "bookmark"


def normalize_thumb_status(value: str | ThumbStatus) -> ThumbStatus:
    """Map free-form status strings onto ThumbStatus, defaulting to PENDING."""
    try:
        return ThumbStatus(str(getattr(value, "value", value)).strip().lower())
    except ValueError:
        return ThumbStatus.PENDING
