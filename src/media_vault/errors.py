"""Error taxonomy for the vault.

- Input-contract errors (`InvalidKeyError`, `InvalidSourceError`) are raised
  before any I/O and surface verbatim.
- `VaultIOError` wraps filesystem failures with the operation and path.
- `ThumbnailError` is a best-effort failure: the pipeline records it as
  `thumbnail_status = error` instead of aborting the import.
"""

from __future__ import annotations

from pathlib import Path


class VaultError(Exception):
    """Base class for all vault errors."""


class InvalidKeyError(VaultError, ValueError):
    """A content key token could not be parsed."""

    def __init__(self, token: str) -> None:
        super().__init__(f"invalid vault key: {token!r}")
        self.token = token


class InvalidSourceError(VaultError, ValueError):
    """An import source violates the input contract."""


class VaultIOError(VaultError, OSError):
    """A filesystem operation failed."""

    def __init__(self, operation: str, path: Path | str, cause: BaseException) -> None:
        super().__init__(f"failed to {operation} {path}: {cause}")
        self.operation = operation
        self.path = Path(path)
        self.cause = cause


class ThumbnailError(VaultError):
    """Thumbnail generation failed at a given stage (open/decode/resize/encode/write)."""

    def __init__(self, stage: str, path: Path | str, message: str) -> None:
        super().__init__(f"thumbnail {stage} failed for {path}: {message}")
        self.stage = stage
        self.path = Path(path)


class RecordNotFoundError(VaultError, LookupError):
    """A record-lifecycle call referenced an item that does not exist."""

    def __init__(self, item_id: str, action: str) -> None:
        super().__init__(f"item not found while {action}: {item_id}")
        self.item_id = item_id
