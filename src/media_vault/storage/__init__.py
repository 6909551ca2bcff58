"""Content-addressed storage: hashing, keys, placement and the blob store."""

from media_vault.storage.blob_store import BlobStore, PlaceResult
from media_vault.storage.hashing import sha256_bytes, sha256_file, sha256_stream
from media_vault.storage.keys import (
    ContentKey,
    extension_from_filename,
    extension_from_path,
    normalize_ext,
    thumbnail_filename,
    try_parse_key,
)
from media_vault.storage.placement import BlobPlacement

__all__ = [
    "BlobPlacement",
    "BlobStore",
    "ContentKey",
    "PlaceResult",
    "extension_from_filename",
    "extension_from_path",
    "normalize_ext",
    "sha256_bytes",
    "sha256_file",
    "sha256_stream",
    "thumbnail_filename",
    "try_parse_key",
]
