"""Content hashing.

Digests are lowercase hex SHA-256. File sources are streamed in bounded
chunks so large imports never need to fit in memory.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import BinaryIO

from media_vault.errors import VaultIOError

DEFAULT_CHUNK_SIZE = 64 * 1024


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_stream(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Hash everything remaining in a binary stream."""
    hasher = hashlib.sha256()
    while chunk := stream.read(chunk_size):
        hasher.update(chunk)
    return hasher.hexdigest()


def sha256_file(path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Hash a file on disk without loading it whole."""
    try:
        with path.open("rb") as handle:
            return sha256_stream(handle, chunk_size)
    except OSError as err:
        raise VaultIOError("read", path, err) from err
