"""Content keys: digest + normalized extension.

A key's canonical token is ``"{digest}.{ext}"``. It is the blob's filename,
the ledger's primary key and the stem of its thumbnail. Identical bytes with
different extensions are different keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from media_vault.errors import InvalidKeyError

DEFAULT_EXT = "bin"
THUMBNAIL_EXT = "webp"


def normalize_ext(ext: str | None) -> str:
    """Trim, lowercase, drop a leading dot and keep ASCII alphanumerics.

    Empty or all-punctuation input maps to ``"bin"``.
    """
    if ext is None:
        return DEFAULT_EXT
    cleaned = ext.strip().lstrip(".").lower()
    sanitized = "".join(ch for ch in cleaned if ch.isascii() and ch.isalnum())
    return sanitized or DEFAULT_EXT


def extension_from_filename(filename: str | None) -> str | None:
    """Normalized extension of a filename, or None when it has none."""
    if not filename:
        return None
    suffix = Path(filename).suffix
    if not suffix:
        return None
    return normalize_ext(suffix)


def extension_from_path(path: Path) -> str:
    return extension_from_filename(path.name) or DEFAULT_EXT


@dataclass(frozen=True)
class ContentKey:
    """Immutable (digest, ext) pair identifying a stored blob."""

    digest: str
    ext: str = DEFAULT_EXT

    @classmethod
    def build(cls, digest: str, ext: str | None) -> ContentKey:
        return cls(digest=digest.strip().lower(), ext=normalize_ext(ext))

    @classmethod
    def parse(cls, token: str) -> ContentKey:
        """Split a token on its last dot.

        Raises:
            InvalidKeyError: no dot, or the dot is the first or last character.
        """
        trimmed = token.strip()
        separator = trimmed.rfind(".")
        if separator <= 0 or separator == len(trimmed) - 1:
            raise InvalidKeyError(token)
        return cls(digest=trimmed[:separator], ext=normalize_ext(trimmed[separator + 1 :]))

    @property
    def token(self) -> str:
        return f"{self.digest}.{self.ext}"

    def __str__(self) -> str:
        return self.token


def try_parse_key(token: str) -> ContentKey | None:
    try:
        return ContentKey.parse(token)
    except InvalidKeyError:
        return None


def thumbnail_filename(key: ContentKey | str, preview_ext: str = THUMBNAIL_EXT) -> str:
    """Filesystem-safe thumbnail name for a key.

    Keeps ASCII alphanumerics and ``.-_`` from the token.
    """
    token = key.token if isinstance(key, ContentKey) else key.strip()
    sanitized = "".join(
        ch for ch in token if (ch.isascii() and ch.isalnum()) or ch in ".-_"
    )
    if not sanitized:
        raise InvalidKeyError(token)
    return f"{sanitized}.{preview_ext}"
