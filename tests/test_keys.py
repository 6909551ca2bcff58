"""Tests for content keys and extension normalization."""

from __future__ import annotations

from pathlib import Path

import pytest

from media_vault.errors import InvalidKeyError
from media_vault.storage.keys import (
    ContentKey,
    extension_from_filename,
    extension_from_path,
    normalize_ext,
    thumbnail_filename,
    try_parse_key,
)

DIGEST = "a" * 64


class TestNormalizeExt:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("jpg", "jpg"),
            (".JPG", "jpg"),
            ("  .Png  ", "png"),
            ("tar.gz", "targz"),
            ("we-bp", "webp"),
            ("", "bin"),
            ("...", "bin"),
            ("-_-", "bin"),
            (None, "bin"),
        ],
    )
    def test_normalization(self, raw: str | None, expected: str) -> None:
        assert normalize_ext(raw) == expected

    def test_non_ascii_is_dropped(self) -> None:
        assert normalize_ext("jpé") == "jp"

    def test_extension_from_filename(self) -> None:
        assert extension_from_filename("Holiday.JPEG") == "jpeg"
        assert extension_from_filename("archive.tar.gz") == "gz"
        assert extension_from_filename("README") is None
        assert extension_from_filename(None) is None

    def test_extension_from_path_defaults_to_bin(self) -> None:
        assert extension_from_path(Path("/tmp/noext")) == "bin"
        assert extension_from_path(Path("/tmp/photo.PNG")) == "png"


class TestContentKey:
    def test_token_round_trip(self) -> None:
        key = ContentKey.build(DIGEST, ".JPG")
        assert key.token == f"{DIGEST}.jpg"
        assert str(key) == key.token
        assert ContentKey.parse(key.token) == key

    def test_parse_splits_on_last_dot(self) -> None:
        key = ContentKey.parse("abc.def.png")
        assert key.digest == "abc.def"
        assert key.ext == "png"

    @pytest.mark.parametrize("token", ["nodot", ".png", "abc.", "", "   "])
    def test_parse_rejects_invalid_tokens(self, token: str) -> None:
        with pytest.raises(InvalidKeyError):
            ContentKey.parse(token)
        assert try_parse_key(token) is None

    def test_parse_trims_whitespace(self) -> None:
        assert ContentKey.parse(f"  {DIGEST}.png ").token == f"{DIGEST}.png"

    def test_same_digest_different_ext_are_different_keys(self) -> None:
        assert ContentKey.build(DIGEST, "jpg") != ContentKey.build(DIGEST, "png")

    def test_default_ext_is_bin(self) -> None:
        assert ContentKey(DIGEST).token == f"{DIGEST}.bin"


class TestThumbnailFilename:
    def test_uses_key_token(self) -> None:
        assert thumbnail_filename(ContentKey.build(DIGEST, "png")) == f"{DIGEST}.png.webp"

    def test_sanitizes_unsafe_characters(self) -> None:
        assert thumbnail_filename("../etc/passwd.png") == "..etcpasswd.png.webp"

    def test_empty_key_is_rejected(self) -> None:
        with pytest.raises(InvalidKeyError):
            thumbnail_filename("  ")
