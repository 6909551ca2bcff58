"""Shared pytest fixtures for media-vault tests."""

from __future__ import annotations

import io
import struct
import zlib
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from PIL import Image

from media_vault.config import Settings
from media_vault.vault import Vault

MakeImage = Callable[..., bytes]


def create_test_image(width: int = 100, height: int = 100, format: str = "PNG") -> bytes:
    """Create a minimal test image."""
    img = Image.new("RGB", (width, height), color="red")
    buffer = io.BytesIO()
    img.save(buffer, format=format)
    return buffer.getvalue()


def create_oversized_png(width: int, height: int) -> bytes:
    """PNG header declaring a huge canvas, with no pixel data behind it."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        body = kind + data
        return struct.pack(">I", len(data)) + body + struct.pack(">I", zlib.crc32(body))

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IEND", b"")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a per-test temporary directory."""
    return Settings(app_root=tmp_path / "vault")


@pytest.fixture
def vault(settings: Settings) -> Generator[Vault, None, None]:
    """A started vault (tables created, roots ensured, initial sweep run)."""
    v = Vault(settings)
    v.startup()
    yield v
    v.close()


@pytest.fixture
def make_image() -> MakeImage:
    """Factory fixture for encoded test images."""
    return create_test_image


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[[str, bytes], Path]:
    """Write bytes to a named file outside the vault root."""
    source_dir = tmp_path / "sources"
    source_dir.mkdir(exist_ok=True)

    def _write(name: str, data: bytes) -> Path:
        path = source_dir / name
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def oversized_png() -> bytes:
    """A PNG whose declared size exceeds Pillow's decompression-bomb limit."""
    return create_oversized_png(20000, 20000)
