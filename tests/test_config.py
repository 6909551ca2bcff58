"""Tests for settings and vault layout."""

from __future__ import annotations

from pathlib import Path

import pytest

from media_vault.config import Settings


class TestSettings:
    def test_defaults(self, tmp_path: Path) -> None:
        settings = Settings(app_root=tmp_path)

        assert settings.thumb_max_size == 480
        assert settings.thumb_webp_quality == 60
        assert settings.hash_chunk_size == 64 * 1024
        assert settings.storage_root == tmp_path / "storage"
        assert settings.thumbs_root == tmp_path / "thumbs"
        assert settings.resolved_database_url == f"sqlite:///{tmp_path / 'vault.db'}"

    def test_environment_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MEDIA_VAULT_APP_ROOT", str(tmp_path / "env-root"))
        monkeypatch.setenv("MEDIA_VAULT_THUMB_MAX_SIZE", "256")
        monkeypatch.setenv("MEDIA_VAULT_PRUNE_ORPHANS", "false")

        settings = Settings()

        assert settings.app_root == tmp_path / "env-root"
        assert settings.thumb_max_size == 256
        assert settings.prune_orphans is False

    def test_explicit_database_url(self, tmp_path: Path) -> None:
        settings = Settings(app_root=tmp_path, database_url="sqlite:///:memory:")
        assert settings.resolved_database_url == "sqlite:///:memory:"
