"""Configuration settings for media-vault."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MEDIA_VAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application-private root holding storage/, thumbs/ and the database
    app_root: Path = Path.home() / ".media_vault"

    # Database (defaults to a SQLite file under app_root; SQLite or PostgreSQL)
    database_url: str | None = None
    database_echo: bool = False

    # ── Thumbnails ───────────────────────────────────────────────────────────
    # Longer side at or below this is "already small": no thumbnail is made.
    # Also the target longer side of generated thumbnails.
    thumb_max_size: int = 480
    thumb_webp_quality: int = 60

    # ── Hashing ──────────────────────────────────────────────────────────────
    hash_chunk_size: int = 64 * 1024

    # ── Garbage collection ───────────────────────────────────────────────────
    # Prune unreferenced blobs and duplicate copies during the startup sweep
    prune_orphans: bool = True
    # Blobs younger than this may belong to an in-flight import
    orphan_grace_seconds: int = 3600

    # ── Background thumbnail pass ────────────────────────────────────────────
    thumbnail_queue_concurrency: int = 2
    thumbnail_max_retries: int = 1

    log_level: str = "INFO"

    @property
    def storage_root(self) -> Path:
        return self.app_root / "storage"

    @property
    def thumbs_root(self) -> Path:
        return self.app_root / "thumbs"

    @property
    def db_path(self) -> Path:
        return self.app_root / "vault.db"

    @property
    def resolved_database_url(self) -> str:
        return self.database_url or f"sqlite:///{self.db_path}"


settings = Settings()
