"""Database engine and session management."""

from __future__ import annotations

import sqlite3
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from media_vault.config import Settings
from media_vault.models import Base


def create_db_engine(settings: Settings) -> Engine:
    """Create the SQLAlchemy engine for the vault database.

    For SQLite URLs the parent directory of the database file is created and
    foreign keys are enabled on every connection.
    """
    url = settings.resolved_database_url
    if url.startswith("sqlite") and settings.database_url is None:
        settings.db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, echo=settings.database_echo)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
            if isinstance(dbapi_connection, sqlite3.Connection):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys = ON")
                cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory; use `factory.begin()` for a transaction scope."""
    return sessionmaker(engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(engine)
