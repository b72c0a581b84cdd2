"""SQLite schema and AppDatabase composition root.

AppDatabase also acts as the persistence store handed to the transfer engine,
delegating each call to the repository that owns the table.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from chatport.infrastructure.config import DB_FILENAME, STORE_DIR
from chatport.infrastructure.logger import logger
from chatport.sessions.types import ChatSession


def create_schema(db: sqlite3.Connection) -> None:
    """Create all tables and indexes. Safe to call multiple times (IF NOT EXISTS)."""
    db.executescript("""
        CREATE TABLE IF NOT EXISTS chat_sessions (
            id TEXT PRIMARY KEY,
            data TEXT NOT NULL,
            last_updated_at REAL NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_sessions_updated ON chat_sessions(last_updated_at);

        CREATE TABLE IF NOT EXISTS app_metadata (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        CREATE TABLE IF NOT EXISTS audio_segments (
            key TEXT PRIMARY KEY,
            data BLOB NOT NULL
        );
    """)


class AppDatabase:
    """Composition root that initializes the DB and exposes repositories."""

    def __init__(self) -> None:
        self._db: sqlite3.Connection | None = None
        self.session_repo: SessionRepository | None = None  # type: ignore[assignment]
        self.metadata_repo: MetadataRepository | None = None  # type: ignore[assignment]
        self.audio_repo: AudioRepository | None = None  # type: ignore[assignment]

    @property
    def db(self) -> sqlite3.Connection:
        assert self._db is not None, "Database not initialized. Call init() first."
        return self._db

    def init(self) -> None:
        """Open (or create) the database file at the standard location."""
        db_path = STORE_DIR / DB_FILENAME
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(str(db_path))
        self._db.row_factory = sqlite3.Row
        self._init_repos()
        logger.debug("Database opened", path=str(db_path))

    def _init_test(self) -> None:
        """For tests only. Creates a fresh in-memory database."""
        self._db = sqlite3.connect(":memory:")
        self._db.row_factory = sqlite3.Row
        self._init_repos()

    def _init_repos(self) -> None:
        assert self._db is not None
        create_schema(self._db)

        # Import here to avoid circular imports
        from chatport.infrastructure.audio_repo import AudioRepository
        from chatport.infrastructure.metadata_repo import MetadataRepository
        from chatport.sessions.repository import SessionRepository

        self.session_repo = SessionRepository(self._db)
        self.metadata_repo = MetadataRepository(self._db)
        self.audio_repo = AudioRepository(self._db)

    def close(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None

    # --- PersistenceStore ---

    def get_metadata(self, key: str) -> Any | None:
        return self.metadata_repo.get_metadata(key)

    def set_metadata(self, key: str, value: Any) -> None:
        self.metadata_repo.set_metadata(key, value)

    def add_or_update_session(self, session: ChatSession) -> None:
        self.session_repo.add_or_update_session(session)

    def get_all_sessions(self) -> list[ChatSession]:
        return self.session_repo.get_all_sessions()

    def get_audio_blob(self, key: str) -> bytes | None:
        return self.audio_repo.get_audio_blob(key)

    def put_audio_blob(self, key: str, data: bytes) -> None:
        self.audio_repo.put_audio_blob(key, data)
