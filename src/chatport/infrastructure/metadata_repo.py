"""App metadata key-value persistence. Values are stored as JSON."""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from chatport.transfer.errors import PersistenceError


class MetadataRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def get_metadata(self, key: str) -> Any | None:
        row = self._db.execute("SELECT value FROM app_metadata WHERE key = ?", (key,)).fetchone()
        return json.loads(row[0]) if row else None

    def set_metadata(self, key: str, value: Any) -> None:
        try:
            self._db.execute(
                "INSERT OR REPLACE INTO app_metadata (key, value) VALUES (?, ?)", (key, json.dumps(value))
            )
            self._db.commit()
        except (sqlite3.Error, TypeError, ValueError) as err:
            raise PersistenceError(f"Failed to write metadata {key}: {err}") from err
