"""Cached TTS audio segments, keyed ``{messageId}_part_{index}``."""

from __future__ import annotations

import sqlite3

from chatport.transfer.errors import PersistenceError


def audio_segment_key(message_id: str, index: int) -> str:
    return f"{message_id}_part_{index}"


class AudioRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def get_audio_blob(self, key: str) -> bytes | None:
        row = self._db.execute("SELECT data FROM audio_segments WHERE key = ?", (key,)).fetchone()
        return bytes(row[0]) if row else None

    def put_audio_blob(self, key: str, data: bytes) -> None:
        try:
            self._db.execute("INSERT OR REPLACE INTO audio_segments (key, data) VALUES (?, ?)", (key, data))
            self._db.commit()
        except sqlite3.Error as err:
            raise PersistenceError(f"Failed to write audio segment {key}: {err}") from err

    def delete_for_message(self, message_id: str) -> int:
        # Escape LIKE wildcards that may appear in ids.
        escaped = message_id.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        cursor = self._db.execute(
            "DELETE FROM audio_segments WHERE key LIKE ? ESCAPE '\\'", (f"{escaped}\\_part\\_%",)
        )
        self._db.commit()
        return cursor.rowcount
