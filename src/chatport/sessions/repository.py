"""Chat session persistence. One JSON document per session id."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

from chatport.sessions.types import AICharacter, ChatMessage, ChatSession, ChatSettings, GithubRepoContext
from chatport.transfer.errors import NotFoundError, PersistenceError


class SessionRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def add_or_update_session(self, session: ChatSession) -> None:
        try:
            self._db.execute(
                "INSERT OR REPLACE INTO chat_sessions (id, data, last_updated_at) VALUES (?, ?, ?)",
                (session.id, json.dumps(session.to_wire()), session.last_updated_at.timestamp()),
            )
            self._db.commit()
        except sqlite3.Error as err:
            raise PersistenceError(f"Failed to save chat session {session.id}: {err}") from err

    def get_session(self, session_id: str) -> ChatSession | None:
        row = self._db.execute("SELECT data FROM chat_sessions WHERE id = ?", (session_id,)).fetchone()
        if not row:
            return None
        return ChatSession.model_validate(json.loads(row["data"]))

    def get_all_sessions(self) -> list[ChatSession]:
        rows = self._db.execute("SELECT data FROM chat_sessions ORDER BY last_updated_at DESC").fetchall()
        return [ChatSession.model_validate(json.loads(row["data"])) for row in rows]

    def delete_session(self, session_id: str) -> None:
        try:
            self._db.execute("DELETE FROM chat_sessions WHERE id = ?", (session_id,))
            self._db.commit()
        except sqlite3.Error as err:
            raise PersistenceError(f"Failed to delete chat session {session_id}: {err}") from err

    # --- Granular updates ---

    def _update(self, session_id: str, **fields: Any) -> ChatSession:
        session = self.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Chat session not found: {session_id}")
        updated = session.model_copy(update={**fields, "last_updated_at": datetime.now(timezone.utc)})
        self.add_or_update_session(updated)
        return updated

    def update_title(self, session_id: str, title: str) -> ChatSession:
        return self._update(session_id, title=title)

    def update_messages(self, session_id: str, messages: list[ChatMessage]) -> ChatSession:
        return self._update(session_id, messages=messages)

    def update_settings(self, session_id: str, settings: ChatSettings) -> ChatSession:
        return self._update(session_id, settings=settings)

    def update_model(self, session_id: str, model: str) -> ChatSession:
        return self._update(session_id, model=model)

    def update_characters(self, session_id: str, characters: list[AICharacter]) -> ChatSession:
        return self._update(session_id, ai_characters=characters)

    def update_github_context(self, session_id: str, context: GithubRepoContext | None) -> ChatSession:
        return self._update(session_id, github_repo_context=context)
