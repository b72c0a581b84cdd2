"""Live chat session collection with in-memory cache and active-chat tracking."""

from __future__ import annotations

from chatport.infrastructure.logger import logger
from chatport.infrastructure.metadata_repo import MetadataRepository
from chatport.sessions.defaults import METADATA_KEYS
from chatport.sessions.repository import SessionRepository
from chatport.sessions.types import AICharacter, ChatMessage, ChatSession, ChatSettings, GithubRepoContext
from chatport.transfer.errors import TransferError
from chatport.transfer.ports import Notifier


class ChatHistory:
    """Chat list and active chat, backed by the session repository."""

    def __init__(
        self,
        session_repo: SessionRepository,
        metadata_repo: MetadataRepository,
        notifier: Notifier | None = None,
    ) -> None:
        self._session_repo = session_repo
        self._metadata_repo = metadata_repo
        self._notifier = notifier
        self._sessions: list[ChatSession] = []
        self._current_chat_id: str | None = None

    def load_from_db(self) -> list[ChatSession]:
        """Reload all sessions from the DB into the memory cache."""
        self._sessions = self._session_repo.get_all_sessions()
        if self._current_chat_id is None:
            stored = self._metadata_repo.get_metadata(METADATA_KEYS.ACTIVE_CHAT_ID)
            if stored and self.get(stored) is not None:
                self._current_chat_id = stored
        elif self.get(self._current_chat_id) is None:
            self._current_chat_id = None
        logger.debug("Chat history loaded", count=len(self._sessions))
        return self.get_all()

    def get_all(self) -> list[ChatSession]:
        return list(self._sessions)

    def get(self, chat_id: str) -> ChatSession | None:
        return next((s for s in self._sessions if s.id == chat_id), None)

    @property
    def current_chat_id(self) -> str | None:
        return self._current_chat_id

    @property
    def current_session(self) -> ChatSession | None:
        return self.get(self._current_chat_id) if self._current_chat_id else None

    def select(self, chat_id: str | None) -> None:
        """Make ``chat_id`` the active chat (None clears it) and persist the pointer."""
        if chat_id is not None and self.get(chat_id) is None:
            logger.warning("Cannot select unknown chat", chat_id=chat_id)
            chat_id = None
        self._current_chat_id = chat_id
        self._metadata_repo.set_metadata(METADATA_KEYS.ACTIVE_CHAT_ID, chat_id)

    def delete(self, chat_id: str) -> None:
        self._session_repo.delete_session(chat_id)
        self._sessions = [s for s in self._sessions if s.id != chat_id]
        if self._current_chat_id == chat_id:
            self.select(self._sessions[0].id if self._sessions else None)

    # --- Granular persistence ---

    def _apply(self, chat_id: str, failure_message: str, update) -> bool:  # type: ignore[no-untyped-def]
        try:
            updated = update()
        except TransferError as err:
            logger.error("Failed to update chat", chat_id=chat_id, error=str(err))
            if self._notifier:
                self._notifier.notify(failure_message, "error")
            return False
        self._sessions = [updated if s.id == chat_id else s for s in self._sessions]
        return True

    def update_title(self, chat_id: str, title: str) -> bool:
        return self._apply(chat_id, "Failed to save title change.", lambda: self._session_repo.update_title(chat_id, title))

    def update_messages(self, chat_id: str, messages: list[ChatMessage]) -> bool:
        return self._apply(
            chat_id, "Failed to save message changes.", lambda: self._session_repo.update_messages(chat_id, messages)
        )

    def update_settings(self, chat_id: str, settings: ChatSettings) -> bool:
        return self._apply(chat_id, "Failed to save settings.", lambda: self._session_repo.update_settings(chat_id, settings))

    def update_model(self, chat_id: str, model: str) -> bool:
        return self._apply(chat_id, "Failed to save model change.", lambda: self._session_repo.update_model(chat_id, model))

    def update_characters(self, chat_id: str, characters: list[AICharacter]) -> bool:
        return self._apply(
            chat_id,
            "Failed to save character changes.",
            lambda: self._session_repo.update_characters(chat_id, characters),
        )

    def update_github_context(self, chat_id: str, context: GithubRepoContext | None) -> bool:
        return self._apply(
            chat_id,
            "Failed to save GitHub context.",
            lambda: self._session_repo.update_github_context(chat_id, context),
        )
