"""Application class wiring the SQLite store to chat state and the transfer service."""

from __future__ import annotations

from typing import Callable

from chatport.infrastructure.adapters import DirectoryDownloader, LogNotifier
from chatport.infrastructure.database import AppDatabase
from chatport.infrastructure.logger import logger
from chatport.sessions.app_data import AppData
from chatport.sessions.manager import ChatHistory
from chatport.transfer.orchestrator import TransferDeps, TransferService
from chatport.transfer.ports import Downloader, Notifier


class ChatportApp:
    """Wires the persistence store to the chat state and the transfer engine."""

    def __init__(
        self,
        db: AppDatabase | None = None,
        downloader: Downloader | None = None,
        notifier: Notifier | None = None,
        request_restart: Callable[[], None] | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> None:
        self.db = db or AppDatabase()
        self.downloader = downloader or DirectoryDownloader()
        self.notifier = notifier or LogNotifier()
        self._request_restart = request_restart
        self._on_progress = on_progress
        self.chat_history: ChatHistory | None = None
        self.app_data: AppData | None = None
        self.transfer: TransferService | None = None

    def start(self) -> ChatportApp:
        """Open the database (unless already open) and load chat state."""
        if self.db.session_repo is None:
            self.db.init()

        self.chat_history = ChatHistory(self.db.session_repo, self.db.metadata_repo, self.notifier)
        self.chat_history.load_from_db()

        self.app_data = AppData(self.db, self.chat_history, self.notifier)
        self.app_data.load()

        self.transfer = TransferService(
            TransferDeps(
                store=self.db,
                chat_history=self.chat_history,
                app_data=self.app_data,
                downloader=self.downloader,
                notifier=self.notifier,
                request_restart=self._request_restart,
                on_progress=self._on_progress,
            )
        )
        logger.debug("Chatport started", chats=len(self.chat_history.get_all()))
        return self

    def delete_chat(self, chat_id: str) -> None:
        """Delete a chat along with its side-table entries and cached audio."""
        assert self.chat_history is not None and self.app_data is not None
        chat = self.chat_history.get(chat_id)
        self.app_data.cleanup_on_chat_delete(chat_id)
        if chat:
            for message in chat.messages:
                self.db.audio_repo.delete_for_message(message.id)
        self.chat_history.delete(chat_id)

    def shutdown(self) -> None:
        self.db.close()
