"""Side tables kept alongside chats: display counts, generation times, export config."""

from __future__ import annotations

from typing import Callable, Union

from pydantic import ValidationError

from chatport.infrastructure.logger import logger
from chatport.sessions.defaults import METADATA_KEYS
from chatport.sessions.manager import ChatHistory
from chatport.sessions.types import DEFAULT_EXPORT_CONFIGURATION, ExportConfiguration
from chatport.transfer.errors import PersistenceError
from chatport.transfer.ports import Notifier, PersistenceStore

TableUpdate = Union[dict[str, float], Callable[[dict[str, float]], dict[str, float]]]


class AppData:
    def __init__(self, store: PersistenceStore, chat_history: ChatHistory, notifier: Notifier | None = None) -> None:
        self._store = store
        self._chat_history = chat_history
        self._notifier = notifier
        self.messages_to_display_config: dict[str, int] = {}
        self.current_export_config: ExportConfiguration = DEFAULT_EXPORT_CONFIGURATION
        self.message_generation_times: dict[str, float] = {}

    def load(self) -> None:
        """Load persisted side tables. Failures keep the defaults."""
        try:
            display = self._store.get_metadata(METADATA_KEYS.MESSAGES_TO_DISPLAY_CONFIG)
            if isinstance(display, dict):
                self.messages_to_display_config = display

            export_config = self._store.get_metadata(METADATA_KEYS.EXPORT_CONFIGURATION)
            self.current_export_config = (
                ExportConfiguration.model_validate(export_config)
                if isinstance(export_config, dict)
                else DEFAULT_EXPORT_CONFIGURATION
            )

            gen_times = self._store.get_metadata(METADATA_KEYS.MESSAGE_GENERATION_TIMES)
            if isinstance(gen_times, dict):
                self.message_generation_times = gen_times
        except (PersistenceError, ValidationError) as err:
            logger.error("Failed to load persisted app data", error=str(err))

    def set_messages_to_display_config(self, update: TableUpdate) -> None:
        new_config = update(self.messages_to_display_config) if callable(update) else update
        self.messages_to_display_config = new_config
        self._store.set_metadata(METADATA_KEYS.MESSAGES_TO_DISPLAY_CONFIG, new_config)

    def set_current_export_config(self, config: ExportConfiguration) -> None:
        self.current_export_config = config
        self._store.set_metadata(METADATA_KEYS.EXPORT_CONFIGURATION, config.model_dump(by_alias=True))

    def set_message_generation_times(self, update: TableUpdate) -> None:
        new_times = update(self.message_generation_times) if callable(update) else update
        self.message_generation_times = new_times
        self._store.set_metadata(METADATA_KEYS.MESSAGE_GENERATION_TIMES, new_times)

    def cleanup_on_chat_delete(self, chat_id: str) -> None:
        """Drop the display count of a chat and the generation times of its messages."""
        self.set_messages_to_display_config(lambda prev: {k: v for k, v in prev.items() if k != chat_id})

        chat = self._chat_history.get(chat_id)
        if chat:
            message_ids = {m.id for m in chat.messages}
            self.set_message_generation_times(lambda prev: {k: v for k, v in prev.items() if k not in message_ids})

    def manual_save(self, silent: bool = False) -> None:
        """Write every live chat and side table. Failures are re-raised to the caller."""
        try:
            for session in self._chat_history.get_all():
                self._store.add_or_update_session(session)
            if self._chat_history.current_chat_id:
                self._store.set_metadata(METADATA_KEYS.ACTIVE_CHAT_ID, self._chat_history.current_chat_id)
            self._store.set_metadata(METADATA_KEYS.MESSAGE_GENERATION_TIMES, self.message_generation_times)
            self._store.set_metadata(METADATA_KEYS.MESSAGES_TO_DISPLAY_CONFIG, self.messages_to_display_config)
            self._store.set_metadata(
                METADATA_KEYS.EXPORT_CONFIGURATION, self.current_export_config.model_dump(by_alias=True)
            )
        except PersistenceError as err:
            logger.error("Save operation failed", error=str(err))
            if not silent and self._notifier:
                self._notifier.notify("Failed to save app state.", "error")
            raise
