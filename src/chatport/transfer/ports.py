"""Collaborator protocols consumed by the transfer engine."""

from __future__ import annotations

from typing import IO, Any, Literal, Protocol, runtime_checkable

from chatport.sessions.types import ChatSession

NotifyLevel = Literal["success", "error", "info", "warning"]


@runtime_checkable
class PersistenceStore(Protocol):
    def get_metadata(self, key: str) -> Any | None: ...
    def set_metadata(self, key: str, value: Any) -> None: ...
    def add_or_update_session(self, session: ChatSession) -> None: ...
    def get_all_sessions(self) -> list[ChatSession]: ...
    def get_audio_blob(self, key: str) -> bytes | None: ...
    def put_audio_blob(self, key: str, data: bytes) -> None: ...


@runtime_checkable
class AudioBlobStore(Protocol):
    def get_audio_blob(self, key: str) -> bytes | None: ...
    def put_audio_blob(self, key: str, data: bytes) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    def notify(self, message: str, level: NotifyLevel = "info", duration_ms: int | None = None) -> None: ...


@runtime_checkable
class Downloader(Protocol):
    def download(self, stream: IO[bytes], filename: str) -> None: ...
