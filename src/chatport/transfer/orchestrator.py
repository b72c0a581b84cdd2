"""Export and import entry points.

Exports run one at a time: a second request while one is running is rejected,
not queued. Each export walks the selected chats through the redactor (0-50%
progress), then compresses the archive (50-100%) and hands it to the downloader.
Imports parse and migrate a manifest (bare JSON or archive) in a worker thread.
Nothing is written to the persistence store until migration has finished; the
result is then merged in on a best-effort basis, one chat at a time.
"""

from __future__ import annotations

import asyncio
import io
import json
from datetime import datetime, timezone
from typing import Any, Callable, Literal, Sequence

from pydantic import BaseModel, Field

from chatport.infrastructure.config import (
    EXPORT_FILENAME_PREFIX,
    EXPORT_TOAST_DURATION_MS,
    INITIAL_MESSAGES_COUNT,
    RESTART_TOAST_DURATION_MS,
)
from chatport.infrastructure.logger import logger, transfer_context
from chatport.sessions.app_data import AppData
from chatport.sessions.defaults import METADATA_KEYS
from chatport.sessions.manager import ChatHistory
from chatport.sessions.types import ChatSession, ExportConfiguration
from chatport.transfer.container import create_container, looks_like_container, open_container
from chatport.transfer.errors import NotFoundError, PersistenceError, TransferError
from chatport.transfer.migrator import MigrationResult, migrate_manifest
from chatport.transfer.ports import Downloader, Notifier, PersistenceStore
from chatport.transfer.redactor import redact_session
from chatport.transfer.text_export import format_chat_as_text, sanitize_filename

MANIFEST_VERSION = "2.0-zip"

ErrorKind = Literal["busy", "not_found", "empty", "codec", "container", "persistence", "invalid_json", "unexpected"]


class ExportResult(BaseModel):
    success: bool
    message: str
    filename: str | None = None
    session_count: int = 0
    error_kind: ErrorKind | None = None


class ImportResult(BaseModel):
    success: bool
    message: str
    sessions_imported: int = 0
    failed_session_ids: list[str] = Field(default_factory=list)
    api_keys_imported: int = 0
    restart_required: bool = False
    active_chat_id: str | None = None
    format: str | None = None
    warnings: list[str] = Field(default_factory=list)
    error_kind: ErrorKind | None = None


class TransferDeps:
    """Collaborators for the transfer service, passed as a context object."""

    def __init__(
        self,
        store: PersistenceStore,
        chat_history: ChatHistory,
        app_data: AppData,
        downloader: Downloader,
        notifier: Notifier,
        request_restart: Callable[[], None] | None = None,
        on_progress: Callable[[int], None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.chat_history = chat_history
        self.app_data = app_data
        self.downloader = downloader
        self.notifier = notifier
        self.request_restart = request_restart
        self.on_progress = on_progress
        self.clock = clock or (lambda: datetime.now().astimezone())


def build_export_filename(chat_ids: Sequence[str], now: datetime, prefix: str = EXPORT_FILENAME_PREFIX) -> str:
    timestamp = now.strftime("%Y-%m-%d_%H-%M")
    suffix = f"_chat-{chat_ids[0][:8]}" if len(chat_ids) == 1 else "_selected-chats"
    return f"{prefix}-{timestamp}{suffix}.zip"


def build_manifest(
    chats: list[dict[str, Any]],
    config: ExportConfiguration,
    exported_at: datetime,
    last_active_chat_id: str | None = None,
    generation_times: dict[str, float] | None = None,
    display_config: dict[str, int] | None = None,
    global_defaults: Any = None,
    api_keys: Any = None,
) -> dict[str, Any]:
    """Assemble the export envelope; optional sections follow their own flags."""
    data: dict[str, Any] = {}
    if chats:
        data["chats"] = chats
    if config.include_last_active_chat_id:
        data["lastActiveChatId"] = last_active_chat_id
    if config.include_message_generation_times:
        data["messageGenerationTimes"] = generation_times or {}
    if config.include_ui_configuration:
        data["messagesToDisplayConfig"] = display_config or {}
    if config.include_user_defined_global_defaults:
        data["userDefinedGlobalDefaults"] = global_defaults
    if config.include_api_keys:
        data["apiKeys"] = api_keys
    data["exportConfigurationUsed"] = config.model_dump(by_alias=True)

    exported = exported_at.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return {"version": MANIFEST_VERSION, "exportedAt": exported, "data": data}


def _merge_api_keys(current: Any, imported: list[Any]) -> list[Any]:
    """Imported keys replace stored keys with the same id; others are kept."""
    if not isinstance(current, list):
        return list(imported)
    imported_ids = {k.get("id") for k in imported if isinstance(k, dict) and k.get("id")}
    kept = [k for k in current if not (isinstance(k, dict) and k.get("id") in imported_ids) and k not in imported]
    return kept + list(imported)


class TransferService:
    def __init__(self, deps: TransferDeps) -> None:
        self._deps = deps
        self._exporting = False
        self._importing = False
        self._progress = 0

    @property
    def is_exporting(self) -> bool:
        return self._exporting

    @property
    def export_progress(self) -> int:
        return self._progress

    def _set_progress(self, value: float) -> None:
        value = min(100, int(round(value)))
        if value <= self._progress:
            return
        self._progress = value
        if self._deps.on_progress:
            self._deps.on_progress(value)

    def _reset_progress(self) -> None:
        self._progress = 0

    # --- Export ---

    async def export_chats(
        self, chat_ids: Sequence[str], config: ExportConfiguration | None = None
    ) -> ExportResult:
        notifier = self._deps.notifier
        if self._exporting:
            notifier.notify("An export is already in progress.", "error")
            return ExportResult(success=False, message="An export is already in progress.", error_kind="busy")

        config = config or self._deps.app_data.current_export_config
        wanted = set(chat_ids)
        sessions = [s for s in self._deps.chat_history.get_all() if s.id in wanted]
        if not sessions:
            err = NotFoundError("Selected chats could not be found.")
            notifier.notify(str(err), "error")
            return ExportResult(success=False, message=str(err), error_kind=err.kind)

        self._exporting = True
        self._reset_progress()
        notifier.notify(f"Preparing export for {len(sessions)} chat(s)...", "success", EXPORT_TOAST_DURATION_MS)

        with transfer_context("export"):
            try:
                filename = await self._run_export(list(chat_ids), sessions, config)
            except TransferError as err:
                logger.error("Export failed", error=str(err), kind=err.kind, exc_info=True)
                notifier.notify(f"Export failed: {err}", "error")
                return ExportResult(success=False, message=f"Export failed: {err}", error_kind=err.kind)
            except Exception as err:
                logger.exception("Unexpected error during export")
                notifier.notify(f"Export failed: {err}", "error")
                return ExportResult(success=False, message=f"Export failed: {err}", error_kind="unexpected")
            finally:
                self._exporting = False
                self._reset_progress()

        notifier.notify("Export complete!", "success")
        return ExportResult(success=True, message="Export complete!", filename=filename, session_count=len(sessions))

    async def _run_export(
        self, chat_ids: list[str], sessions: list[ChatSession], config: ExportConfiguration
    ) -> str:
        deps = self._deps
        with create_container() as writer:
            chats: list[dict[str, Any]] = []
            for i, session in enumerate(sessions):
                chats.append(redact_session(session, config, writer, deps.store))
                self._set_progress((i + 1) / len(sessions) * 50)
                await asyncio.sleep(0)

            manifest = build_manifest(
                chats,
                config,
                exported_at=datetime.now(timezone.utc),
                last_active_chat_id=deps.chat_history.current_chat_id,
                generation_times=deps.app_data.message_generation_times,
                display_config=deps.app_data.messages_to_display_config,
                global_defaults=(
                    deps.store.get_metadata(METADATA_KEYS.USER_DEFINED_GLOBAL_DEFAULTS)
                    if config.include_user_defined_global_defaults
                    else None
                ),
                api_keys=deps.store.get_metadata(METADATA_KEYS.API_KEYS) if config.include_api_keys else None,
            )
            writer.put_manifest(manifest)
            logger.info("Compressing archive", sessions=len(chats), entries=len(writer.entry_names))

            stream = await asyncio.to_thread(writer.finalize, lambda pct: self._set_progress(50 + pct * 0.5))

        filename = build_export_filename(chat_ids, deps.clock())
        with stream:
            deps.downloader.download(stream, filename)
        logger.info("Export finished", filename=filename)
        return filename

    def export_chat_to_txt(self, filename: str | None = None) -> str | None:
        """Export the active chat as plain text. Returns the file name used."""
        session = self._deps.chat_history.current_session
        if session is None:
            self._deps.notifier.notify("No active chat session to export.", "error")
            return None

        final_name = filename or f"{sanitize_filename(session.title, 50)}.txt"
        if not final_name.endswith(".txt"):
            final_name = f"{final_name}.txt"
        content = format_chat_as_text(session)
        self._deps.downloader.download(io.BytesIO(content.encode("utf-8")), final_name)
        self._deps.notifier.notify("Chat exported to text file!", "success")
        return final_name

    # --- Import ---

    async def import_archive(self, data: bytes, filename: str | None = None) -> ImportResult:
        notifier = self._deps.notifier
        if self._importing:
            notifier.notify("An import is already in progress.", "error")
            return ImportResult(success=False, message="An import is already in progress.", error_kind="busy")

        self._importing = True
        with transfer_context("import"):
            try:
                # Touches only the archive; store writes stay on the event-loop thread.
                result = await asyncio.to_thread(self._read_and_migrate, data, filename)
                return self._apply_import(result)
            except TransferError as err:
                logger.error("Import failed", error=str(err), kind=err.kind)
                notifier.notify(f"Import Failed: {err}", "error")
                return ImportResult(success=False, message=f"Import Failed: {err}", error_kind=err.kind)
            except (UnicodeDecodeError, json.JSONDecodeError) as err:
                logger.error("Import failed, not valid JSON", error=str(err))
                notifier.notify(f"Import Failed: {err}", "error")
                return ImportResult(success=False, message=f"Import Failed: {err}", error_kind="invalid_json")
            except Exception as err:
                logger.exception("Unexpected error during import")
                notifier.notify(f"Import Failed: {err or 'Unknown error.'}", "error")
                return ImportResult(success=False, message=f"Import Failed: {err}", error_kind="unexpected")
            finally:
                self._importing = False

    def _read_and_migrate(self, data: bytes, filename: str | None) -> MigrationResult:
        if (filename or "").lower().endswith(".zip") or looks_like_container(data):
            with open_container(data) as reader:
                return migrate_manifest(reader.read_manifest(), reader)
        return migrate_manifest(json.loads(data.decode("utf-8-sig")))

    def _apply_import(self, result: MigrationResult) -> ImportResult:
        deps = self._deps
        warnings = [str(w) for w in result.warnings]

        if result.is_empty:
            message = "Could not import: File empty or format unrecognized."
            deps.notifier.notify(message, "error")
            return ImportResult(
                success=False, message=message, format=result.format, warnings=warnings, error_kind="empty"
            )

        failed: list[str] = []
        for session in result.sessions:
            try:
                deps.store.add_or_update_session(session)
            except PersistenceError as err:
                failed.append(session.id)
                logger.error("Failed to save imported chat", session_id=session.id, error=str(err))
                deps.notifier.notify(f"Failed to save imported chat '{session.title}'.", "error")
                continue
            warnings.extend(self._store_audio(session.id, result.audio_segments.get(session.id, [])))

        self._merge_side_tables(result)

        sessions = deps.chat_history.load_from_db()
        display_config: dict[str, int] = {}
        for session in sessions:
            count = len(session.messages)
            imported = result.display_config.get(session.id)
            default = session.settings.max_initial_messages_displayed or INITIAL_MESSAGES_COUNT
            display_config[session.id] = max(0, min(count, imported if imported is not None else default))

        active_id = result.active_chat_id if result.active_chat_id and deps.chat_history.get(result.active_chat_id) else None
        if active_id is None and sessions:
            active_id = sessions[0].id
        self._best_effort("display configuration", lambda: deps.app_data.set_messages_to_display_config(display_config))
        self._best_effort("active chat", lambda: deps.chat_history.select(active_id))

        api_key_count = len(result.api_keys or [])
        message = f"Import successful! {len(result.sessions)} session(s) processed."
        if api_key_count:
            message += f" {api_key_count} API key(s) processed. App will refresh."
            deps.notifier.notify(message, "success", RESTART_TOAST_DURATION_MS)
            if deps.request_restart:
                deps.request_restart()
        else:
            deps.notifier.notify(message, "success")

        logger.info("Import finished", sessions=len(result.sessions), failed=len(failed), api_keys=api_key_count)
        return ImportResult(
            success=True,
            message=message,
            sessions_imported=len(result.sessions) - len(failed),
            failed_session_ids=failed,
            api_keys_imported=api_key_count,
            restart_required=bool(api_key_count),
            active_chat_id=active_id,
            format=result.format,
            warnings=warnings,
        )

    def _store_audio(self, session_id: str, segments: list[tuple[str, bytes]]) -> list[str]:
        """Write the decoded audio of one imported chat. Returns a warning per failed segment."""
        warnings = []
        for key, blob in segments:
            try:
                self._deps.store.put_audio_blob(key, blob)
            except PersistenceError as err:
                logger.warning("Failed to store imported audio segment", session_id=session_id, key=key, error=str(err))
                warnings.append(f"Could not store audio segment {key}: {err} (session {session_id})")
        return warnings

    def _merge_side_tables(self, result: MigrationResult) -> None:
        deps = self._deps

        def merge_generation_times() -> None:
            current = deps.store.get_metadata(METADATA_KEYS.MESSAGE_GENERATION_TIMES) or {}
            deps.app_data.set_message_generation_times({**current, **result.generation_times})

        def merge_global_defaults() -> None:
            current = deps.store.get_metadata(METADATA_KEYS.USER_DEFINED_GLOBAL_DEFAULTS)
            imported = result.user_defined_global_defaults
            merged = {**current, **imported} if isinstance(current, dict) and isinstance(imported, dict) else imported
            deps.store.set_metadata(METADATA_KEYS.USER_DEFINED_GLOBAL_DEFAULTS, merged)

        def merge_api_keys() -> None:
            current = deps.store.get_metadata(METADATA_KEYS.API_KEYS)
            deps.store.set_metadata(METADATA_KEYS.API_KEYS, _merge_api_keys(current, result.api_keys or []))

        self._best_effort("generation times", merge_generation_times)
        if result.user_defined_global_defaults:
            self._best_effort("global defaults", merge_global_defaults)
        if result.export_configuration:
            config = result.export_configuration
            self._best_effort("export configuration", lambda: deps.app_data.set_current_export_config(config))
        if result.api_keys is not None:
            self._best_effort("API keys", merge_api_keys)

    def _best_effort(self, what: str, write: Callable[[], None]) -> None:
        try:
            write()
        except PersistenceError as err:
            logger.error("Failed to import side table", table=what, error=str(err))
            self._deps.notifier.notify(f"Failed to import {what}.", "error")
