"""Normalize an imported manifest into canonical sessions and side tables.

Manifest shapes accepted, newest first:

- ``container``: ``{"version": "2.0-zip", "data": {"chats": [...], ...}}`` read
  from an archive; attachments and audio refer to archive entries.
- ``json``: the same ``data`` shape as a bare JSON document. There are no
  archive entries to resolve, so attachments pass through unchanged.
- ``legacy``: an object without a ``data.chats`` list. Side tables are still
  read, but no sessions are recovered.
- ``invalid``: anything that is not a JSON object. Nothing is recovered.

Side-table fallbacks:

- ``exportConfigurationUsed`` wins over the older ``exportConfiguration``.
- An ``appState`` entry ``{"key": "activeId"}`` wins over ``lastActiveChatId``.

The migrator never raises for bad data. Problems are collected as
MigrationWarning instances on the result; container read failures are the
exception and propagate as ContainerFormatError.
"""

from __future__ import annotations

import copy
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import ValidationError

from chatport.infrastructure.audio_repo import audio_segment_key
from chatport.infrastructure.config import INITIAL_MESSAGES_COUNT
from chatport.infrastructure.logger import logger
from chatport.sessions.defaults import DEFAULT_SAFETY_SETTINGS, DEFAULT_SETTINGS, DEFAULT_TTS_SETTINGS
from chatport.sessions.types import ChatSession, ExportConfiguration
from chatport.transfer.codec import iter_encode, to_data_url
from chatport.transfer.container import ContainerReader, iter_chunks
from chatport.transfer.errors import ContainerFormatError, MigrationWarning

ManifestFormat = Literal["container", "json", "legacy", "invalid"]

_ROLES = ("user", "model", "system")
_OPTIONAL_BOOL_SETTINGS = ("aiSeesTimestamps", "useGoogleSearch", "debugApiRequests")


@dataclass
class MigrationResult:
    sessions: list[ChatSession] = field(default_factory=list)
    generation_times: dict[str, float] = field(default_factory=dict)
    display_config: dict[str, int] = field(default_factory=dict)
    active_chat_id: str | None = None
    export_configuration: ExportConfiguration | None = None
    api_keys: list[Any] | None = None
    user_defined_global_defaults: Any | None = None
    # Decoded audio per session id, as (segment key, bytes); written by the importer.
    audio_segments: dict[str, list[tuple[str, bytes]]] = field(default_factory=dict)
    format: ManifestFormat = "invalid"
    version: str | None = None
    warnings: list[MigrationWarning] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when nothing worth importing was recovered."""
        return (
            not self.sessions
            and not self.generation_times
            and not self.active_chat_id
            and not self.display_config
        )

    def warn(self, message: str, session_id: str | None = None) -> None:
        warning = MigrationWarning(message, session_id)
        self.warnings.append(warning)
        logger.warning("Import migration warning", warning=str(warning))


def detect_format(raw: Any) -> ManifestFormat:
    if not isinstance(raw, dict):
        return "invalid"
    data = raw.get("data")
    if isinstance(data, dict) and isinstance(data.get("chats"), list):
        return "container" if str(raw.get("version", "")).endswith("-zip") else "json"
    return "legacy"


def parse_timestamp(value: Any) -> datetime | None:
    """Accept datetimes, ISO-8601 strings, and epoch milliseconds."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def merge_settings(incoming: Any) -> dict[str, Any]:
    """Shallow-merge imported settings over the defaults.

    Nested blocks (safety thresholds, TTS config) are taken from the import only
    when present and non-empty.
    """
    incoming = {k: v for k, v in incoming.items() if v is not None} if isinstance(incoming, dict) else {}
    merged = {**copy.deepcopy(DEFAULT_SETTINGS), **incoming}
    merged["safetySettings"] = incoming.get("safetySettings") or copy.deepcopy(DEFAULT_SAFETY_SETTINGS)
    merged["ttsSettings"] = incoming.get("ttsSettings") or copy.deepcopy(DEFAULT_TTS_SETTINGS)
    for key in _OPTIONAL_BOOL_SETTINGS:
        merged[key] = incoming.get(key, DEFAULT_SETTINGS[key])
    merged["urlContext"] = incoming.get("urlContext") or list(DEFAULT_SETTINGS["urlContext"])
    merged["maxInitialMessagesDisplayed"] = (
        incoming.get("maxInitialMessagesDisplayed")
        or DEFAULT_SETTINGS["maxInitialMessagesDisplayed"]
        or INITIAL_MESSAGES_COUNT
    )
    return merged


def _numeric_table(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    return {
        str(k): v for k, v in value.items() if isinstance(v, (int, float)) and not isinstance(v, bool)
    }


def _resolve_active_chat_id(data: dict[str, Any]) -> str | None:
    app_state = data.get("appState")
    if isinstance(app_state, list):
        for entry in app_state:
            if isinstance(entry, dict) and entry.get("key") == "activeId":
                value = entry.get("value")
                return value if isinstance(value, str) and value else None
    legacy = data.get("lastActiveChatId")
    return legacy if isinstance(legacy, str) and legacy else None


def _read_side_tables(data: dict[str, Any], result: MigrationResult) -> None:
    result.generation_times = _numeric_table(data.get("messageGenerationTimes"))
    result.display_config = {k: int(v) for k, v in _numeric_table(data.get("messagesToDisplayConfig")).items()}
    result.active_chat_id = _resolve_active_chat_id(data)

    used = data.get("exportConfigurationUsed")
    if not isinstance(used, dict):
        used = data.get("exportConfiguration")
    if isinstance(used, dict):
        try:
            result.export_configuration = ExportConfiguration.model_validate(used)
        except ValidationError as err:
            result.warn(f"Ignoring malformed export configuration: {err.error_count()} error(s)")

    api_keys = data.get("apiKeys")
    result.api_keys = api_keys if isinstance(api_keys, list) else None
    result.user_defined_global_defaults = data.get("userDefinedGlobalDefaults") or None


class _SessionMigrator:
    """Migrates the session list of one manifest.

    Nothing is written to the persistence store here: decoded audio is kept on
    the result so the importer can store it once the whole manifest migrated.
    """

    def __init__(self, result: MigrationResult, reader: ContainerReader | None) -> None:
        self._result = result
        self._reader = reader

    def _list_field(self, entry: dict[str, Any], key: str, session_id: str) -> list[Any]:
        value = entry.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            self._result.warn(f"Ignoring {key}: expected a list, got {type(value).__name__}", session_id)
            return []
        return value

    def migrate(self, entry: Any) -> ChatSession | None:
        if not isinstance(entry, dict) or not entry.get("id"):
            self._result.warn("Skipping chat entry without an id")
            return None

        session_id = str(entry["id"])
        raw = dict(entry)
        now = datetime.now(timezone.utc)
        raw["createdAt"] = parse_timestamp(entry.get("createdAt")) or now
        raw["lastUpdatedAt"] = parse_timestamp(entry.get("lastUpdatedAt")) or raw["createdAt"]
        for key in ("title", "model"):
            if raw.get(key) is None:
                raw.pop(key, None)

        segments: list[tuple[str, bytes]] = []
        raw["messages"] = [
            msg
            for msg in (
                self._migrate_message(m, session_id, raw["createdAt"], segments)
                for m in self._list_field(entry, "messages", session_id)
            )
            if msg is not None
        ]
        raw["settings"] = merge_settings(entry.get("settings"))
        raw["isCharacterModeActive"] = bool(entry.get("isCharacterModeActive") or False)
        raw["aiCharacters"] = [
            {**char, "contextualInfo": char.get("contextualInfo") or ""}
            for char in self._list_field(entry, "aiCharacters", session_id)
            if isinstance(char, dict)
        ]
        raw["apiRequestLogs"] = self._migrate_logs(self._list_field(entry, "apiRequestLogs", session_id), session_id)
        if not raw.get("githubRepoContext"):
            raw.pop("githubRepoContext", None)

        try:
            session = ChatSession.model_validate(raw)
        except ValidationError as err:
            self._result.warn(f"Dropping chat that failed validation: {err.error_count()} error(s)", session_id)
            return None
        if segments:
            self._result.audio_segments[session.id] = segments
        return session

    def _migrate_logs(self, logs: list[Any], session_id: str) -> list[dict[str, Any]]:
        migrated = []
        for log in logs:
            timestamp = parse_timestamp(log.get("timestamp")) if isinstance(log, dict) else None
            if timestamp is None:
                self._result.warn("Dropping API request log without a valid timestamp", session_id)
                continue
            migrated.append({**log, "timestamp": timestamp})
        return migrated

    def _migrate_message(
        self, m: Any, session_id: str, fallback_time: datetime, segments: list[tuple[str, bytes]]
    ) -> dict[str, Any] | None:
        if not isinstance(m, dict) or not m.get("id"):
            self._result.warn("Skipping message without an id", session_id)
            return None

        msg = dict(m)
        message_id = str(m["id"])
        msg["timestamp"] = parse_timestamp(m.get("timestamp")) or fallback_time
        role = m.get("role")
        if role is None:
            msg["role"] = "user"
        elif role not in _ROLES:
            self._result.warn(f"Unknown message role {role!r}, importing as system", session_id)
            msg["role"] = "system"
        for key in ("groundingMetadata", "characterName"):
            if not msg.get(key):
                msg.pop(key, None)
        msg.pop("cachedAudioBuffers", None)

        attachments = self._list_field(m, "attachments", session_id)
        if not attachments:
            msg.pop("attachments", None)
        elif self._reader is not None:
            msg["attachments"] = [
                self._resolve_attachment(self._reader, att, session_id) for att in attachments if isinstance(att, dict)
            ]
        else:
            msg["attachments"] = [att for att in attachments if isinstance(att, dict)]

        audio_paths = msg.pop("audioFilePaths", None)
        if isinstance(audio_paths, list) and self._reader is not None:
            found = self._read_audio(self._reader, message_id, audio_paths, session_id)
            segments.extend(found)
            if found:
                msg["cachedAudioSegmentCount"] = len(found)
            else:
                msg.pop("cachedAudioSegmentCount", None)
        return msg

    def _resolve_attachment(self, reader: ContainerReader, att: dict[str, Any], session_id: str) -> dict[str, Any]:
        resolved = dict(att)
        file_path = att.get("filePath")
        if file_path:
            base64_data = _read_as_base64(reader, file_path)
            if base64_data is None:
                self._result.warn(f"Attachment file missing from archive: {file_path}", session_id)
            elif base64_data:
                resolved["base64Data"] = base64_data
                resolved["dataUrl"] = to_data_url(base64_data, att.get("mimeType") or "")

        if resolved.get("fileUri") and resolved.get("fileApiName"):
            resolved["uploadState"] = "completed_cloud_upload"
            resolved["statusMessage"] = "Cloud file (from import)"
        elif resolved.get("base64Data"):
            resolved["uploadState"] = "completed"
            resolved["statusMessage"] = "Local data (from import)"
        else:
            resolved["uploadState"] = "error_client_read"
            resolved["statusMessage"] = "Imported file data missing."
            resolved["error"] = "Incomplete file data from import."
        return resolved

    def _read_audio(
        self, reader: ContainerReader, message_id: str, paths: list[Any], session_id: str
    ) -> list[tuple[str, bytes]]:
        """Read every available segment, keyed from 0 so the count addresses a contiguous run."""
        found: list[tuple[str, bytes]] = []
        for path in paths:
            data = reader.read_entry(path) if isinstance(path, str) else None
            if not data:
                self._result.warn(f"Audio segment missing from archive: {path}", session_id)
                continue
            found.append((audio_segment_key(message_id, len(found)), data))
        return found


def _read_as_base64(reader: ContainerReader, path: str) -> str | None:
    handle = reader.open_entry(path)
    if handle is None:
        return None
    try:
        with handle:
            return "".join(iter_encode(iter_chunks(handle)))
    except (zipfile.BadZipFile, OSError) as err:
        raise ContainerFormatError(f"Unreadable archive entry {path}: {err}") from err


def migrate_manifest(raw: Any, reader: ContainerReader | None = None) -> MigrationResult:
    """Turn a parsed manifest into canonical sessions plus side tables.

    Pure with respect to the persistence store; a ContainerFormatError raised
    part-way leaves nothing behind.
    """
    result = MigrationResult(format=detect_format(raw))

    if result.format == "invalid":
        logger.error("Imported JSON structure is invalid", type=type(raw).__name__)
        result.warn("Unrecognized import format: top level is not a JSON object")
        return result

    result.version = str(raw["version"]) if raw.get("version") is not None else None
    data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
    _read_side_tables(data, result)

    if result.format == "legacy":
        # Sessions from unrecognized layouts are not recovered.
        result.warn("Attempting to import legacy data format. Some features or data might be missing or transformed.")
        return result

    migrator = _SessionMigrator(result, reader)
    for entry in data["chats"]:
        session = migrator.migrate(entry)
        if session is not None:
            result.sessions.append(session)

    logger.info(
        "Manifest migrated",
        format=result.format,
        version=result.version,
        sessions=len(result.sessions),
        audio_segments=sum(len(s) for s in result.audio_segments.values()),
        warnings=len(result.warnings),
    )
    return result
