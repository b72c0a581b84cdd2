"""Project a session into its exportable JSON form under an export configuration.

Binary payloads (attachment bytes, cached audio) are written into the archive
and replaced with entry paths in the projection.
"""

from __future__ import annotations

from typing import Any

from chatport.infrastructure.audio_repo import audio_segment_key
from chatport.infrastructure.logger import logger
from chatport.sessions.types import Attachment, ChatMessage, ChatSession, ExportConfiguration
from chatport.transfer.codec import iter_decode
from chatport.transfer.container import ContainerWriter, attachment_entry_name, audio_entry_name
from chatport.transfer.ports import AudioBlobStore

# Never exported: re-derivable from the archive or local to a running client.
_RUNTIME_ATTACHMENT_KEYS = ("base64Data", "dataUrl")
_RUNTIME_MESSAGE_KEYS = ("cachedAudioSegmentCount", "cachedAudioBuffers")


def _redact_attachment(
    attachment: Attachment, wire: dict[str, Any], config: ExportConfiguration, writer: ContainerWriter
) -> dict[str, Any]:
    base64_data = attachment.base64_data
    if config.include_full_attachment_file_data and base64_data:
        name = attachment_entry_name(attachment.id, attachment.name)
        wire["filePath"] = writer.put_attachment(name, iter_decode(base64_data))
    for key in _RUNTIME_ATTACHMENT_KEYS:
        wire.pop(key, None)
    return wire


def _export_audio(message: ChatMessage, writer: ContainerWriter, audio_store: AudioBlobStore) -> list[str]:
    paths: list[str] = []
    for index in range(message.cached_audio_segment_count or 0):
        data = audio_store.get_audio_blob(audio_segment_key(message.id, index))
        if data is None:
            logger.debug("Cached audio segment missing, skipped", message_id=message.id, index=index)
            continue
        paths.append(writer.put_audio(audio_entry_name(message.id, index), data))
    return paths


def _redact_message(
    message: ChatMessage,
    wire: dict[str, Any],
    config: ExportConfiguration,
    writer: ContainerWriter,
    audio_store: AudioBlobStore,
) -> dict[str, Any]:
    if config.include_cached_message_audio and (message.cached_audio_segment_count or 0) > 0:
        wire["audioFilePaths"] = _export_audio(message, writer, audio_store)
    for key in _RUNTIME_MESSAGE_KEYS:
        wire.pop(key, None)

    if not config.include_message_content:
        wire.pop("content", None)
    if not config.include_message_timestamps:
        wire.pop("timestamp", None)
    if not config.include_message_role_and_character_names:
        wire.pop("role", None)
        wire.pop("characterName", None)
    if not config.include_grounding_metadata:
        wire.pop("groundingMetadata", None)

    if message.attachments is not None:
        if not config.include_message_attachments_metadata:
            wire.pop("attachments", None)
        else:
            wire["attachments"] = [
                _redact_attachment(att, att_wire, config, writer)
                for att, att_wire in zip(message.attachments, wire["attachments"])
            ]
    return wire


def redact_session(
    session: ChatSession,
    config: ExportConfiguration,
    writer: ContainerWriter,
    audio_store: AudioBlobStore,
) -> dict[str, Any]:
    """Return the export projection of one session, registering its blobs with ``writer``.

    Safe to call once per session against the same writer; entries accumulate.
    """
    projection = session.to_wire()

    if not config.include_api_logs:
        projection.pop("apiRequestLogs", None)

    projection["messages"] = [
        _redact_message(message, wire, config, writer, audio_store)
        for message, wire in zip(session.messages, projection.get("messages", []))
    ]

    if not config.include_chat_specific_settings:
        projection.pop("settings", None)
        projection.pop("model", None)
    if not config.include_ai_character_definitions:
        projection.pop("aiCharacters", None)

    return projection
