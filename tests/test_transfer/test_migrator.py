"""Tests for manifest migration."""

from datetime import datetime, timezone

import pytest

from chatport.sessions.defaults import DEFAULT_SAFETY_SETTINGS
from chatport.sessions.types import CloudPayload, ContainerPayload, InlinePayload
from chatport.transfer.container import create_container, open_container
from chatport.transfer.migrator import detect_format, merge_settings, migrate_manifest, parse_timestamp


def _chat(**overrides):
    chat = {
        "id": "chat-1",
        "title": "Imported",
        "createdAt": "2024-05-01T10:00:00.000Z",
        "lastUpdatedAt": "2024-05-02T10:00:00.000Z",
        "messages": [{"id": "m1", "role": "user", "content": "hi", "timestamp": "2024-05-01T10:00:00.000Z"}],
    }
    chat.update(overrides)
    return chat


def _manifest(chats=None, **data):
    body = dict(data)
    if chats is not None:
        body["chats"] = chats
    return {"version": "2.0-zip", "exportedAt": "2024-06-01T00:00:00.000Z", "data": body}


def _reader(manifest, attachments=None, audio=None):
    with create_container() as writer:
        for name, blob in (attachments or {}).items():
            writer.put_attachment(name, blob)
        for name, blob in (audio or {}).items():
            writer.put_audio(name, blob)
        writer.put_manifest(manifest)
        raw = writer.finalize().read()
    return open_container(raw)


class TestDetectFormat:
    def test_container(self):
        assert detect_format(_manifest([])) == "container"

    def test_bare_json(self):
        assert detect_format({"version": "1.0", "data": {"chats": []}}) == "json"

    def test_legacy(self):
        assert detect_format({"sessions": []}) == "legacy"
        assert detect_format({"data": {"chats": "nope"}}) == "legacy"

    def test_invalid(self):
        assert detect_format([1, 2]) == "invalid"
        assert detect_format(None) == "invalid"


class TestParseTimestamp:
    def test_iso_with_z(self):
        assert parse_timestamp("2024-05-01T10:00:00.000Z") == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)

    def test_epoch_millis(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_naive_string_is_utc(self):
        assert parse_timestamp("2024-05-01T10:00:00").tzinfo == timezone.utc

    def test_garbage(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp(True) is None


class TestMergeSettings:
    def test_missing_settings_use_defaults(self):
        merged = merge_settings(None)
        assert merged["safetySettings"] == DEFAULT_SAFETY_SETTINGS
        assert merged["maxInitialMessagesDisplayed"] > 0

    def test_shallow_merge_keeps_imported_values(self):
        merged = merge_settings({"temperature": 0.1, "customFlag": True})
        assert merged["temperature"] == 0.1
        assert merged["customFlag"] is True
        assert merged["topK"] == 64

    def test_empty_nested_blocks_fall_back(self):
        merged = merge_settings({"safetySettings": [], "ttsSettings": None})
        assert merged["safetySettings"] == DEFAULT_SAFETY_SETTINGS
        assert merged["ttsSettings"]["voice"] == "Zephyr"

    def test_present_nested_blocks_are_kept(self):
        safety = [{"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_LOW_AND_ABOVE"}]
        merged = merge_settings({"safetySettings": safety, "ttsSettings": {"voice": "Kore"}})
        assert merged["safetySettings"] == safety
        assert merged["ttsSettings"] == {"voice": "Kore"}

    def test_defaults_are_not_shared(self):
        merged = merge_settings({})
        merged["safetySettings"].append({"category": "x", "threshold": "y"})
        assert len(merge_settings({})["safetySettings"]) == len(DEFAULT_SAFETY_SETTINGS)


class TestSessions:
    def test_migrates_basic_chat(self):
        result = migrate_manifest(_manifest([_chat()]))
        assert result.format == "container"
        assert result.version == "2.0-zip"
        session = result.sessions[0]
        assert session.id == "chat-1"
        assert session.created_at == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
        assert session.messages[0].content == "hi"
        assert session.settings.temperature == 0.7
        assert session.is_character_mode_active is False

    def test_redacted_fields_get_defaults(self):
        chat = _chat(messages=[{"id": "m1"}])
        chat.pop("settings", None)
        result = migrate_manifest(_manifest([chat]))
        msg = result.sessions[0].messages[0]
        assert msg.role == "user"
        assert msg.content == ""
        assert msg.timestamp == result.sessions[0].created_at

    def test_character_defaults(self):
        result = migrate_manifest(_manifest([_chat(aiCharacters=[{"id": "c1", "name": "Ada"}])]))
        assert result.sessions[0].ai_characters[0].contextual_info == ""

    def test_api_logs_timestamps_parsed(self):
        logs = [{"id": "l1", "timestamp": "2024-05-01T10:00:00Z"}, {"id": "l2"}]
        result = migrate_manifest(_manifest([_chat(apiRequestLogs=logs)]))
        assert [log.id for log in result.sessions[0].api_request_logs] == ["l1"]
        assert result.warnings

    def test_unknown_fields_pass_through(self):
        result = migrate_manifest(_manifest([_chat(pinned=True)]))
        assert result.sessions[0].to_wire()["pinned"] is True

    def test_entries_without_id_are_skipped(self):
        result = migrate_manifest(_manifest([{"title": "no id"}, _chat()]))
        assert [s.id for s in result.sessions] == ["chat-1"]
        assert any("without an id" in str(w) for w in result.warnings)

    def test_unknown_role_becomes_system(self):
        chat = _chat(messages=[{"id": "m1", "role": "error", "content": "boom"}])
        result = migrate_manifest(_manifest([chat]))
        assert result.sessions[0].messages[0].role == "system"


class TestAttachments:
    def test_container_attachment_resolved_inline(self):
        att = {"id": "a1", "name": "note.txt", "mimeType": "text/plain", "filePath": "attachments/a1-note.txt"}
        chat = _chat(messages=[{"id": "m1", "role": "user", "attachments": [att]}])
        with _reader(_manifest([chat]), attachments={"a1-note.txt": b"ABC"}) as reader:
            result = migrate_manifest(reader.read_manifest(), reader)
        attachment = result.sessions[0].messages[0].attachments[0]
        assert isinstance(attachment.payload, InlinePayload)
        assert attachment.payload.base64_data == "QUJD"
        assert attachment.payload.data_url == "data:text/plain;base64,QUJD"
        assert attachment.upload_state == "completed"
        assert attachment.status_message == "Local data (from import)"

    def test_cloud_reference_wins(self):
        att = {"id": "a1", "name": "doc.pdf", "fileUri": "https://files/1", "fileApiName": "files/1"}
        chat = _chat(messages=[{"id": "m1", "role": "user", "attachments": [att]}])
        with _reader(_manifest([chat])) as reader:
            result = migrate_manifest(reader.read_manifest(), reader)
        attachment = result.sessions[0].messages[0].attachments[0]
        assert isinstance(attachment.payload, CloudPayload)
        assert attachment.upload_state == "completed_cloud_upload"

    def test_missing_file_marks_error(self):
        att = {"id": "a1", "name": "gone.png", "filePath": "attachments/a1-gone.png"}
        chat = _chat(messages=[{"id": "m1", "role": "user", "attachments": [att]}])
        with _reader(_manifest([chat])) as reader:
            result = migrate_manifest(reader.read_manifest(), reader)
        attachment = result.sessions[0].messages[0].attachments[0]
        assert attachment.upload_state == "error_client_read"
        assert attachment.error == "Incomplete file data from import."
        assert isinstance(attachment.payload, ContainerPayload)

    def test_metadata_only_attachment_marks_error(self):
        att = {"id": "a1", "name": "x.txt"}
        chat = _chat(messages=[{"id": "m1", "role": "user", "attachments": [att]}])
        with _reader(_manifest([chat])) as reader:
            result = migrate_manifest(reader.read_manifest(), reader)
        attachment = result.sessions[0].messages[0].attachments[0]
        assert attachment.payload is None
        assert attachment.upload_state == "error_client_read"

    def test_without_container_attachments_pass_through(self):
        att = {"id": "a1", "name": "x.txt", "base64Data": "QUJD", "uploadState": "completed"}
        chat = _chat(messages=[{"id": "m1", "role": "user", "attachments": [att]}])
        result = migrate_manifest({"data": {"chats": [chat]}})
        attachment = result.sessions[0].messages[0].attachments[0]
        assert attachment.base64_data == "QUJD"
        assert attachment.status_message is None


class TestAudio:
    def test_segments_collected_and_counted(self):
        msg = {"id": "m1", "role": "model", "audioFilePaths": ["audio/m1_part_0.mp3", "audio/m1_part_1.mp3"]}
        audio = {"m1_part_0.mp3": b"zero", "m1_part_1.mp3": b"one"}
        with _reader(_manifest([_chat(messages=[msg])]), audio=audio) as reader:
            result = migrate_manifest(reader.read_manifest(), reader)
        message = result.sessions[0].messages[0]
        assert message.cached_audio_segment_count == 2
        assert result.audio_segments == {"chat-1": [("m1_part_0", b"zero"), ("m1_part_1", b"one")]}
        assert "audioFilePaths" not in (message.model_extra or {})

    def test_missing_segments_shrink_count(self):
        paths = ["audio/m1_part_0.mp3", "audio/m1_part_1.mp3", "audio/m1_part_2.mp3"]
        msg = {"id": "m1", "role": "model", "audioFilePaths": paths}
        audio = {"m1_part_0.mp3": b"zero", "m1_part_2.mp3": b"two"}
        with _reader(_manifest([_chat(messages=[msg])]), audio=audio) as reader:
            result = migrate_manifest(reader.read_manifest(), reader)
        assert result.sessions[0].messages[0].cached_audio_segment_count == 2
        assert result.audio_segments == {"chat-1": [("m1_part_0", b"zero"), ("m1_part_1", b"two")]}

    def test_no_readable_segments_clears_count(self):
        msg = {"id": "m1", "role": "model", "audioFilePaths": ["audio/m1_part_0.mp3"], "cachedAudioSegmentCount": 4}
        with _reader(_manifest([_chat(messages=[msg])])) as reader:
            result = migrate_manifest(reader.read_manifest(), reader)
        assert result.sessions[0].messages[0].cached_audio_segment_count is None
        assert result.audio_segments == {}

    def test_json_import_drops_audio_paths(self):
        msg = {"id": "m1", "role": "model", "audioFilePaths": ["audio/m1_part_0.mp3"]}
        result = migrate_manifest({"data": {"chats": [_chat(messages=[msg])]}})
        message = result.sessions[0].messages[0]
        assert message.cached_audio_segment_count is None
        assert "audioFilePaths" not in (message.model_extra or {})


class TestSideTables:
    def test_reads_tables(self):
        manifest = _manifest(
            [_chat()],
            messageGenerationTimes={"m1": 1.5, "bad": "x"},
            messagesToDisplayConfig={"chat-1": 10},
            apiKeys=[{"id": "k1", "value": "secret"}],
            userDefinedGlobalDefaults={"temperature": 0.2},
        )
        result = migrate_manifest(manifest)
        assert result.generation_times == {"m1": 1.5}
        assert result.display_config == {"chat-1": 10}
        assert result.api_keys == [{"id": "k1", "value": "secret"}]
        assert result.user_defined_global_defaults == {"temperature": 0.2}

    def test_export_configuration_merged_over_defaults(self):
        result = migrate_manifest(_manifest([], exportConfigurationUsed={"includeApiKeys": True}))
        assert result.export_configuration.include_api_keys is True
        assert result.export_configuration.include_message_content is True

    def test_legacy_export_configuration_key(self):
        result = migrate_manifest(_manifest([], exportConfiguration={"includeMessageContent": False}))
        assert result.export_configuration.include_message_content is False

    def test_new_export_configuration_key_wins(self):
        result = migrate_manifest(
            _manifest([], exportConfigurationUsed={"includeApiLogs": True}, exportConfiguration={"includeApiLogs": False})
        )
        assert result.export_configuration.include_api_logs is True

    def test_last_active_chat_id(self):
        assert migrate_manifest(_manifest([], lastActiveChatId="chat-9")).active_chat_id == "chat-9"

    def test_structured_active_pointer_wins_over_single_key(self):
        manifest = _manifest([], appState=[{"key": "activeId", "value": "chat-2"}], lastActiveChatId="chat-9")
        assert migrate_manifest(manifest).active_chat_id == "chat-2"

    def test_structured_table_without_active_entry_falls_back(self):
        manifest = _manifest([], appState=[{"key": "theme", "value": "dark"}], lastActiveChatId="chat-9")
        assert migrate_manifest(manifest).active_chat_id == "chat-9"

    def test_non_string_active_pointer_is_ignored(self):
        manifest = _manifest([], appState=[{"key": "activeId", "value": 42}])
        assert migrate_manifest(manifest).active_chat_id is None


class TestFailurePolicy:
    @pytest.mark.parametrize("raw", [None, [], "text", 42])
    def test_non_object_yields_empty_result(self, raw):
        result = migrate_manifest(raw)
        assert result.format == "invalid"
        assert result.sessions == []
        assert result.is_empty
        assert result.warnings

    def test_legacy_object_keeps_side_tables_but_no_sessions(self):
        raw = {"version": "0.9", "sessions": [{"id": "old"}], "data": {"messageGenerationTimes": {"m": 2}}}
        result = migrate_manifest(raw)
        assert result.format == "legacy"
        assert result.sessions == []
        assert result.generation_times == {"m": 2}
        assert not result.is_empty
        assert any("legacy" in str(w) for w in result.warnings)

    def test_unrecognized_object_is_empty(self):
        result = migrate_manifest({"hello": "world"})
        assert result.sessions == []
        assert result.is_empty

    @pytest.mark.parametrize("field", ["aiCharacters", "apiRequestLogs", "messages"])
    @pytest.mark.parametrize("value", [True, 5, "text", {"id": "x"}])
    def test_garbled_list_field_keeps_other_chats(self, field, value):
        result = migrate_manifest(_manifest([_chat(id="bad", **{field: value}), _chat(id="good")]))
        assert [s.id for s in result.sessions] == ["bad", "good"]
        assert any(field in str(w) and w.session_id == "bad" for w in result.warnings)

    @pytest.mark.parametrize("value", [True, 5, {"id": "a1"}])
    def test_garbled_attachments_are_dropped(self, value):
        chat = _chat(messages=[{"id": "m1", "role": "user", "content": "x", "attachments": value}])
        with _reader(_manifest([chat])) as reader:
            result = migrate_manifest(reader.read_manifest(), reader)
        assert result.sessions[0].messages[0].attachments is None
        assert any("attachments" in str(w) for w in result.warnings)

    def test_audio_of_rejected_chat_is_not_kept(self):
        msg = {"id": "m1", "role": "model", "audioFilePaths": ["audio/m1_part_0.mp3"]}
        chat = _chat(title=["not", "a", "title"], messages=[msg])
        with _reader(_manifest([chat]), audio={"m1_part_0.mp3": b"zero"}) as reader:
            result = migrate_manifest(reader.read_manifest(), reader)
        assert result.sessions == []
        assert result.audio_segments == {}
