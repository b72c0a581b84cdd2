"""Tests for database initialization and schema."""

import pytest

from chatport.infrastructure.audio_repo import audio_segment_key
from chatport.infrastructure.database import AppDatabase
from chatport.transfer.errors import PersistenceError


class TestAppDatabase:
    def test_init_creates_schema(self, db):
        tables = db.db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ).fetchall()
        table_names = [row[0] for row in tables]
        assert "chat_sessions" in table_names
        assert "app_metadata" in table_names
        assert "audio_segments" in table_names

    def test_repos_initialized(self, db):
        assert db.session_repo is not None
        assert db.metadata_repo is not None
        assert db.audio_repo is not None

    def test_multiple_init_is_safe(self):
        db = AppDatabase()
        db._init_test()
        db._init_test()  # Should not raise

    def test_uninitialized_access_fails(self):
        with pytest.raises(AssertionError, match="init"):
            AppDatabase().db

    def test_init_uses_store_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr("chatport.infrastructure.database.STORE_DIR", tmp_path / "store")
        db = AppDatabase()
        db.init()
        db.close()
        assert (tmp_path / "store" / "chatport.db").exists()


class TestMetadataRepo:
    def test_set_and_get(self, db):
        db.set_metadata("activeChatId", "chat-1")
        assert db.get_metadata("activeChatId") == "chat-1"

    def test_get_nonexistent(self, db):
        assert db.get_metadata("nonexistent") is None

    def test_upsert(self, db):
        db.set_metadata("key1", {"a": 1})
        db.set_metadata("key1", {"b": 2})
        assert db.get_metadata("key1") == {"b": 2}

    def test_null_value_round_trips(self, db):
        db.set_metadata("activeChatId", None)
        assert db.get_metadata("activeChatId") is None

    def test_unserializable_value_raises(self, db):
        with pytest.raises(PersistenceError):
            db.set_metadata("bad", object())


class TestAudioRepo:
    def test_put_and_get(self, db):
        db.put_audio_blob(audio_segment_key("m1", 0), b"\x00\x01")
        assert db.get_audio_blob("m1_part_0") == b"\x00\x01"

    def test_missing_segment(self, db):
        assert db.get_audio_blob("m1_part_9") is None

    def test_delete_for_message(self, db):
        for i in range(3):
            db.put_audio_blob(audio_segment_key("m1", i), b"x")
        db.put_audio_blob(audio_segment_key("m10", 0), b"y")

        assert db.audio_repo.delete_for_message("m1") == 3
        assert db.get_audio_blob("m1_part_0") is None
        assert db.get_audio_blob("m10_part_0") == b"y"

    def test_delete_escapes_wildcards(self, db):
        db.put_audio_blob(audio_segment_key("a_b", 0), b"x")
        db.put_audio_blob(audio_segment_key("aXb", 0), b"y")
        assert db.audio_repo.delete_for_message("a_b") == 1
        assert db.get_audio_blob("aXb_part_0") == b"y"
