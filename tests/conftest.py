from datetime import datetime, timezone

import pytest

from chatport.app import ChatportApp
from chatport.infrastructure.database import AppDatabase
from chatport.sessions.types import ChatSession


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str, int | None]] = []

    def notify(self, message, level="info", duration_ms=None):
        self.messages.append((message, level, duration_ms))

    def levels(self) -> list[str]:
        return [level for _, level, _ in self.messages]

    def last(self) -> str:
        return self.messages[-1][0]


class RecordingDownloader:
    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}

    def download(self, stream, filename):
        self.files[filename] = stream.read()


def make_session(session_id: str = "chat-1", **overrides) -> ChatSession:
    """Build a session from wire-shaped data."""
    data = {
        "id": session_id,
        "title": f"Chat {session_id}",
        "createdAt": "2024-05-01T10:00:00.000Z",
        "lastUpdatedAt": "2024-05-01T11:00:00.000Z",
        "model": "gemini-2.5-pro",
        "messages": [
            {"id": f"{session_id}-m1", "role": "user", "content": "Hello", "timestamp": "2024-05-01T10:00:00.000Z"},
            {"id": f"{session_id}-m2", "role": "model", "content": "Hi there", "timestamp": "2024-05-01T10:00:05.000Z"},
        ],
    }
    data.update(overrides)
    return ChatSession.model_validate(data)


@pytest.fixture
def db() -> AppDatabase:
    """Create an in-memory database for testing."""
    app_db = AppDatabase()
    app_db._init_test()
    return app_db


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def downloader() -> RecordingDownloader:
    return RecordingDownloader()


@pytest.fixture
def session_factory():
    return make_session


@pytest.fixture
def app(db, downloader, notifier) -> ChatportApp:
    return ChatportApp(db=db, downloader=downloader, notifier=notifier).start()


@pytest.fixture
def app_factory():
    """Build extra apps, each on its own in-memory database."""

    def build(**kwargs) -> ChatportApp:
        app_db = AppDatabase()
        app_db._init_test()
        return ChatportApp(db=app_db, downloader=RecordingDownloader(), notifier=RecordingNotifier(), **kwargs).start()

    return build


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 1, 12, 30, tzinfo=timezone.utc)
