"""Barrel re-export of all domain types."""

from chatport.sessions.types import (
    AICharacter,
    ApiRequestLog,
    Attachment,
    ChatMessage,
    ChatSession,
    ChatSettings,
    CloudPayload,
    ContainerPayload,
    ExportConfiguration,
    GithubRepoContext,
    InlinePayload,
    SafetySetting,
    TtsSettings,
)
from chatport.transfer.migrator import MigrationResult
from chatport.transfer.orchestrator import ExportResult, ImportResult

__all__ = [
    "AICharacter",
    "ApiRequestLog",
    "Attachment",
    "ChatMessage",
    "ChatSession",
    "ChatSettings",
    "CloudPayload",
    "ContainerPayload",
    "ExportConfiguration",
    "ExportResult",
    "GithubRepoContext",
    "ImportResult",
    "InlinePayload",
    "MigrationResult",
    "SafetySetting",
    "TtsSettings",
]
