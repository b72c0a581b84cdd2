"""Default chat settings and persisted metadata keys."""

from __future__ import annotations

from typing import Any

from chatport.infrastructure.config import INITIAL_MESSAGES_COUNT


class METADATA_KEYS:
    ACTIVE_CHAT_ID = "activeChatId"
    MESSAGE_GENERATION_TIMES = "messageGenerationTimes"
    MESSAGES_TO_DISPLAY_CONFIG = "messagesToDisplayConfig"
    EXPORT_CONFIGURATION = "exportConfiguration"
    USER_DEFINED_GLOBAL_DEFAULTS = "userDefinedGlobalDefaults"
    API_KEYS = "apiKeys"


DEFAULT_MODEL = "gemini-2.5-flash"

DEFAULT_SAFETY_SETTINGS: list[dict[str, str]] = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]

DEFAULT_TTS_SETTINGS: dict[str, Any] = {
    "model": "gemini-2.5-flash-preview-tts",
    "voice": "Zephyr",
    "autoPlayNewMessages": False,
    "systemInstruction": "",
}

# Wire-shaped (camelCase) so imported settings can be shallow-merged over it.
DEFAULT_SETTINGS: dict[str, Any] = {
    "systemInstruction": "",
    "temperature": 0.7,
    "topP": 0.95,
    "topK": 64,
    "safetySettings": DEFAULT_SAFETY_SETTINGS,
    "ttsSettings": DEFAULT_TTS_SETTINGS,
    "aiSeesTimestamps": False,
    "useGoogleSearch": False,
    "urlContext": [],
    "maxInitialMessagesDisplayed": INITIAL_MESSAGES_COUNT,
    "debugApiRequests": False,
}
