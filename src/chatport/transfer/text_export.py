"""Plain-text rendering of a chat transcript."""

from __future__ import annotations

import re

from chatport.sessions.types import ChatSession

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


def sanitize_filename(name: str, max_length: int = 255) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name).strip().strip(".")
    cleaned = re.sub(r"\s+", "_", cleaned)
    return cleaned[:max_length] or "chat"


def format_chat_as_text(session: ChatSession) -> str:
    lines = []
    for msg in session.messages:
        if msg.role == "user":
            label = "{user}"
        elif msg.role == "model":
            label = msg.character_name if session.is_character_mode_active and msg.character_name else "{model}"
        else:
            continue
        lines.append(f"{label} : {msg.content}")
    return "\n".join(lines)
