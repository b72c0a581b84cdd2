"""Configuration constants and .env parsing."""

from __future__ import annotations

import os
from pathlib import Path


def read_env_file(keys: list[str]) -> dict[str, str]:
    """Parse .env file and return values for requested keys.

    Does NOT load into os.environ; callers decide what to do with values.
    """
    env_file = Path.cwd() / ".env"
    try:
        content = env_file.read_text()
    except OSError:
        return {}

    result: dict[str, str] = {}
    wanted = set(keys)

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        eq_idx = trimmed.find("=")
        if eq_idx == -1:
            continue
        key = trimmed[:eq_idx].strip()
        if key not in wanted:
            continue
        value = trimmed[eq_idx + 1 :].strip()
        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
        if value:
            result[key] = value

    return result


_env_config = read_env_file([
    "CHATPORT_STORE_DIR",
    "CHATPORT_EXPORT_DIR",
    "CHATPORT_EXPORT_PREFIX",
    "CHATPORT_CODEC_CHUNK_SIZE",
])


def _setting(key: str, default: str) -> str:
    return os.environ.get(key) or _env_config.get(key, default)


def _chunk_size(raw: str) -> int:
    """Round a configured chunk size down to a whole number of base64 quanta (3 bytes)."""
    try:
        size = int(raw)
    except ValueError:
        size = 196_608
    return max(3, size - size % 3)


# Absolute paths
PROJECT_ROOT: Path = Path.cwd()
STORE_DIR: Path = Path(_setting("CHATPORT_STORE_DIR", str(PROJECT_ROOT / "store"))).resolve()
EXPORT_DIR: Path = Path(_setting("CHATPORT_EXPORT_DIR", str(PROJECT_ROOT / "exports"))).resolve()
DB_FILENAME: str = "chatport.db"

EXPORT_FILENAME_PREFIX: str = _setting("CHATPORT_EXPORT_PREFIX", "gemini-chat-export")

# Codec works on bounded slices so a large attachment is never expanded in one go.
CODEC_CHUNK_SIZE: int = _chunk_size(_setting("CHATPORT_CODEC_CHUNK_SIZE", "196608"))  # 192KB
CONTAINER_COPY_CHUNK_SIZE: int = 262_144  # 256KB
SPOOL_MAX_SIZE: int = 8 * 1024 * 1024  # 8MB before archive output spills to disk

INITIAL_MESSAGES_COUNT: int = 50
EXPORT_TOAST_DURATION_MS: int = 10_000
RESTART_TOAST_DURATION_MS: int = 2_500
