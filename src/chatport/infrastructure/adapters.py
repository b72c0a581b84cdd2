"""Default notification and download sinks for running outside a UI."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import IO

from chatport.infrastructure.config import EXPORT_DIR
from chatport.infrastructure.logger import logger


class LogNotifier:
    """Sends user-facing notifications to the log."""

    def notify(self, message: str, level: str = "info", duration_ms: int | None = None) -> None:
        if level == "error":
            logger.error(message, notification=True)
        elif level == "warning":
            logger.warning(message, notification=True)
        else:
            logger.info(message, notification=True, level_hint=level, duration_ms=duration_ms)


class DirectoryDownloader:
    """Writes downloads into a directory on disk."""

    def __init__(self, directory: Path = EXPORT_DIR) -> None:
        self.directory = directory
        self.last_path: Path | None = None

    def download(self, stream: IO[bytes], filename: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / Path(filename).name
        with target.open("wb") as fh:
            shutil.copyfileobj(stream, fh)
        self.last_path = target
        logger.info("Download written", path=str(target))
