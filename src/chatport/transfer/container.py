"""ZIP archive container: ``export.json`` plus ``attachments/`` and ``audio/`` folders."""

from __future__ import annotations

import io
import json
import tempfile
import zipfile
from pathlib import Path
from typing import IO, Any, Callable, Iterable

from chatport.infrastructure.config import CONTAINER_COPY_CHUNK_SIZE, SPOOL_MAX_SIZE
from chatport.infrastructure.logger import logger
from chatport.transfer.errors import ContainerFormatError

MANIFEST_ENTRY = "export.json"
ATTACHMENTS_DIR = "attachments"
AUDIO_DIR = "audio"

_ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06")

ProgressCallback = Callable[[float], None]


def attachment_entry_name(attachment_id: str, original_name: str) -> str:
    return f"{attachment_id}-{original_name}"


def audio_entry_name(message_id: str, index: int) -> str:
    return f"{message_id}_part_{index}.mp3"


def looks_like_container(data: bytes) -> bool:
    return data[:4] in _ZIP_SIGNATURES


def iter_chunks(fh: IO[bytes], chunk_size: int = CONTAINER_COPY_CHUNK_SIZE) -> Iterable[bytes]:
    return iter(lambda: fh.read(chunk_size), b"")


class ContainerWriter:
    """Collects entries on disk, then compresses them in one pass on finalize()."""

    def __init__(self) -> None:
        self._staging = tempfile.TemporaryDirectory(prefix="chatport-export-")
        self._staging_dir = Path(self._staging.name)
        self._entries: dict[str, Path] = {}
        self._manifest: bytes | None = None

    def __enter__(self) -> ContainerWriter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def entry_names(self) -> list[str]:
        return list(self._entries)

    def put_manifest(self, manifest: dict[str, Any]) -> None:
        self._manifest = json.dumps(manifest, indent=2, ensure_ascii=False).encode("utf-8")

    def put_attachment(self, name: str, data: bytes | Iterable[bytes]) -> str:
        return self._stage(f"{ATTACHMENTS_DIR}/{name}", data)

    def put_audio(self, name: str, data: bytes | Iterable[bytes]) -> str:
        return self._stage(f"{AUDIO_DIR}/{name}", data)

    def _stage(self, arcname: str, data: bytes | Iterable[bytes]) -> str:
        staged = self._entries.get(arcname) or self._staging_dir / f"{len(self._entries):06d}.bin"
        chunks = [data] if isinstance(data, (bytes, bytearray, memoryview)) else data
        with staged.open("wb") as fh:
            for chunk in chunks:
                fh.write(chunk)
        self._entries[arcname] = staged
        return arcname

    def finalize(self, on_progress: ProgressCallback | None = None) -> IO[bytes]:
        """Compress all entries with DEFLATE and return a readable stream positioned at 0.

        ``on_progress`` receives the percentage of uncompressed bytes written so far.
        """
        if self._manifest is None:
            raise ContainerFormatError(f"Cannot finalize archive without {MANIFEST_ENTRY}")

        total = len(self._manifest) + sum(path.stat().st_size for path in self._entries.values())
        done = 0
        output = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)

        def copy_into(archive: zipfile.ZipFile, arcname: str, source: IO[bytes]) -> None:
            nonlocal done
            with archive.open(arcname, "w", force_zip64=True) as dst:
                for chunk in iter_chunks(source):
                    dst.write(chunk)
                    done += len(chunk)
                    if on_progress and total:
                        on_progress(done * 100 / total)

        with zipfile.ZipFile(output, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr(f"{ATTACHMENTS_DIR}/", b"")
            archive.writestr(f"{AUDIO_DIR}/", b"")
            for arcname, staged in self._entries.items():
                with staged.open("rb") as source:
                    copy_into(archive, arcname, source)
            copy_into(archive, MANIFEST_ENTRY, io.BytesIO(self._manifest))

        if on_progress:
            on_progress(100.0)
        logger.debug("Archive finalized", entries=len(self._entries) + 1, uncompressed_bytes=total)
        output.seek(0)
        return output

    def close(self) -> None:
        self._staging.cleanup()


def create_container() -> ContainerWriter:
    return ContainerWriter()


class ContainerReader:
    def __init__(self, archive: zipfile.ZipFile) -> None:
        self._archive = archive
        self._names = set(archive.namelist())

    def __enter__(self) -> ContainerReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def has_entry(self, path: str) -> bool:
        return path.lstrip("/") in self._names

    def read_manifest(self) -> Any:
        raw = self.read_entry(MANIFEST_ENTRY)
        if raw is None:
            raise ContainerFormatError(f"ZIP file is missing '{MANIFEST_ENTRY}'.")
        try:
            return json.loads(raw.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as err:
            raise ContainerFormatError(f"'{MANIFEST_ENTRY}' is not valid JSON: {err}") from err

    def read_entry(self, path: str) -> bytes | None:
        path = path.lstrip("/")
        if path not in self._names:
            return None
        try:
            return self._archive.read(path)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as err:
            raise ContainerFormatError(f"Unreadable archive entry {path}: {err}") from err

    def open_entry(self, path: str) -> IO[bytes] | None:
        """Open an entry for chunked reading; the caller closes the handle."""
        path = path.lstrip("/")
        if path not in self._names:
            return None
        try:
            return self._archive.open(path)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as err:
            raise ContainerFormatError(f"Unreadable archive entry {path}: {err}") from err

    def close(self) -> None:
        self._archive.close()


def open_container(source: bytes | IO[bytes] | Path) -> ContainerReader:
    """Open an archive and check that it carries a manifest entry."""
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    try:
        archive = zipfile.ZipFile(source)
    except (zipfile.BadZipFile, OSError) as err:
        raise ContainerFormatError(f"Not a readable ZIP archive: {err}") from err

    reader = ContainerReader(archive)
    if not reader.has_entry(MANIFEST_ENTRY):
        reader.close()
        raise ContainerFormatError(f"ZIP file is missing '{MANIFEST_ENTRY}'.")
    return reader
