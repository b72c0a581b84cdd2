"""Base64 <-> bytes conversion for inline attachment payloads.

Both directions work over fixed-size slices so that converting a large
attachment never materializes more than one chunk of intermediate data.
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Iterable, Iterator

from chatport.infrastructure.config import CODEC_CHUNK_SIZE
from chatport.transfer.errors import CodecError

_WHITESPACE = re.compile(r"\s+")
_DATA_URL_PREFIX = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)


def _decode_chunk_chars(chunk_size: int) -> int:
    return (chunk_size // 3) * 4


def iter_encode(chunks: Iterable[bytes], chunk_size: int = CODEC_CHUNK_SIZE) -> Iterator[str]:
    """Encode a byte stream, yielding base64 text per ``chunk_size`` bytes of input."""
    # Padding may only appear at the very end, so slices must be whole 3-byte groups.
    chunk_size = max(3, chunk_size - chunk_size % 3)
    pending = b""
    for chunk in chunks:
        pending += chunk
        cut = len(pending) - len(pending) % 3
        while cut >= chunk_size:
            yield base64.b64encode(pending[:chunk_size]).decode("ascii")
            pending = pending[chunk_size:]
            cut -= chunk_size
        if cut:
            yield base64.b64encode(pending[:cut]).decode("ascii")
            pending = pending[cut:]
    if pending:
        yield base64.b64encode(pending).decode("ascii")


def encode(data: bytes, mime_type: str | None = None) -> str:
    """Encode bytes as base64. ``mime_type`` is accepted for data-URL callers and not embedded."""
    view = memoryview(data)
    return "".join(
        base64.b64encode(view[offset : offset + CODEC_CHUNK_SIZE]).decode("ascii")
        for offset in range(0, len(view), CODEC_CHUNK_SIZE)
    )


def to_data_url(base64_data: str, mime_type: str) -> str:
    return f"data:{mime_type or 'application/octet-stream'};base64,{base64_data}"


def _normalize(text: str) -> str:
    text = _DATA_URL_PREFIX.sub("", text.strip(), count=1)
    return _WHITESPACE.sub("", text)


def iter_decode(text: str, chunk_size: int = CODEC_CHUNK_SIZE) -> Iterator[bytes]:
    """Decode base64 text slice by slice. Raises CodecError on malformed input."""
    text = _normalize(text)
    if len(text) % 4:
        raise CodecError(f"Invalid base64 length: {len(text)} characters")
    step = _decode_chunk_chars(chunk_size)
    for offset in range(0, len(text), step):
        try:
            yield base64.b64decode(text[offset : offset + step], validate=True)
        except (binascii.Error, ValueError) as err:
            raise CodecError(f"Malformed base64 data at offset {offset}: {err}") from err


def decode(text: str) -> bytes:
    """Decode base64 text (a leading ``data:...;base64,`` prefix is tolerated)."""
    return b"".join(iter_decode(text))
