"""Transfer error taxonomy."""

from __future__ import annotations


class TransferError(Exception):
    """Base class for failures that abort an export or import."""

    kind = "unexpected"


class CodecError(TransferError):
    """Malformed base64 payload."""

    kind = "codec"


class ContainerFormatError(TransferError):
    """Archive is unreadable or lacks its manifest entry."""

    kind = "container"


class PersistenceError(TransferError):
    """A write to (or read from) the persistence store failed."""

    kind = "persistence"


class NotFoundError(TransferError):
    """Requested session ids resolve to nothing."""

    kind = "not_found"


class MigrationWarning(UserWarning):
    """Non-fatal migration issue. Collected and logged, never raised."""

    def __init__(self, message: str, session_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.session_id = session_id

    def __str__(self) -> str:
        if self.session_id:
            return f"{self.message} (session {self.session_id})"
        return self.message
