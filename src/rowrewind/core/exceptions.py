"""Exceptions raised by the capture and revert machinery."""


class RowRewindError(Exception):
    """Base class for all RowRewind errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class SchemaError(RowRewindError):
    """Raised when a table cannot be logged (missing/composite primary key,
    reserved column names, malformed log table)."""


class StorageError(RowRewindError):
    """Raised when reading or writing the change log or a live table fails."""


class CaptureError(StorageError):
    """Raised when a capture hook fails; the originating mutation must fail too."""


class ConsistencyError(RowRewindError):
    """Raised in strict mode when a snapshot contradicts the live row state."""


class MutationAbortedError(RowRewindError):
    """Raised when a hook aborts a row mutation."""
