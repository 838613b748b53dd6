class IngestionError(Exception):
    """Base exception for ingestion errors that abort a whole call."""


class BatchTooLargeError(IngestionError):
    """Raised when an upload batch holds more files than allowed."""


class DocumentTooLargeError(IngestionError):
    """Raised when raw XML exceeds the parser's size ceiling."""


class TenantNotFoundError(IngestionError):
    """Raised when the owning tenant does not exist."""
