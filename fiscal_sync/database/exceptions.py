class StoreError(Exception):
    """Base exception for all persistence errors."""


class StoreUnavailableError(StoreError):
    """Raised when the database cannot be reached."""


class DuplicateAccessKeyError(StoreError):
    """Raised when an invoice with the same access key already exists."""

    def __init__(self, access_key: str) -> None:
        super().__init__(f"Access key {access_key} already registered")
        self.access_key = access_key


class InvoiceNotFoundError(StoreError):
    """Raised when an invoice cannot be found."""


class InvalidInvoiceDataError(StoreError):
    """Raised when the store rejects an invoice's field values."""
