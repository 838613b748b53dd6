from abc import ABC, abstractmethod

from fiscal_sync.providers.models import NsuBatch, ProviderDocument
from fiscal_sync.sync.window import SyncWindow


class BaseWindowProviderClient(ABC):
    """Contract for providers queried by issue-date window."""

    @abstractmethod
    def list_documents(self, tax_id: str, window: SyncWindow) -> list[ProviderDocument]:
        """List every document issued inside the window.

        Raises:
            ProviderError: on any failure; nothing is returned for a failed listing.
        """

    @abstractmethod
    def fetch_raw_xml(self, document_id: str) -> bytes:
        """Download the XML of a single listed document.

        Raises:
            ProviderError: on any failure.
        """

    def close(self) -> None:
        """Release transport resources."""


class BaseNsuProviderClient(ABC):
    """Contract for providers that distribute documents by sequence number."""

    @abstractmethod
    def fetch_since(self, last_nsu: str) -> NsuBatch:
        """Fetch the batch following last_nsu.

        Raises:
            ProviderError: on any failure.
        """

    def close(self) -> None:
        """Release transport resources."""
