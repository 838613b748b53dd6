from dataclasses import dataclass, field

from fiscal_sync.database.models import NSU_ZERO


@dataclass(frozen=True)
class ProviderDocument:
    """A document reference returned by a provider.

    raw_xml may be empty when the provider lists metadata only; the XML is
    then fetched separately by id.
    """

    id: str
    raw_xml: bytes = b""
    provider_status: str = ""


@dataclass(frozen=True)
class NsuBatch:
    """One distribution batch of a sequence-number provider."""

    documents: list[ProviderDocument] = field(default_factory=list)
    last_nsu: str = NSU_ZERO
    max_nsu: str = NSU_ZERO
