from dataclasses import dataclass, field

# User-facing failure reasons. Parser internals are never exposed.
REASON_UNSUPPORTED_EXTENSION = "unsupported file extension"
REASON_TOO_LARGE = "file exceeds size limit"
REASON_UNRECOGNIZED = "unrecognized or invalid document"
REASON_DUPLICATE = "access key already registered"
REASON_FETCH_FAILED = "could not retrieve document from provider"
REASON_INVALID_DATA = "document data rejected by the store"


@dataclass(frozen=True)
class RawDocument:
    """A named byte blob handed over by the upload transport."""

    name: str
    content: bytes


@dataclass(frozen=True)
class IngestionFailure:
    name: str
    reason: str


@dataclass
class IngestionResult:
    """Per-item outcome of an upload batch. Partial success is normal."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[IngestionFailure] = field(default_factory=list)


@dataclass
class ProviderIngestionResult:
    """Counters for a provider batch."""

    new: int = 0
    updated: int = 0
    failed: list[IngestionFailure] = field(default_factory=list)

    def merge(self, other: "ProviderIngestionResult") -> None:
        self.new += other.new
        self.updated += other.updated
        self.failed.extend(other.failed)
