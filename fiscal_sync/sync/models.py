from dataclasses import dataclass, field

from fiscal_sync.database.models import ProviderKind, SyncLogStatus
from fiscal_sync.ingestion.models import IngestionFailure


@dataclass
class SyncOutcome:
    """Result of one provider run for one tenant."""

    provider_kind: ProviderKind
    status: SyncLogStatus
    new: int = 0
    updated: int = 0
    failed: list[IngestionFailure] = field(default_factory=list)
    error: str | None = None
