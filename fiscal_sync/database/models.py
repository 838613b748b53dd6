from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from fiscal_sync.classification.models import Direction, InvoiceStatus
from fiscal_sync.parser.models import DocumentType

NSU_ZERO = "000000000000000"


class ProviderKind(str, Enum):
    """Cursor strategy used by a provider."""

    NSU = "nsu"
    WINDOW = "window"


class SyncLogStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class InvoiceRecord:
    """Represents a row from the invoices table."""

    tenant_id: int
    access_key: str
    document_type: DocumentType
    direction: Direction
    status: InvoiceStatus
    number: str
    series: str
    issue_date: datetime
    sender_tax_id: str
    sender_name: str
    recipient_tax_id: str
    recipient_name: str
    total_value: Decimal
    raw_xml: str
    id: int | None = None
    created_at: datetime | None = None


@dataclass
class SyncCursor:
    """Represents a row from the sync_cursors table."""

    tenant_id: int
    provider_kind: ProviderKind
    last_nsu: str = NSU_ZERO
    last_sync_at: datetime | None = None


@dataclass
class TenantRecord:
    """Represents a row from the tenants table with its provider credentials.

    Credentials are kept as written to the row and only pass through the
    provider factory's decrypt hook (identity unless one is supplied) when
    a client is built.
    """

    id: int
    tax_id: str
    name: str
    auto_sync: bool = False
    window_api_token: str | None = None
    nsu_cert_path: str | None = None
    nsu_key_path: str | None = None
    nsu_state_code: str | None = None

    @property
    def provider_kinds(self) -> list[ProviderKind]:
        """Provider kinds with credentials configured, NSU first."""
        kinds: list[ProviderKind] = []
        if self.nsu_cert_path and self.nsu_key_path:
            kinds.append(ProviderKind.NSU)
        if self.window_api_token:
            kinds.append(ProviderKind.WINDOW)
        return kinds


@dataclass
class SyncLogRecord:
    """Represents a row from the sync_logs table."""

    id: int
    tenant_id: int
    provider_kind: ProviderKind
    status: SyncLogStatus
    new_docs: int = 0
    updated_docs: int = 0
    failed_docs: int = 0
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
