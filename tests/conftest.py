import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest

from fiscal_sync.classification.models import InvoiceStatus
from fiscal_sync.config.settings import Settings
from fiscal_sync.database.exceptions import DuplicateAccessKeyError, InvoiceNotFoundError
from fiscal_sync.database.models import InvoiceRecord, TenantRecord

FIXTURES_DIR = Path(__file__).parent / "fixtures"

COMPANY_TAX_ID = "12345678000190"


class InMemoryInvoiceRepository:
    """Invoice store double enforcing access key uniqueness like the database."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next_id = 1
        self.rows: dict[str, InvoiceRecord] = {}
        self.status_updates: list[tuple[int, InvoiceStatus]] = []

    def insert(self, record: InvoiceRecord) -> InvoiceRecord:
        with self._lock:
            if record.access_key in self.rows:
                raise DuplicateAccessKeyError(record.access_key)
            stored = replace(
                record, id=self._next_id, created_at=datetime.now(timezone.utc)
            )
            self._next_id += 1
            self.rows[record.access_key] = stored
            return stored

    def find_by_access_key(self, access_key: str) -> InvoiceRecord | None:
        with self._lock:
            return self.rows.get(access_key)

    def update_status(self, invoice_id: int, status: InvoiceStatus) -> None:
        with self._lock:
            for key, row in self.rows.items():
                if row.id == invoice_id:
                    self.rows[key] = replace(row, status=status)
                    self.status_updates.append((invoice_id, status))
                    return
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")

    def delete(self, invoice_id: int) -> None:
        with self._lock:
            for key, row in list(self.rows.items()):
                if row.id == invoice_id:
                    del self.rows[key]


@pytest.fixture()
def load_fixture() -> Callable[[str], bytes]:
    """Return a loader for files under tests/fixtures."""

    def _load(name: str) -> bytes:
        return (FIXTURES_DIR / name).read_bytes()

    return _load


@pytest.fixture()
def invoice_repo() -> InMemoryInvoiceRepository:
    return InMemoryInvoiceRepository()


@pytest.fixture()
def tenant() -> TenantRecord:
    return TenantRecord(
        id=1,
        tax_id=COMPANY_TAX_ID,
        name="Comercial Paulista Ltda",
        auto_sync=True,
        window_api_token="token-abc",
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None)
