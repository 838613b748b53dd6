from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import PurePath
from typing import TypeVar

from fiscal_sync.classification.direction import classify_direction
from fiscal_sync.classification.models import InvoiceStatus
from fiscal_sync.classification.status import classify_status
from fiscal_sync.config.settings import Settings
from fiscal_sync.database.exceptions import DuplicateAccessKeyError, InvalidInvoiceDataError
from fiscal_sync.database.models import InvoiceRecord, TenantRecord
from fiscal_sync.database.repositories.invoice_repository import InvoiceRepository
from fiscal_sync.database.repositories.tenant_repository import TenantRepository
from fiscal_sync.ingestion.exceptions import (
    BatchTooLargeError,
    DocumentTooLargeError,
    TenantNotFoundError,
)
from fiscal_sync.ingestion.models import (
    REASON_DUPLICATE,
    REASON_INVALID_DATA,
    REASON_TOO_LARGE,
    REASON_UNRECOGNIZED,
    REASON_UNSUPPORTED_EXTENSION,
    IngestionFailure,
    IngestionResult,
    ProviderIngestionResult,
    RawDocument,
)
from fiscal_sync.logging.logger import Log
from fiscal_sync.parser.models import ParsedInvoice
from fiscal_sync.parser.parser import parse_invoice_xml
from fiscal_sync.parser.xml_reader import ensure_within_size
from fiscal_sync.providers.models import ProviderDocument

ALLOWED_EXTENSIONS = frozenset({".xml"})

_Item = TypeVar("_Item")
_Outcome = TypeVar("_Outcome")


def decode_xml(content: bytes) -> str:
    """Decode raw XML for storage, tolerating latin-1 issuers."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def build_record(
    tenant: TenantRecord,
    parsed: ParsedInvoice,
    status: InvoiceStatus,
    raw_xml: bytes,
) -> InvoiceRecord:
    return InvoiceRecord(
        tenant_id=tenant.id,
        access_key=parsed.access_key,
        document_type=parsed.document_type,
        direction=classify_direction(tenant.tax_id, parsed.sender_tax_id),
        status=status,
        number=parsed.number,
        series=parsed.series,
        issue_date=parsed.issue_date,
        sender_tax_id=parsed.sender_tax_id,
        sender_name=parsed.sender_name,
        recipient_tax_id=parsed.recipient_tax_id,
        recipient_name=parsed.recipient_name,
        total_value=parsed.total_value,
        raw_xml=decode_xml(raw_xml),
    )


class IngestionPipeline:
    """Parse, classify and persist fiscal documents, one item at a time.

    Each document succeeds or fails on its own; uniqueness of the access key
    is left to the store, so concurrent batches resolve to a single winner.
    Store outages are not per-item failures and propagate to the caller.
    """

    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        tenant_repo: TenantRepository,
        settings: Settings,
    ) -> None:
        self._invoice_repo = invoice_repo
        self._tenant_repo = tenant_repo
        self._settings = settings

    def ingest(self, tenant_id: int, documents: Sequence[RawDocument]) -> IngestionResult:
        """Ingest an upload batch.

        Raises:
            BatchTooLargeError: if the batch holds more files than allowed.
            TenantNotFoundError: if the tenant does not exist.
            StoreUnavailableError: if the database cannot be reached.
        """
        if len(documents) > self._settings.max_upload_files:
            raise BatchTooLargeError(
                f"Batch has {len(documents)} files; at most "
                f"{self._settings.max_upload_files} are accepted"
            )
        tenant = self._load_tenant(tenant_id)
        Log.info(f"Ingesting {len(documents)} uploaded documents for tenant {tenant.id}")

        outcomes = self._map(lambda doc: self._ingest_upload(tenant, doc), documents)

        result = IngestionResult()
        for document, failure in zip(documents, outcomes):
            if failure is None:
                result.succeeded.append(document.name)
            else:
                result.failed.append(failure)
        Log.info(
            f"Upload for tenant {tenant.id}: {len(result.succeeded)} imported, "
            f"{len(result.failed)} failed"
        )
        return result

    def ingest_provider_documents(
        self,
        tenant: TenantRecord,
        documents: Sequence[ProviderDocument],
    ) -> ProviderIngestionResult:
        """Ingest documents fetched from a provider.

        Status comes from the provider's status text. An access key that is
        already stored gets its status re-evaluated instead of a new row.
        """
        result = ProviderIngestionResult()
        for document in documents:
            result.merge(self._ingest_provider_document(tenant, document))
        Log.info(
            f"Provider batch for tenant {tenant.id}: {result.new} new, "
            f"{result.updated} existing, {len(result.failed)} failed"
        )
        return result

    def _load_tenant(self, tenant_id: int) -> TenantRecord:
        tenant = self._tenant_repo.find_by_id(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found")
        return tenant

    def _map(
        self,
        func: Callable[[_Item], _Outcome],
        items: Sequence[_Item],
    ) -> list[_Outcome]:
        workers = self._settings.ingestion_max_workers
        if workers <= 1 or len(items) <= 1:
            return [func(item) for item in items]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(func, items))

    def _ingest_upload(
        self, tenant: TenantRecord, document: RawDocument
    ) -> IngestionFailure | None:
        if PurePath(document.name).suffix.lower() not in ALLOWED_EXTENSIONS:
            return IngestionFailure(document.name, REASON_UNSUPPORTED_EXTENSION)
        if len(document.content) > self._settings.max_upload_file_bytes:
            return IngestionFailure(document.name, REASON_TOO_LARGE)

        parsed = self._parse(document.name, document.content)
        if parsed is None:
            return IngestionFailure(document.name, REASON_UNRECOGNIZED)

        record = build_record(tenant, parsed, InvoiceStatus.RECEIVED, document.content)
        try:
            self._invoice_repo.insert(record)
        except DuplicateAccessKeyError:
            Log.info(f"{document.name}: access key {parsed.access_key} already registered")
            return IngestionFailure(document.name, REASON_DUPLICATE)
        except InvalidInvoiceDataError as exc:
            Log.warning(f"{document.name}: {exc}")
            return IngestionFailure(document.name, REASON_INVALID_DATA)

        Log.debug(f"{document.name}: stored {parsed.document_type.value} {parsed.access_key}")
        return None

    def _ingest_provider_document(
        self, tenant: TenantRecord, document: ProviderDocument
    ) -> ProviderIngestionResult:
        result = ProviderIngestionResult()
        parsed = self._parse(document.id, document.raw_xml)
        if parsed is None:
            result.failed.append(IngestionFailure(document.id, REASON_UNRECOGNIZED))
            return result

        status = classify_status(parsed.document_type, document.provider_status)
        existing = self._invoice_repo.find_by_access_key(parsed.access_key)
        if existing is None:
            record = build_record(tenant, parsed, status, document.raw_xml)
            try:
                self._invoice_repo.insert(record)
                result.new += 1
                return result
            except DuplicateAccessKeyError:
                # Lost a race with a concurrent ingestion of the same key.
                existing = self._invoice_repo.find_by_access_key(parsed.access_key)
                if existing is None:
                    result.failed.append(IngestionFailure(document.id, REASON_DUPLICATE))
                    return result
            except InvalidInvoiceDataError as exc:
                Log.warning(f"Document {document.id}: {exc}")
                result.failed.append(IngestionFailure(document.id, REASON_INVALID_DATA))
                return result

        # A blank provider status carries no information and must not undo
        # a status the user or an earlier read already set.
        has_status_text = bool(document.provider_status.strip())
        if has_status_text and existing.status != status and existing.id is not None:
            Log.info(
                f"Invoice {existing.access_key} status "
                f"{existing.status.value} -> {status.value}"
            )
            self._invoice_repo.update_status(existing.id, status)
        result.updated += 1
        return result

    def _parse(self, name: str, content: bytes) -> ParsedInvoice | None:
        try:
            ensure_within_size(content, self._settings.max_xml_bytes)
        except DocumentTooLargeError as exc:
            Log.warning(f"{name}: {exc}")
            return None
        parsed = parse_invoice_xml(content)
        if parsed is None:
            Log.warning(f"{name}: unrecognized or invalid fiscal XML")
        return parsed
