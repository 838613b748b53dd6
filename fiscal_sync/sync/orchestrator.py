import threading
from dataclasses import replace

from fiscal_sync.config.settings import Settings
from fiscal_sync.database.models import ProviderKind, SyncLogStatus, TenantRecord
from fiscal_sync.database.repositories.sync_log_repository import SyncLogRepository
from fiscal_sync.ingestion.models import (
    REASON_FETCH_FAILED,
    IngestionFailure,
    ProviderIngestionResult,
)
from fiscal_sync.ingestion.pipeline import IngestionPipeline
from fiscal_sync.logging.logger import Log
from fiscal_sync.providers.base import BaseWindowProviderClient
from fiscal_sync.providers.exceptions import ProviderError, ProviderResponseError
from fiscal_sync.providers.factory import ProviderClientFactory
from fiscal_sync.providers.models import ProviderDocument
from fiscal_sync.sync.cursors import SyncCursorManager, nsu_is_newer
from fiscal_sync.sync.exceptions import SyncCancelledError
from fiscal_sync.sync.models import SyncOutcome


class SyncOrchestrator:
    """Runs one provider sync per configured provider kind of a tenant.

    Every run is bracketed by a sync log row. Cursors move only after the
    documents they cover have been handed to the ingestion pipeline, so a
    failed or cancelled run is replayed from where the last one ended.
    """

    def __init__(
        self,
        pipeline: IngestionPipeline,
        cursor_manager: SyncCursorManager,
        sync_log_repo: SyncLogRepository,
        client_factory: ProviderClientFactory,
        settings: Settings,
    ) -> None:
        self._pipeline = pipeline
        self._cursors = cursor_manager
        self._sync_logs = sync_log_repo
        self._clients = client_factory
        self._settings = settings

    def sync_tenant(
        self,
        tenant: TenantRecord,
        cancel_event: threading.Event | None = None,
    ) -> list[SyncOutcome]:
        """Sync every configured provider kind of the tenant, NSU first.

        Provider failures end up in the returned outcomes; store failures
        and cancellation propagate.

        Raises:
            SyncCancelledError: if cancel_event is set during the run.
            StoreUnavailableError: if the database cannot be reached.
        """
        kinds = tenant.provider_kinds
        if not kinds:
            Log.info(f"Tenant {tenant.id} has no provider credentials; nothing to sync")
            return []
        return [self._run(tenant, kind, cancel_event) for kind in kinds]

    def _run(
        self,
        tenant: TenantRecord,
        kind: ProviderKind,
        cancel_event: threading.Event | None,
    ) -> SyncOutcome:
        log_id = self._sync_logs.start(tenant.id, kind)
        Log.info(f"Sync {log_id} started: tenant {tenant.id}, provider {kind.value}")
        try:
            if kind is ProviderKind.NSU:
                result = self._sync_nsu(tenant, cancel_event)
            else:
                result = self._sync_window(tenant, cancel_event)
        except SyncCancelledError:
            self._sync_logs.fail(log_id, "cancelled")
            Log.warning(f"Sync {log_id} cancelled before its cursor was advanced")
            raise
        except ProviderError as exc:
            self._sync_logs.fail(log_id, str(exc))
            Log.error(f"Sync {log_id} failed: {exc}")
            return SyncOutcome(provider_kind=kind, status=SyncLogStatus.ERROR, error=str(exc))
        except Exception as exc:
            self._sync_logs.fail(log_id, f"{type(exc).__name__}: {exc}")
            raise

        self._sync_logs.complete(log_id, result.new, result.updated, len(result.failed))
        Log.info(
            f"Sync {log_id} completed: {result.new} new, {result.updated} existing, "
            f"{len(result.failed)} failed"
        )
        return SyncOutcome(
            provider_kind=kind,
            status=SyncLogStatus.COMPLETED,
            new=result.new,
            updated=result.updated,
            failed=result.failed,
        )

    def _sync_window(
        self,
        tenant: TenantRecord,
        cancel_event: threading.Event | None,
    ) -> ProviderIngestionResult:
        window = self._cursors.next_window(tenant.id)
        start, end = window.as_date_range()
        Log.info(f"Tenant {tenant.id} window sync {start}..{end}")

        client = self._clients.create_window_client(tenant)
        try:
            listed = client.list_documents(tenant.tax_id, window)
            documents, fetch_failures = self._with_raw_xml(client, listed, cancel_event)
        finally:
            client.close()

        _check_cancelled(cancel_event)
        result = self._pipeline.ingest_provider_documents(tenant, documents)
        result.failed.extend(fetch_failures)

        _check_cancelled(cancel_event)
        self._cursors.advance_window(tenant.id, window)
        return result

    def _with_raw_xml(
        self,
        client: BaseWindowProviderClient,
        listed: list[ProviderDocument],
        cancel_event: threading.Event | None,
    ) -> tuple[list[ProviderDocument], list[IngestionFailure]]:
        documents: list[ProviderDocument] = []
        failures: list[IngestionFailure] = []
        for document in listed:
            _check_cancelled(cancel_event)
            if document.raw_xml:
                documents.append(document)
                continue
            # A rejected single download is a per-document failure; network
            # and credential errors abort the whole run.
            try:
                raw_xml = client.fetch_raw_xml(document.id)
            except ProviderResponseError as exc:
                Log.warning(f"Document {document.id}: {exc}")
                failures.append(IngestionFailure(document.id, REASON_FETCH_FAILED))
                continue
            documents.append(replace(document, raw_xml=raw_xml))
        return documents, failures

    def _sync_nsu(
        self,
        tenant: TenantRecord,
        cancel_event: threading.Event | None,
    ) -> ProviderIngestionResult:
        nsu = self._cursors.load(tenant.id, ProviderKind.NSU).last_nsu
        Log.info(f"Tenant {tenant.id} NSU sync from {nsu}")

        total = ProviderIngestionResult()
        client = self._clients.create_nsu_client(tenant)
        try:
            for _batch in range(self._settings.sefaz_max_batches):
                _check_cancelled(cancel_event)
                batch = client.fetch_since(nsu)
                if batch.documents:
                    total.merge(self._pipeline.ingest_provider_documents(tenant, batch.documents))
                    _check_cancelled(cancel_event)

                previous = nsu
                nsu = self._cursors.advance_nsu(tenant.id, previous, batch.last_nsu)
                if not nsu_is_newer(previous, nsu):
                    break
                if not nsu_is_newer(batch.last_nsu, batch.max_nsu):
                    break
            else:
                Log.warning(
                    f"Tenant {tenant.id} NSU sync stopped after "
                    f"{self._settings.sefaz_max_batches} batches at {nsu}"
                )
        finally:
            client.close()
        return total


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SyncCancelledError("Sync cancelled")
