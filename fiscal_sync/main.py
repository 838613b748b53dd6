from dataclasses import dataclass
from datetime import timedelta

from fiscal_sync.config.settings import Settings
from fiscal_sync.database.connection import Database
from fiscal_sync.database.repositories.cursor_repository import CursorRepository
from fiscal_sync.database.repositories.invoice_repository import InvoiceRepository
from fiscal_sync.database.repositories.sync_log_repository import SyncLogRepository
from fiscal_sync.database.repositories.tenant_repository import TenantRepository
from fiscal_sync.ingestion.pipeline import IngestionPipeline
from fiscal_sync.logging.logger import Log
from fiscal_sync.providers.factory import ProviderClientFactory
from fiscal_sync.sync.cursors import SyncCursorManager
from fiscal_sync.sync.orchestrator import SyncOrchestrator
from fiscal_sync.worker.scheduler import SyncScheduler
from fiscal_sync.worker.sync_runner import SyncRunner


@dataclass
class Services:
    """Wired application components sharing one database handle."""

    db: Database
    tenant_repo: TenantRepository
    sync_log_repo: SyncLogRepository
    pipeline: IngestionPipeline
    cursor_manager: SyncCursorManager
    scheduler: SyncScheduler


def build_services(settings: Settings, db: Database) -> Services:
    """Build every component from settings around an open database handle."""
    tenant_repo = TenantRepository(db)
    sync_log_repo = SyncLogRepository(
        db, stale_after=timedelta(minutes=settings.sync_stale_run_minutes)
    )
    pipeline = IngestionPipeline(InvoiceRepository(db), tenant_repo, settings)
    cursor_manager = SyncCursorManager(CursorRepository(db), settings)
    orchestrator = SyncOrchestrator(
        pipeline,
        cursor_manager,
        sync_log_repo,
        ProviderClientFactory(settings),
        settings,
    )
    scheduler = SyncScheduler(tenant_repo, sync_log_repo, SyncRunner(orchestrator), settings)
    return Services(
        db=db,
        tenant_repo=tenant_repo,
        sync_log_repo=sync_log_repo,
        pipeline=pipeline,
        cursor_manager=cursor_manager,
        scheduler=scheduler,
    )


def main() -> None:
    """Entry point: open database -> build dependencies -> start scheduler loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    db = Database.from_settings(settings)

    try:
        build_services(settings, db).scheduler.run()
    finally:
        db.close()


if __name__ == "__main__":
    main()
