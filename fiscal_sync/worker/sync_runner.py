import threading

from fiscal_sync.database.models import TenantRecord
from fiscal_sync.logging.logger import Log
from fiscal_sync.sync.exceptions import SyncCancelledError
from fiscal_sync.sync.models import SyncOutcome
from fiscal_sync.sync.orchestrator import SyncOrchestrator


class SyncRunner:
    """Run one tenant sync and catch exceptions so no tenant fails another."""

    def __init__(self, orchestrator: SyncOrchestrator) -> None:
        self._orchestrator = orchestrator

    def run(
        self,
        tenant: TenantRecord,
        cancel_event: threading.Event | None = None,
    ) -> list[SyncOutcome]:
        """Execute a single tenant sync with error handling."""
        Log.info(f"Running sync for tenant {tenant.id} ({tenant.name})")
        try:
            outcomes = self._orchestrator.sync_tenant(tenant, cancel_event)
        except SyncCancelledError:
            Log.warning(f"Sync for tenant {tenant.id} cancelled")
            return []
        except Exception as exc:
            Log.exception(f"Sync for tenant {tenant.id} failed: {exc}")
            return []

        failed = [outcome for outcome in outcomes if outcome.error]
        if failed:
            Log.warning(f"Tenant {tenant.id}: {len(failed)} of {len(outcomes)} providers failed")
        else:
            Log.info(f"Sync for tenant {tenant.id} completed successfully")
        return outcomes
