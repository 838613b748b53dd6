import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from fiscal_sync.config.settings import Settings
from fiscal_sync.database.exceptions import StoreError
from fiscal_sync.database.models import TenantRecord
from fiscal_sync.database.repositories.sync_log_repository import SyncLogRepository
from fiscal_sync.database.repositories.tenant_repository import TenantRepository
from fiscal_sync.logging.logger import Log
from fiscal_sync.sync.exceptions import SyncAlreadyRunningError
from fiscal_sync.sync.models import SyncOutcome
from fiscal_sync.worker.sync_runner import SyncRunner


def hour_slot(moment: datetime, zone: tzinfo) -> datetime:
    """Start of the wall-clock hour containing moment, in zone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(zone).replace(minute=0, second=0, microsecond=0)


@dataclass(frozen=True)
class SchedulerHealth:
    running: bool
    ticks: int
    in_flight: tuple[int, ...]
    started_at: datetime | None = None
    last_tick_at: datetime | None = None


class SyncScheduler:
    """Poll loop: tick -> pick due tenants -> dispatch to a thread pool.

    A tenant is dispatched at most once per wall-clock hour and never while
    another run for it is in flight, whether in this process (lock set) or
    in another one (running sync log).
    """

    def __init__(
        self,
        tenant_repo: TenantRepository,
        sync_log_repo: SyncLogRepository,
        runner: SyncRunner,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tenant_repo = tenant_repo
        self._sync_logs = sync_log_repo
        self._runner = runner
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._zone = ZoneInfo(settings.sync_timezone)

        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._in_flight: set[int] = set()
        self._thread: threading.Thread | None = None
        self._running = False
        self._ticks = 0
        self._started_at: datetime | None = None
        self._last_tick_at: datetime | None = None

    def start(self) -> None:
        """Run the poll loop on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            Log.warning("Scheduler already started")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="sync-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop polling and cancel in-flight runs before their cursors move."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def health(self) -> SchedulerHealth:
        with self._lock:
            in_flight = tuple(sorted(self._in_flight))
        return SchedulerHealth(
            running=self._running,
            ticks=self._ticks,
            in_flight=in_flight,
            started_at=self._started_at,
            last_tick_at=self._last_tick_at,
        )

    def run(self, max_ticks: int | None = None) -> None:
        """Main poll loop. Runs until stopped or interrupted.

        If max_ticks is set, stop after that many ticks (for testing).
        """
        Log.info("Scheduler started, polling for tenants to sync")
        self._running = True
        self._started_at = self._clock()
        executor = ThreadPoolExecutor(
            max_workers=self._settings.sync_max_concurrent_tenants,
            thread_name_prefix="tenant-sync",
        )
        try:
            while not self._stop_event.is_set():
                if max_ticks is not None and self._ticks >= max_ticks:
                    break
                self.tick(executor)
                if max_ticks is not None and self._ticks >= max_ticks:
                    break
                self._stop_event.wait(self._settings.sync_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Scheduler shutting down gracefully")
            self._stop_event.set()
        finally:
            executor.shutdown(wait=True)
            self._running = False
            Log.info("Scheduler stopped")

    def tick(self, executor: ThreadPoolExecutor) -> list[Future[list[SyncOutcome]]]:
        """Dispatch every due tenant. Database errors skip the tick."""
        self._ticks += 1
        self._last_tick_at = self._clock()
        try:
            tenants = self._tenant_repo.list_auto_sync()
        except StoreError as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return []

        futures: list[Future[list[SyncOutcome]]] = []
        for tenant in tenants:
            try:
                due = self._is_due(tenant)
            except StoreError as exc:
                Log.warning(f"Tenant {tenant.id}: database error, will retry: {exc}")
                continue
            if not due or not self._claim(tenant.id):
                continue
            futures.append(executor.submit(self._run_claimed, tenant))
        if futures:
            Log.info(f"Dispatched {len(futures)} tenant syncs")
        else:
            Log.debug("No tenants due, sleeping")
        return futures

    def trigger(self, tenant: TenantRecord) -> list[SyncOutcome]:
        """Sync one tenant now, on the calling thread, ignoring the hourly slot.

        Raises:
            SyncAlreadyRunningError: if a run for the tenant is in flight.
        """
        if self._sync_logs.has_running(tenant.id) or not self._claim(tenant.id):
            raise SyncAlreadyRunningError(f"Tenant {tenant.id} already has a sync in flight")
        return self._run_claimed(tenant)

    def _is_due(self, tenant: TenantRecord) -> bool:
        kinds = tenant.provider_kinds
        if not kinds:
            return False
        if self._sync_logs.has_running(tenant.id):
            Log.debug(f"Tenant {tenant.id} has a sync in flight, skipping")
            return False

        current = hour_slot(self._clock(), self._zone)
        for kind in kinds:
            completed_at = self._sync_logs.last_completed_at(tenant.id, kind)
            if completed_at is None or hour_slot(completed_at, self._zone) != current:
                return True
        Log.debug(f"Tenant {tenant.id} already synced in this hour slot")
        return False

    def _claim(self, tenant_id: int) -> bool:
        with self._lock:
            if tenant_id in self._in_flight:
                return False
            self._in_flight.add(tenant_id)
            return True

    def _run_claimed(self, tenant: TenantRecord) -> list[SyncOutcome]:
        try:
            return self._runner.run(tenant, self._stop_event)
        finally:
            with self._lock:
                self._in_flight.discard(tenant.id)
