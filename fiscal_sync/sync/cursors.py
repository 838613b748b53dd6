from datetime import datetime, timedelta, timezone

from fiscal_sync.config.settings import Settings
from fiscal_sync.database.models import NSU_ZERO, ProviderKind, SyncCursor
from fiscal_sync.database.repositories.cursor_repository import CursorRepository
from fiscal_sync.logging.logger import Log
from fiscal_sync.sync.window import DAY, SyncWindow, compute_window


def nsu_is_newer(previous: str, latest: str) -> bool:
    """Compare NSU strings numerically; non-numeric values never win."""
    try:
        return int(latest or "0") > int(previous or "0")
    except ValueError:
        return False


def recovery_target(
    now: datetime,
    lookback_days: int,
    earliest_known_issue_date: datetime | None = None,
) -> datetime:
    """Start point the window cursor is rolled back to during recovery.

    The caller's earliest known issue date when given, otherwise
    lookback_days back, always with one day of margin.
    """
    if earliest_known_issue_date is None:
        return now - timedelta(days=lookback_days) - DAY
    if earliest_known_issue_date.tzinfo is None:
        earliest_known_issue_date = earliest_known_issue_date.replace(tzinfo=timezone.utc)
    return earliest_known_issue_date - DAY


class SyncCursorManager:
    """Reads, advances and resets the per-tenant sync cursors."""

    def __init__(self, cursor_repo: CursorRepository, settings: Settings) -> None:
        self._cursor_repo = cursor_repo
        self._settings = settings

    def load(self, tenant_id: int, provider_kind: ProviderKind) -> SyncCursor:
        """Stored cursor, or a zero cursor when none exists yet."""
        cursor = self._cursor_repo.find_cursor(tenant_id, provider_kind)
        if cursor is None:
            return SyncCursor(tenant_id=tenant_id, provider_kind=provider_kind)
        return cursor

    def next_window(self, tenant_id: int, now: datetime | None = None) -> SyncWindow:
        cursor = self.load(tenant_id, ProviderKind.WINDOW)
        return compute_window(
            cursor.last_sync_at,
            lookback_days=self._settings.sync_lookback_days,
            overlap_days=self._settings.sync_overlap_days,
            now=now,
        )

    def advance_window(self, tenant_id: int, window: SyncWindow) -> None:
        """Persist the window's sync time. Call only after the batch is stored."""
        self._cursor_repo.update_cursor(
            SyncCursor(
                tenant_id=tenant_id,
                provider_kind=ProviderKind.WINDOW,
                last_sync_at=window.synced_at,
            )
        )
        Log.info(f"Tenant {tenant_id} window cursor advanced to {window.synced_at.isoformat()}")

    def advance_nsu(
        self,
        tenant_id: int,
        previous: str,
        latest: str,
        synced_at: datetime | None = None,
    ) -> str:
        """Persist latest when it is beyond previous; return the stored NSU."""
        stored = latest if nsu_is_newer(previous, latest) else previous
        self._cursor_repo.update_cursor(
            SyncCursor(
                tenant_id=tenant_id,
                provider_kind=ProviderKind.NSU,
                last_nsu=stored or NSU_ZERO,
                last_sync_at=synced_at or datetime.now(timezone.utc),
            )
        )
        if stored != previous:
            Log.info(f"Tenant {tenant_id} NSU cursor advanced {previous} -> {stored}")
        return stored

    def mark_for_recovery(
        self,
        tenant_id: int,
        earliest_known_issue_date: datetime | None = None,
        now: datetime | None = None,
    ) -> datetime:
        """Force a replay after an outage or integrity concern.

        Both cursors change in one transaction: NSU back to zero, window
        rolled back to the recovery target unless already earlier.
        Returns the target applied to the window cursor.
        """
        target = recovery_target(
            now if now is not None else datetime.now(timezone.utc),
            self._settings.recovery_lookback_days,
            earliest_known_issue_date,
        )
        self._cursor_repo.apply_recovery(tenant_id, target)
        Log.warning(
            f"Tenant {tenant_id} marked for sync recovery: NSU reset, "
            f"window no later than {target.isoformat()}"
        )
        return target
