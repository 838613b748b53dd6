from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

DAY = timedelta(days=1)


@dataclass(frozen=True)
class SyncWindow:
    """Half-open [start, end) range to request from a window provider."""

    start: datetime
    end: datetime
    synced_at: datetime

    def as_date_range(self) -> tuple[str, str]:
        """Start and end as YYYY-MM-DD, the granularity providers filter on."""
        return self.start.date().isoformat(), self.end.date().isoformat()


def compute_window(
    last_sync_at: datetime | None,
    lookback_days: int = 30,
    overlap_days: int = 1,
    now: datetime | None = None,
) -> SyncWindow:
    """Compute the next window to fetch.

    First sync looks back lookback_days. Later syncs restart overlap_days
    before the previous sync so late-indexed documents are not missed;
    re-fetched documents are absorbed by the access key uniqueness.
    """
    synced_at = now if now is not None else datetime.now(timezone.utc)
    if last_sync_at is None:
        start = synced_at - timedelta(days=lookback_days)
    else:
        if last_sync_at.tzinfo is None and synced_at.tzinfo is not None:
            last_sync_at = last_sync_at.replace(tzinfo=timezone.utc)
        start = last_sync_at - timedelta(days=overlap_days)

    # Clock skew or a corrupt stored timestamp.
    if start > synced_at:
        start = synced_at - DAY

    return SyncWindow(start=start, end=synced_at, synced_at=synced_at)
