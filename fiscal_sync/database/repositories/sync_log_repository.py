from datetime import datetime, timedelta

from psycopg.rows import dict_row

from fiscal_sync.database.connection import Database
from fiscal_sync.database.models import ProviderKind, SyncLogRecord, SyncLogStatus


class SyncLogRepository:
    """Database operations for the sync_logs table.

    A 'running' row doubles as the cross-process guard that keeps at most
    one sync in flight per tenant.
    """

    def __init__(self, db: Database, stale_after: timedelta = timedelta(hours=1)) -> None:
        self._db = db
        self._stale_after = stale_after

    def start(self, tenant_id: int, provider_kind: ProviderKind) -> int:
        """Open a running log row and return its ID."""
        with self._db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO sync_logs (tenant_id, provider_kind, status)
                    VALUES (%s, %s, %s)
                    RETURNING id
                    """,
                    (tenant_id, provider_kind.value, SyncLogStatus.RUNNING.value),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            raise RuntimeError("INSERT ... RETURNING produced no row")
        return int(row[0])

    def complete(
        self, log_id: int, new_docs: int, updated_docs: int, failed_docs: int
    ) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                UPDATE sync_logs
                SET status = %s, new_docs = %s, updated_docs = %s,
                    failed_docs = %s, completed_at = NOW()
                WHERE id = %s
                """,
                (SyncLogStatus.COMPLETED.value, new_docs, updated_docs, failed_docs, log_id),
            )
            conn.commit()

    def fail(self, log_id: int, error: str) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                UPDATE sync_logs
                SET status = %s, error_message = %s, completed_at = NOW()
                WHERE id = %s
                """,
                (SyncLogStatus.ERROR.value, error, log_id),
            )
            conn.commit()

    def has_running(self, tenant_id: int) -> bool:
        """True if a non-stale run is in flight for the tenant."""
        with self._db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT 1
                    FROM sync_logs
                    WHERE tenant_id = %s
                      AND status = %s
                      AND started_at > NOW() - %s
                    LIMIT 1
                    """,
                    (tenant_id, SyncLogStatus.RUNNING.value, self._stale_after),
                )
                return cur.fetchone() is not None

    def last_completed_at(
        self, tenant_id: int, provider_kind: ProviderKind
    ) -> datetime | None:
        with self._db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT MAX(completed_at)
                    FROM sync_logs
                    WHERE tenant_id = %s AND provider_kind = %s AND status = %s
                    """,
                    (tenant_id, provider_kind.value, SyncLogStatus.COMPLETED.value),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return row[0]

    def recent(self, tenant_id: int, limit: int = 20) -> list[SyncLogRecord]:
        """Latest runs for a tenant, newest first."""
        with self._db.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, tenant_id, provider_kind, status, new_docs, updated_docs,
                           failed_docs, error_message, started_at, completed_at
                    FROM sync_logs
                    WHERE tenant_id = %s
                    ORDER BY started_at DESC
                    LIMIT %s
                    """,
                    (tenant_id, limit),
                )
                rows = cur.fetchall()

        return [
            SyncLogRecord(
                id=row["id"],
                tenant_id=row["tenant_id"],
                provider_kind=ProviderKind(row["provider_kind"]),
                status=SyncLogStatus(row["status"]),
                new_docs=row["new_docs"],
                updated_docs=row["updated_docs"],
                failed_docs=row["failed_docs"],
                error_message=row["error_message"],
                started_at=row["started_at"],
                completed_at=row["completed_at"],
            )
            for row in rows
        ]
