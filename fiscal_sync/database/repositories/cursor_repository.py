from datetime import datetime

from psycopg.rows import dict_row

from fiscal_sync.database.connection import Database
from fiscal_sync.database.models import NSU_ZERO, ProviderKind, SyncCursor


class CursorRepository:
    """Database operations for the sync_cursors table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def find_cursor(self, tenant_id: int, provider_kind: ProviderKind) -> SyncCursor | None:
        with self._db.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT tenant_id, provider_kind, last_nsu, last_sync_at
                    FROM sync_cursors
                    WHERE tenant_id = %s AND provider_kind = %s
                    """,
                    (tenant_id, provider_kind.value),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return SyncCursor(
            tenant_id=row["tenant_id"],
            provider_kind=ProviderKind(row["provider_kind"]),
            last_nsu=row["last_nsu"],
            last_sync_at=row["last_sync_at"],
        )

    def update_cursor(self, cursor: SyncCursor) -> None:
        """Insert or overwrite the cursor for a tenant/provider pair."""
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO sync_cursors (tenant_id, provider_kind, last_nsu, last_sync_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (tenant_id, provider_kind) DO UPDATE
                SET last_nsu = EXCLUDED.last_nsu,
                    last_sync_at = EXCLUDED.last_sync_at,
                    updated_at = NOW()
                """,
                (
                    cursor.tenant_id,
                    cursor.provider_kind.value,
                    cursor.last_nsu,
                    cursor.last_sync_at,
                ),
            )
            conn.commit()

    def apply_recovery(self, tenant_id: int, window_target: datetime) -> None:
        """Reset both cursor kinds in a single transaction.

        The NSU cursor goes back to zero with no sync timestamp. The window
        cursor is moved to window_target only when that is earlier than its
        current value (or it has none); it is never moved forward. Missing
        cursors are left missing.
        """
        with self._db.connection() as conn:
            with conn.transaction():
                conn.execute(
                    """
                    UPDATE sync_cursors
                    SET last_nsu = %s, last_sync_at = NULL, updated_at = NOW()
                    WHERE tenant_id = %s AND provider_kind = %s
                    """,
                    (NSU_ZERO, tenant_id, ProviderKind.NSU.value),
                )
                conn.execute(
                    """
                    UPDATE sync_cursors
                    SET last_sync_at = %s, updated_at = NOW()
                    WHERE tenant_id = %s
                      AND provider_kind = %s
                      AND (last_sync_at IS NULL OR last_sync_at > %s)
                    """,
                    (window_target, tenant_id, ProviderKind.WINDOW.value, window_target),
                )
