from typing import Any

from psycopg.rows import dict_row

from fiscal_sync.database.connection import Database
from fiscal_sync.database.models import TenantRecord

_COLUMNS = """
    id, tax_id, name, auto_sync, window_api_token,
    nsu_cert_path, nsu_key_path, nsu_state_code
"""


def _to_record(row: dict[str, Any]) -> TenantRecord:
    return TenantRecord(
        id=row["id"],
        tax_id=row["tax_id"],
        name=row["name"],
        auto_sync=row["auto_sync"],
        window_api_token=row["window_api_token"],
        nsu_cert_path=row["nsu_cert_path"],
        nsu_key_path=row["nsu_key_path"],
        nsu_state_code=row["nsu_state_code"],
    )


class TenantRepository:
    """Database operations for the tenants table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def find_by_id(self, tenant_id: int) -> TenantRecord | None:
        with self._db.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM tenants WHERE id = %s",
                    (tenant_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _to_record(row)

    def list_auto_sync(self) -> list[TenantRecord]:
        """Tenants with auto-sync on and at least one provider configured."""
        with self._db.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM tenants
                    WHERE auto_sync
                      AND (window_api_token IS NOT NULL
                           OR (nsu_cert_path IS NOT NULL AND nsu_key_path IS NOT NULL))
                    ORDER BY id
                    """
                )
                rows = cur.fetchall()

        return [_to_record(row) for row in rows]
