import os
from collections.abc import Generator
from pathlib import Path

import pytest

from fiscal_sync.config.settings import Settings
from fiscal_sync.database.connection import Database
from fiscal_sync.database.models import TenantRecord

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "fiscal_sync" / "database" / "schema.sql"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "fiscal_sync_test")
    return Settings(db_pool_max_size=4)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def database(test_settings: Settings) -> Generator[Database, None, None]:
    db = Database.from_settings(test_settings)
    if not db.ping():
        db.close()
        pytest.skip("PostgreSQL test DB not available. Set DB_* env to run integration tests")
    with db.connection() as conn:
        conn.execute(SCHEMA_PATH.read_text())
        conn.commit()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def seed_tenant(database: Database) -> Generator[TenantRecord, None, None]:
    """Insert a throwaway tenant; its invoices, cursors and logs cascade on delete."""
    with database.connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO tenants (tax_id, name, auto_sync, window_api_token)
                VALUES (%s, %s, TRUE, %s)
                RETURNING id
                """,
                ("12345678000190", "Comercial Paulista Ltda", "token-abc"),
            )
            row = cur.fetchone()
            assert row is not None
            tenant_id = row[0]
        conn.commit()

    try:
        yield TenantRecord(
            id=tenant_id,
            tax_id="12345678000190",
            name="Comercial Paulista Ltda",
            auto_sync=True,
            window_api_token="token-abc",
        )
    finally:
        with database.connection() as conn:
            conn.execute("DELETE FROM tenants WHERE id = %s", (tenant_id,))
            conn.commit()
