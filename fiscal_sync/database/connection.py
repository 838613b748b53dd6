from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg
from psycopg_pool import ConnectionPool

from fiscal_sync.config.settings import Settings
from fiscal_sync.database.exceptions import StoreUnavailableError


def build_conninfo(settings: Settings) -> str:
    """Build a libpq connection string from settings."""
    return (
        f"host={settings.db_host} "
        f"port={settings.db_port} "
        f"dbname={settings.db_database} "
        f"user={settings.db_username} "
        f"password={settings.db_password}"
    )


class Database:
    """Explicit store handle owning the connection pool.

    Built once by the entry point and passed to every repository.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Open a pool sized from settings."""
        pool = ConnectionPool(
            build_conninfo(settings),
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            open=True,
        )
        return cls(pool)

    def close(self) -> None:
        """Close the underlying pool."""
        self._pool.close()

    @contextmanager
    def connection(self) -> Generator[psycopg.Connection[Any], None, None]:
        """Yield a connection from the pool. Caller manages commit/rollback.

        Raises:
            StoreUnavailableError: if the database cannot be reached.
        """
        try:
            with self._pool.connection() as conn:
                yield conn
        except psycopg.OperationalError as exc:
            raise StoreUnavailableError(f"Database unavailable: {exc}") from exc

    def ping(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            with self.connection() as conn:
                conn.execute("SELECT 1")
        except StoreUnavailableError:
            return False
        return True
