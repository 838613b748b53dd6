from typing import Any

from psycopg.errors import DataError, IntegrityError, UniqueViolation
from psycopg.rows import dict_row

from fiscal_sync.classification.models import Direction, InvoiceStatus
from fiscal_sync.database.connection import Database
from fiscal_sync.database.exceptions import (
    DuplicateAccessKeyError,
    InvalidInvoiceDataError,
    InvoiceNotFoundError,
)
from fiscal_sync.database.models import InvoiceRecord
from fiscal_sync.parser.models import DocumentType

_COLUMNS = """
    id, tenant_id, access_key, document_type, direction, status, number, series,
    issue_date, sender_tax_id, sender_name, recipient_tax_id, recipient_name,
    total_value, raw_xml, created_at
"""


def _to_record(row: dict[str, Any]) -> InvoiceRecord:
    return InvoiceRecord(
        id=row["id"],
        tenant_id=row["tenant_id"],
        access_key=row["access_key"],
        document_type=DocumentType(row["document_type"]),
        direction=Direction(row["direction"]),
        status=InvoiceStatus(row["status"]),
        number=row["number"],
        series=row["series"],
        issue_date=row["issue_date"],
        sender_tax_id=row["sender_tax_id"],
        sender_name=row["sender_name"],
        recipient_tax_id=row["recipient_tax_id"],
        recipient_name=row["recipient_name"],
        total_value=row["total_value"],
        raw_xml=row["raw_xml"],
        created_at=row["created_at"],
    )


class InvoiceRepository:
    """Database operations for the invoices table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def insert(self, record: InvoiceRecord) -> InvoiceRecord:
        """Insert an invoice; the row is visible as soon as this returns.

        Raises:
            DuplicateAccessKeyError: if the access key is already stored,
                for this or any other tenant.
            InvalidInvoiceDataError: if a field value does not fit its column.
        """
        with self._db.connection() as conn:
            try:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO invoices (
                            tenant_id, access_key, document_type, direction, status,
                            number, series, issue_date, sender_tax_id, sender_name,
                            recipient_tax_id, recipient_name, total_value, raw_xml
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_COLUMNS}
                        """,
                        (
                            record.tenant_id,
                            record.access_key,
                            record.document_type.value,
                            record.direction.value,
                            record.status.value,
                            record.number,
                            record.series,
                            record.issue_date,
                            record.sender_tax_id,
                            record.sender_name,
                            record.recipient_tax_id,
                            record.recipient_name,
                            record.total_value,
                            record.raw_xml,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
            except UniqueViolation as exc:
                conn.rollback()
                raise DuplicateAccessKeyError(record.access_key) from exc
            except (DataError, IntegrityError) as exc:
                conn.rollback()
                raise InvalidInvoiceDataError(
                    f"Invoice {record.access_key} rejected by the store: {exc}"
                ) from exc

        if row is None:
            raise RuntimeError("INSERT ... RETURNING produced no row")
        return _to_record(row)

    def find_by_access_key(self, access_key: str) -> InvoiceRecord | None:
        with self._db.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM invoices WHERE access_key = %s",
                    (access_key,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _to_record(row)

    def update_status(self, invoice_id: int, status: InvoiceStatus) -> None:
        """Set the lifecycle status (classifier re-evaluation or user action).

        Raises:
            InvoiceNotFoundError: if no invoice with this ID exists.
        """
        with self._db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE invoices SET status = %s WHERE id = %s",
                    (status.value, invoice_id),
                )
                if cur.rowcount == 0:
                    raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
            conn.commit()

    def delete(self, invoice_id: int) -> None:
        """Delete an invoice on explicit user request.

        Raises:
            InvoiceNotFoundError: if no invoice with this ID exists.
        """
        with self._db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM invoices WHERE id = %s", (invoice_id,))
                if cur.rowcount == 0:
                    raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
            conn.commit()
