"""Fiscal XML parser: raw bytes in, canonical ParsedInvoice out.

Schema attempts run in fixed priority (NF-e, CT-e, NFS-e). Each attempt
reads its own typed field set from the tree and either produces a record
with a usable access key or nothing; the first record wins.
"""

import re
import xml.etree.ElementTree as ET
from collections.abc import Callable
from datetime import datetime, timezone

from fiscal_sync.logging.logger import Log
from fiscal_sync.parser.cte import extract_cte
from fiscal_sync.parser.models import (
    CteFields,
    DocumentType,
    NfeFields,
    NfseFields,
    ParsedInvoice,
)
from fiscal_sync.parser.nfe import extract_nfe
from fiscal_sync.parser.nfse import extract_nfse
from fiscal_sync.parser.xml_reader import load_root, only_digits

MIN_ACCESS_KEY_LENGTH = 44
MIN_COMPOSITE_KEY_LENGTH = 20
NFSE_NUMBER_WIDTH = 15


def _strip_prefix(value: str, prefix: str) -> str:
    if value.startswith(prefix):
        return value[len(prefix):]
    return value


def _government_key(protocol_key: str, id_attribute: str, prefix: str) -> str:
    """Protocol acknowledgement key first, then the info element Id."""
    if len(protocol_key) >= MIN_ACCESS_KEY_LENGTH:
        return protocol_key
    from_id = _strip_prefix(id_attribute, prefix)
    if len(from_id) >= MIN_ACCESS_KEY_LENGTH:
        return from_id
    return ""


def nfse_composite_key(provider_tax_id: str, number: str, verification_code: str) -> str:
    """Provider tax ID + zero-padded number + verification code.

    Returns "" when any part is missing or the result is too short to be
    a reliable identifier.
    """
    tax_id = only_digits(provider_tax_id)
    digits = only_digits(number)
    code = re.sub(r"[^0-9A-Za-z]", "", verification_code).upper()
    if not (tax_id and digits and code):
        return ""
    key = f"{tax_id}{digits.zfill(NFSE_NUMBER_WIDTH)}{code}"
    if len(key) < MIN_COMPOSITE_KEY_LENGTH:
        return ""
    return key


def _issue_date(value: datetime | None) -> datetime:
    # Partial documents stay importable; the user reviews them later.
    return value if value is not None else datetime.now(timezone.utc)


def _nfe_to_invoice(fields: NfeFields) -> ParsedInvoice | None:
    access_key = _government_key(fields.protocol_key, fields.id_attribute, "NFe")
    if not access_key:
        return None
    return ParsedInvoice(
        access_key=access_key,
        document_type=DocumentType.NFE,
        number=fields.number,
        series=fields.series,
        issue_date=_issue_date(fields.issue_date),
        sender_tax_id=only_digits(fields.sender.tax_id),
        sender_name=fields.sender.name,
        recipient_tax_id=only_digits(fields.recipient.tax_id),
        recipient_name=fields.recipient.name,
        total_value=fields.total_value,
    )


def _cte_to_invoice(fields: CteFields) -> ParsedInvoice | None:
    access_key = _government_key(fields.protocol_key, fields.id_attribute, "CTe")
    if not access_key:
        return None
    return ParsedInvoice(
        access_key=access_key,
        document_type=DocumentType.CTE,
        number=fields.number,
        series=fields.series,
        issue_date=_issue_date(fields.issue_date),
        sender_tax_id=only_digits(fields.sender.tax_id),
        sender_name=fields.sender.name,
        recipient_tax_id=only_digits(fields.recipient.tax_id),
        recipient_name=fields.recipient.name,
        total_value=fields.total_value,
    )


def _nfse_to_invoice(fields: NfseFields) -> ParsedInvoice | None:
    access_key = _government_key("", fields.id_attribute, "NFS")
    if not access_key:
        access_key = nfse_composite_key(
            fields.provider.tax_id, fields.number, fields.verification_code
        )
    if not access_key:
        return None
    return ParsedInvoice(
        access_key=access_key,
        document_type=DocumentType.NFSE,
        number=fields.number,
        series=fields.series,
        issue_date=_issue_date(fields.issue_date),
        sender_tax_id=only_digits(fields.provider.tax_id),
        sender_name=fields.provider.name,
        recipient_tax_id=only_digits(fields.customer.tax_id),
        recipient_name=fields.customer.name,
        total_value=fields.total_value,
    )


def _try_nfe(root: ET.Element) -> ParsedInvoice | None:
    fields = extract_nfe(root)
    return _nfe_to_invoice(fields) if fields is not None else None


def _try_cte(root: ET.Element) -> ParsedInvoice | None:
    fields = extract_cte(root)
    return _cte_to_invoice(fields) if fields is not None else None


def _try_nfse(root: ET.Element) -> ParsedInvoice | None:
    fields = extract_nfse(root)
    return _nfse_to_invoice(fields) if fields is not None else None


ATTEMPTS: tuple[tuple[DocumentType, Callable[[ET.Element], ParsedInvoice | None]], ...] = (
    (DocumentType.NFE, _try_nfe),
    (DocumentType.CTE, _try_cte),
    (DocumentType.NFSE, _try_nfse),
)


def parse_invoice_xml(xml_bytes: bytes) -> ParsedInvoice | None:
    """Parse NF-e, CT-e or NFS-e XML into a ParsedInvoice.

    Returns None when the XML is malformed, no known schema matches, or no
    access key can be derived. Size limits are the caller's job
    (see ensure_within_size).
    """
    root = load_root(xml_bytes)
    if root is None:
        Log.debug("XML could not be parsed")
        return None

    for document_type, attempt in ATTEMPTS:
        parsed = attempt(root)
        if parsed is not None:
            Log.debug(f"Parsed {document_type.value} document {parsed.access_key}")
            return parsed

    Log.debug(f"No recognized fiscal schema under root <{root.tag}>")
    return None
