from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class DocumentType(str, Enum):
    NFE = "NFE"
    CTE = "CTE"
    NFSE = "NFSE"


@dataclass(frozen=True)
class Party:
    """Sender or recipient identity as read from the document."""

    tax_id: str = ""
    name: str = ""


@dataclass(frozen=True)
class NfeFields:
    """Fields extracted from an NF-e infNFe block."""

    protocol_key: str = ""
    id_attribute: str = ""
    number: str = ""
    series: str = ""
    issue_date: datetime | None = None
    sender: Party = Party()
    recipient: Party = Party()
    total_value: Decimal = Decimal("0")


@dataclass(frozen=True)
class CteFields:
    """Fields extracted from a CT-e infCte block."""

    protocol_key: str = ""
    id_attribute: str = ""
    number: str = ""
    series: str = ""
    issue_date: datetime | None = None
    sender: Party = Party()
    recipient: Party = Party()
    total_value: Decimal = Decimal("0")


@dataclass(frozen=True)
class NfseFields:
    """Fields extracted from an NFS-e block (ABRASF or national layout)."""

    id_attribute: str = ""
    number: str = ""
    verification_code: str = ""
    series: str = ""
    issue_date: datetime | None = None
    provider: Party = Party()
    customer: Party = Party()
    total_value: Decimal = Decimal("0")


DocumentFields = NfeFields | CteFields | NfseFields


@dataclass(frozen=True)
class ParsedInvoice:
    """Canonical record produced by the parser."""

    access_key: str
    document_type: DocumentType
    number: str
    series: str
    issue_date: datetime
    sender_tax_id: str
    sender_name: str
    recipient_tax_id: str
    recipient_name: str
    total_value: Decimal = Decimal("0")
