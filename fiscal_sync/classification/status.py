"""Map free-text provider status strings to the internal invoice status.

The mapping is conservative: anything not explicitly recognized stays
RECEIVED.
"""

import unicodedata

from fiscal_sync.classification.models import InvoiceStatus
from fiscal_sync.parser.models import DocumentType

CTE_DISAGREEMENT = "DESACORDO"
CTE_CANCELLATION_TERMS = ("CANCEL", "CANCELAMENTO", "CANCELADO")

NFE_CONFIRMATION_TERMS = ("CONFIRMACAO DA OPERACAO", "OPERACAO CONFIRMADA", "CONFIRMADA")
NFE_REJECTION_TERMS = (
    "DESCONHECIMENTO DA OPERACAO",
    "OPERACAO NAO REALIZADA",
    "NAO REALIZADA",
)


def normalize_status_text(value: str | None) -> str:
    """Strip diacritics, upper-case and trim."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    without_marks = "".join(c for c in decomposed if not unicodedata.combining(c))
    return without_marks.upper().strip()


def _includes_any(text: str, terms: tuple[str, ...]) -> bool:
    return any(term in text for term in terms)


def classify_status(
    document_type: DocumentType | str, provider_status: str | None
) -> InvoiceStatus:
    """Derive the lifecycle status from a provider's status text."""
    if isinstance(document_type, DocumentType):
        document_type = document_type.value
    doc_type = normalize_status_text(document_type)
    status = normalize_status_text(provider_status)

    if not status:
        return InvoiceStatus.RECEIVED

    if doc_type == "CTE":
        has_disagreement = CTE_DISAGREEMENT in status
        has_cancellation = _includes_any(status, CTE_CANCELLATION_TERMS)
        if has_disagreement and not has_cancellation:
            return InvoiceStatus.REJECTED
        if has_disagreement and has_cancellation:
            # The disagreement itself was withdrawn.
            return InvoiceStatus.CONFIRMED
        return InvoiceStatus.RECEIVED

    if doc_type == "NFE":
        if _includes_any(status, NFE_CONFIRMATION_TERMS):
            return InvoiceStatus.CONFIRMED
        if _includes_any(status, NFE_REJECTION_TERMS):
            return InvoiceStatus.REJECTED

    return InvoiceStatus.RECEIVED
