from fiscal_sync.parser.models import DocumentType, ParsedInvoice
from fiscal_sync.parser.parser import parse_invoice_xml
from fiscal_sync.parser.xml_reader import ensure_within_size

__all__ = ["DocumentType", "ParsedInvoice", "ensure_within_size", "parse_invoice_xml"]
