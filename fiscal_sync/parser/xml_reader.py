"""Helpers for reading loosely-structured fiscal XML.

Documents arrive with and without namespaces, with prefixes, wrapped in
protocol envelopes or bare. Everything here tolerates absent nodes and
returns typed defaults instead of raising.
"""

import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from fiscal_sync.ingestion.exceptions import DocumentTooLargeError

MAX_XML_BYTES = 10 * 1024 * 1024

_BOM = b"\xef\xbb\xbf"
_BR_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})")


def ensure_within_size(xml_bytes: bytes, limit: int = MAX_XML_BYTES) -> None:
    """Reject input above the size ceiling before it reaches the XML parser.

    Raises:
        DocumentTooLargeError: if xml_bytes is larger than limit.
    """
    if len(xml_bytes) > limit:
        raise DocumentTooLargeError(
            f"XML exceeds the {limit // (1024 * 1024)}MB limit ({len(xml_bytes)} bytes)"
        )


def load_root(xml_bytes: bytes) -> ET.Element | None:
    """Parse bytes into a namespace-free element tree.

    Returns None for empty or malformed input.
    """
    content = xml_bytes.strip()
    if content.startswith(_BOM):
        content = content[len(_BOM):].lstrip()
    if not content:
        return None
    try:
        root = ET.fromstring(content)
    except (ET.ParseError, ValueError):
        return None
    _strip_namespaces(root)
    return root


def _strip_namespaces(root: ET.Element) -> None:
    for element in root.iter():
        if isinstance(element.tag, str) and "}" in element.tag:
            element.tag = element.tag.split("}", 1)[1]
        for name in [n for n in element.attrib if "}" in n]:
            element.attrib[name.split("}", 1)[1]] = element.attrib.pop(name)


def find_first(element: ET.Element | None, *paths: str) -> ET.Element | None:
    """Return the first element matched by any of the paths, in order."""
    if element is None:
        return None
    for path in paths:
        found = element.find(path)
        if found is not None:
            return found
    return None


def text_of(element: ET.Element | None, *paths: str) -> str:
    """Return the first non-blank text among the paths, or ""."""
    if element is None:
        return ""
    for path in paths:
        found = element.find(path)
        if found is not None and found.text and found.text.strip():
            return found.text.strip()
    return ""


def attribute_of(element: ET.Element | None, name: str) -> str:
    if element is None:
        return ""
    return element.get(name, "").strip()


def parse_datetime(value: str) -> datetime | None:
    """Parse ISO 8601 (with or without offset) or dd/mm/yyyy values.

    Naive values are taken as UTC.
    """
    if not value:
        return None
    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        match = _BR_DATE.match(value)
        if match:
            day, month, year = (int(part) for part in match.groups())
            try:
                parsed = datetime(year, month, day)
            except ValueError:
                return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_decimal(value: str) -> Decimal:
    """Parse a monetary value, accepting comma decimal separators.

    Absent or unparseable values become 0.
    """
    if not value:
        return Decimal("0")
    normalized = value.strip()
    if "," in normalized:
        normalized = normalized.replace(".", "").replace(",", ".")
    try:
        amount = Decimal(normalized)
    except InvalidOperation:
        return Decimal("0")
    if not amount.is_finite():
        return Decimal("0")
    return amount


def only_digits(value: str | None) -> str:
    if not value:
        return ""
    return re.sub(r"\D", "", value)
