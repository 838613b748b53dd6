import xml.etree.ElementTree as ET

from fiscal_sync.parser.models import CteFields, Party
from fiscal_sync.parser.xml_reader import (
    attribute_of,
    find_first,
    parse_datetime,
    parse_decimal,
    text_of,
)

INFO_PATHS = ("CTe/infCte", "infCte", ".//CTe/infCte", ".//infCte")
PROTOCOL_KEY_PATHS = ("protCTe/infProt/chCTe", ".//protCTe/infProt/chCTe")


def locate_info(root: ET.Element) -> ET.Element | None:
    if root.tag == "infCte":
        return root
    return find_first(root, *INFO_PATHS)


def _party(element: ET.Element | None) -> Party:
    return Party(
        tax_id=text_of(element, "CNPJ", "CPF"),
        name=text_of(element, "xNome"),
    )


def extract_cte(root: ET.Element) -> CteFields | None:
    """Read CT-e fields from a namespace-free tree, or None if no infCte."""
    info = locate_info(root)
    if info is None:
        return None
    ide = info.find("ide")
    # Some issuers omit dest on freight documents; the receiver stands in.
    recipient = find_first(info, "dest", "receb")
    return CteFields(
        protocol_key=text_of(root, *PROTOCOL_KEY_PATHS),
        id_attribute=attribute_of(info, "Id"),
        number=text_of(ide, "nCT"),
        series=text_of(ide, "serie"),
        issue_date=parse_datetime(text_of(ide, "dhEmi", "dEmi")),
        sender=_party(info.find("emit")),
        recipient=_party(recipient),
        total_value=parse_decimal(text_of(info, "vPrest/vTPrest")),
    )
