import xml.etree.ElementTree as ET

from fiscal_sync.parser.models import NfeFields, Party
from fiscal_sync.parser.xml_reader import (
    attribute_of,
    find_first,
    parse_datetime,
    parse_decimal,
    text_of,
)

# Protocoled wrapper, bare NFe root, bare infNFe root, nested in an envelope.
INFO_PATHS = ("NFe/infNFe", "infNFe", ".//NFe/infNFe", ".//infNFe")
PROTOCOL_KEY_PATHS = ("protNFe/infProt/chNFe", ".//protNFe/infProt/chNFe")


def locate_info(root: ET.Element) -> ET.Element | None:
    if root.tag == "infNFe":
        return root
    return find_first(root, *INFO_PATHS)


def _party(element: ET.Element | None) -> Party:
    return Party(
        tax_id=text_of(element, "CNPJ", "CPF"),
        name=text_of(element, "xNome"),
    )


def extract_nfe(root: ET.Element) -> NfeFields | None:
    """Read NF-e fields from a namespace-free tree, or None if no infNFe."""
    info = locate_info(root)
    if info is None:
        return None
    ide = info.find("ide")
    return NfeFields(
        protocol_key=text_of(root, *PROTOCOL_KEY_PATHS),
        id_attribute=attribute_of(info, "Id"),
        number=text_of(ide, "nNF"),
        series=text_of(ide, "serie"),
        issue_date=parse_datetime(text_of(ide, "dhEmi", "dEmi")),
        sender=_party(info.find("emit")),
        recipient=_party(info.find("dest")),
        total_value=parse_decimal(text_of(info, "total/ICMSTot/vNF", ".//vNF")),
    )
