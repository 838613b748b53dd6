"""NFS-e extraction.

Municipal NFS-e follows the ABRASF layout (CompNfse > Nfse > InfNfse) with
per-city variations in casing and nesting. The national layout
(NFSe > infNFSe) carries a DPS block with the customer and service values.
"""

import xml.etree.ElementTree as ET

from fiscal_sync.parser.models import NfseFields, Party
from fiscal_sync.parser.xml_reader import (
    attribute_of,
    find_first,
    parse_datetime,
    parse_decimal,
    text_of,
)

ABRASF_INFO_TAGS = ("InfNfse", "infNfse", "InfNFSe")
ABRASF_INFO_PATHS = (
    "Nfse/InfNfse",
    "InfNfse",
    ".//CompNfse/Nfse/InfNfse",
    ".//Nfse/InfNfse",
    ".//InfNfse",
    ".//infNfse",
    ".//InfNFSe",
)
NATIONAL_INFO_PATHS = ("infNFSe", ".//NFSe/infNFSe", ".//infNFSe")


def locate_abrasf_info(root: ET.Element) -> ET.Element | None:
    if root.tag in ABRASF_INFO_TAGS:
        return root
    return find_first(root, *ABRASF_INFO_PATHS)


def locate_national_info(root: ET.Element) -> ET.Element | None:
    if root.tag == "infNFSe":
        return root
    return find_first(root, *NATIONAL_INFO_PATHS)


def _abrasf_provider(info: ET.Element) -> Party:
    tax_id = text_of(
        info,
        "PrestadorServico/IdentificacaoPrestador/CpfCnpj/Cnpj",
        "PrestadorServico/IdentificacaoPrestador/CpfCnpj/Cpf",
        "PrestadorServico/IdentificacaoPrestador/Cnpj",
        ".//Prestador/CpfCnpj/Cnpj",
        ".//Prestador/CpfCnpj/Cpf",
        ".//Prestador/Cnpj",
    )
    name = text_of(info, "PrestadorServico/RazaoSocial", ".//PrestadorServico/RazaoSocial")
    return Party(tax_id=tax_id, name=name)


def _abrasf_customer(info: ET.Element) -> Party:
    customer = find_first(info, "TomadorServico", ".//TomadorServico", ".//Tomador")
    tax_id = text_of(
        customer,
        "IdentificacaoTomador/CpfCnpj/Cnpj",
        "IdentificacaoTomador/CpfCnpj/Cpf",
        "IdentificacaoTomador/Cnpj",
        "IdentificacaoTomador/Cpf",
    )
    return Party(tax_id=tax_id, name=text_of(customer, "RazaoSocial", "NomeRazaoSocial"))


def _extract_abrasf(info: ET.Element) -> NfseFields:
    return NfseFields(
        id_attribute=attribute_of(info, "Id"),
        number=text_of(info, "Numero"),
        verification_code=text_of(info, "CodigoVerificacao"),
        issue_date=parse_datetime(
            text_of(info, "DataEmissao", "DataEmissaoNfse", ".//DataEmissao")
        ),
        provider=_abrasf_provider(info),
        customer=_abrasf_customer(info),
        total_value=parse_decimal(
            text_of(
                info,
                "ValoresNfse/ValorLiquidoNfse",
                ".//Valores/ValorLiquidoNfse",
                ".//Valores/ValorServicos",
                ".//ValorServicos",
            )
        ),
    )


def _national_party(element: ET.Element | None) -> Party:
    return Party(
        tax_id=text_of(element, "CNPJ", "CPF"),
        name=text_of(element, "xNome"),
    )


def _extract_national(info: ET.Element) -> NfseFields:
    dps = find_first(info, "DPS/infDPS", ".//infDPS")
    return NfseFields(
        id_attribute=attribute_of(info, "Id"),
        number=text_of(info, "nNFSe", "nDFSe"),
        series=text_of(dps, "serie"),
        issue_date=parse_datetime(
            text_of(info, "dhProc") or text_of(dps, "dhEmi", "dCompet")
        ),
        provider=_national_party(find_first(info, "emit", ".//prest")),
        customer=_national_party(find_first(dps, "toma")),
        total_value=parse_decimal(
            text_of(info, "valores/vLiq")
            or text_of(dps, "valores/vServPrest/vServ", ".//vServ")
        ),
    )


def extract_nfse(root: ET.Element) -> NfseFields | None:
    """Read NFS-e fields from a namespace-free tree, or None if unrecognized."""
    national = locate_national_info(root)
    if national is not None:
        return _extract_national(national)
    abrasf = locate_abrasf_info(root)
    if abrasf is not None:
        return _extract_abrasf(abrasf)
    return None
