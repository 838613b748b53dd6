import base64
import binascii
import gzip
import ssl
import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape

import httpx

from fiscal_sync.logging.logger import Log
from fiscal_sync.parser.xml_reader import attribute_of, find_first, load_root, only_digits, text_of
from fiscal_sync.providers.base import BaseNsuProviderClient
from fiscal_sync.providers.exceptions import (
    ProviderAuthError,
    ProviderNetworkError,
    ProviderResponseError,
)
from fiscal_sync.providers.models import NsuBatch, ProviderDocument

PRODUCTION_URL = "https://www1.nfe.fazenda.gov.br/NFeDistribuicaoDFe/NFeDistribuicaoDFe.asmx"
HOMOLOGATION_URL = "https://hom.nfe.fazenda.gov.br/NFeDistribuicaoDFe/NFeDistribuicaoDFe.asmx"

NSU_WIDTH = 15

STATUS_NO_DOCUMENTS = "137"
STATUS_DOCUMENTS_FOUND = "138"
STATUS_RATE_LIMITED = "656"

# Only full processed documents carry parseable XML; summaries and events do not.
FULL_DOCUMENT_SCHEMA_PREFIXES = ("procNFe",)

_WSDL_NS = "http://www.portalfiscal.inf.br/nfe/wsdl/NFeDistribuicaoDFe"

_ENVELOPE = """<?xml version="1.0" encoding="utf-8"?>
<soap12:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" \
xmlns:xsd="http://www.w3.org/2001/XMLSchema" \
xmlns:soap12="http://www.w3.org/2003/05/soap-envelope">
  <soap12:Header>
    <nfeCabecMsg xmlns="{wsdl_ns}">
      <cUF>{state_code}</cUF>
      <versaoDados>1.01</versaoDados>
    </nfeCabecMsg>
  </soap12:Header>
  <soap12:Body>
    <nfeDistDFeInteresse xmlns="{wsdl_ns}">
      <nfeDadosMsg>
        <distDFeInt xmlns="http://www.portalfiscal.inf.br/nfe" versao="1.01">
          <tpAmb>{environment}</tpAmb>
          <cUFAutor>{state_code}</cUFAutor>
          <CNPJ>{tax_id}</CNPJ>
          <distNSU>
            <ultNSU>{last_nsu}</ultNSU>
          </distNSU>
        </distDFeInt>
      </nfeDadosMsg>
    </nfeDistDFeInteresse>
  </soap12:Body>
</soap12:Envelope>"""


def pad_nsu(nsu: str) -> str:
    return only_digits(nsu).zfill(NSU_WIDTH)


class SefazDistributionClient(BaseNsuProviderClient):
    """NSU provider client for the SEFAZ NFeDistribuicaoDFe web service.

    Authenticates with the tenant's client certificate (mutual TLS) and
    speaks SOAP 1.2. Each call returns at most one distribution batch.
    """

    def __init__(
        self,
        *,
        tax_id: str,
        cert_path: str,
        key_path: str,
        state_code: str,
        production: bool = True,
        timeout_seconds: int = 60,
        verify_ssl: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._tax_id = only_digits(tax_id)
        self._state_code = state_code
        self._production = production
        self._url = PRODUCTION_URL if production else HOMOLOGATION_URL
        if transport is None:
            self._client = httpx.Client(
                timeout=timeout_seconds,
                verify=self._ssl_context(cert_path, key_path, verify_ssl),
            )
        else:
            self._client = httpx.Client(timeout=timeout_seconds, transport=transport)

    def fetch_since(self, last_nsu: str) -> NsuBatch:
        envelope = self.build_envelope(last_nsu)
        try:
            response = self._client.post(
                self._url,
                content=envelope.encode("utf-8"),
                headers={"Content-Type": "application/soap+xml; charset=utf-8"},
            )
        except httpx.HTTPError as exc:
            raise ProviderNetworkError(f"SEFAZ network error: {exc}") from exc

        if response.status_code in (401, 403):
            raise ProviderAuthError(f"SEFAZ rejected the client certificate ({response.status_code})")
        if response.is_error:
            raise ProviderResponseError(
                f"SEFAZ HTTP error ({response.status_code}): {response.text[:200]}"
            )
        return self.parse_response(response.content, last_nsu)

    def close(self) -> None:
        self._client.close()

    def build_envelope(self, last_nsu: str) -> str:
        return _ENVELOPE.format(
            wsdl_ns=_WSDL_NS,
            state_code=escape(self._state_code),
            environment="1" if self._production else "2",
            tax_id=escape(self._tax_id),
            last_nsu=pad_nsu(last_nsu),
        )

    @classmethod
    def parse_response(cls, content: bytes, last_nsu: str = "") -> NsuBatch:
        """Turn a retDistDFeInt answer into a batch.

        Raises:
            ProviderResponseError: if the answer is not a distribution result
                or carries an error status.
        """
        root = load_root(content)
        result = find_first(root, ".//retDistDFeInt")
        if result is None:
            raise ProviderResponseError("Unexpected SEFAZ SOAP response structure")

        status = text_of(result, "cStat")
        reason = text_of(result, "xMotivo")
        batch_last = text_of(result, "ultNSU") or pad_nsu(last_nsu)
        batch_max = text_of(result, "maxNSU") or batch_last

        if status == STATUS_NO_DOCUMENTS:
            return NsuBatch(last_nsu=batch_last, max_nsu=batch_max)
        if status == STATUS_RATE_LIMITED:
            raise ProviderResponseError(
                f"SEFAZ rate limit ({status}): {reason}. Wait one hour before retrying"
            )
        if status != STATUS_DOCUMENTS_FOUND:
            raise ProviderResponseError(f"SEFAZ error ({status}): {reason}")

        documents: list[ProviderDocument] = []
        for doc_zip in result.findall("loteDistDFeInt/docZip"):
            document = cls._unpack(doc_zip)
            if document is not None:
                documents.append(document)
        return NsuBatch(documents=documents, last_nsu=batch_last, max_nsu=batch_max)

    @staticmethod
    def _unpack(doc_zip: ET.Element) -> ProviderDocument | None:
        nsu = attribute_of(doc_zip, "NSU")
        schema = attribute_of(doc_zip, "schema")
        if not schema.startswith(FULL_DOCUMENT_SCHEMA_PREFIXES):
            Log.debug(f"SEFAZ NSU {nsu}: skipping {schema or 'unknown'} document")
            return None
        try:
            raw_xml = gzip.decompress(base64.b64decode((doc_zip.text or "").strip()))
        except (binascii.Error, OSError, EOFError) as exc:
            Log.warning(f"SEFAZ NSU {nsu}: could not unpack document: {exc}")
            return None
        return ProviderDocument(id=nsu, raw_xml=raw_xml)

    @staticmethod
    def _ssl_context(cert_path: str, key_path: str, verify_ssl: bool) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not verify_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        try:
            context.load_cert_chain(certfile=cert_path, keyfile=key_path)
        except OSError as exc:
            raise ProviderAuthError(f"Cannot load SEFAZ client certificate: {exc}") from exc
        return context
