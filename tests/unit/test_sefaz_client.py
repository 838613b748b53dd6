import base64
import gzip
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from fiscal_sync.providers.exceptions import (
    ProviderAuthError,
    ProviderNetworkError,
    ProviderResponseError,
)
from fiscal_sync.providers.sefaz_client import (
    HOMOLOGATION_URL,
    PRODUCTION_URL,
    SefazDistributionClient,
    pad_nsu,
)


def _zip(content: bytes) -> str:
    return base64.b64encode(gzip.compress(content)).decode()


def _answer(
    status: str,
    docs: str = "",
    last: str = "000000000000010",
    maximum: str = "000000000000010",
) -> bytes:
    return f"""<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:soap="http://www.w3.org/2003/05/soap-envelope">
  <soap:Body>
    <nfeDistDFeInteresseResponse xmlns="http://www.portalfiscal.inf.br/nfe/wsdl/NFeDistribuicaoDFe">
      <nfeDistDFeInteresseResult>
        <retDistDFeInt xmlns="http://www.portalfiscal.inf.br/nfe" versao="1.01">
          <tpAmb>1</tpAmb>
          <cStat>{status}</cStat>
          <xMotivo>Motivo {status}</xMotivo>
          <ultNSU>{last}</ultNSU>
          <maxNSU>{maximum}</maxNSU>
          {docs}
        </retDistDFeInt>
      </nfeDistDFeInteresseResult>
    </nfeDistDFeInteresseResponse>
  </soap:Body>
</soap:Envelope>""".encode()


def _client(
    handler: Callable[[httpx.Request], httpx.Response], production: bool = True
) -> SefazDistributionClient:
    return SefazDistributionClient(
        tax_id="12.345.678/0001-90",
        cert_path="unused.pem",
        key_path="unused.key",
        state_code="35",
        production=production,
        transport=httpx.MockTransport(handler),
    )


def _never_called(request: httpx.Request) -> httpx.Response:
    raise AssertionError("unexpected request")


class TestEnvelope:
    def test_contains_request_fields(self) -> None:
        envelope = _client(_never_called).build_envelope("42")

        assert "<ultNSU>000000000000042</ultNSU>" in envelope
        assert "<CNPJ>12345678000190</CNPJ>" in envelope
        assert "<cUF>35</cUF>" in envelope
        assert "<cUFAutor>35</cUFAutor>" in envelope
        assert "<tpAmb>1</tpAmb>" in envelope
        assert "<versaoDados>1.01</versaoDados>" in envelope

    def test_homologation_environment(self) -> None:
        envelope = _client(_never_called, production=False).build_envelope("0")
        assert "<tpAmb>2</tpAmb>" in envelope

    def test_pad_nsu(self) -> None:
        assert pad_nsu("123") == "000000000000123"
        assert pad_nsu("") == "000000000000000"


class TestParseResponse:
    def test_documents_found(self, load_fixture: Callable[[str], bytes]) -> None:
        nfe = load_fixture("nfe_proc.xml")
        docs = (
            "<loteDistDFeInt>"
            f'<docZip NSU="000000000000009" schema="procNFe_v4.00.xsd">{_zip(nfe)}</docZip>'
            f'<docZip NSU="000000000000010" schema="resNFe_v1.01.xsd">{_zip(b"<resNFe/>")}</docZip>'
            "</loteDistDFeInt>"
        )

        batch = SefazDistributionClient.parse_response(_answer("138", docs, maximum="000000000000050"))

        assert [d.id for d in batch.documents] == ["000000000000009"]
        assert batch.documents[0].raw_xml == nfe
        assert batch.last_nsu == "000000000000010"
        assert batch.max_nsu == "000000000000050"

    def test_corrupt_document_is_skipped(self) -> None:
        docs = (
            '<loteDistDFeInt><docZip NSU="000000000000009" schema="procNFe_v4.00.xsd">'
            "bm90IGd6aXA=</docZip></loteDistDFeInt>"
        )

        batch = SefazDistributionClient.parse_response(_answer("138", docs))

        assert batch.documents == []
        assert batch.last_nsu == "000000000000010"

    def test_no_documents(self) -> None:
        batch = SefazDistributionClient.parse_response(_answer("137"))

        assert batch.documents == []
        assert batch.last_nsu == "000000000000010"

    def test_rate_limited(self) -> None:
        with pytest.raises(ProviderResponseError, match="rate limit"):
            SefazDistributionClient.parse_response(_answer("656"))

    def test_other_rejection(self) -> None:
        with pytest.raises(ProviderResponseError, match="215"):
            SefazDistributionClient.parse_response(_answer("215"))

    def test_unexpected_body(self) -> None:
        with pytest.raises(ProviderResponseError):
            SefazDistributionClient.parse_response(b"<html>gateway error</html>")


class TestFetchSince:
    def test_posts_soap_request(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=_answer("137"))

        batch = _client(handler).fetch_since("000000000000005")

        assert batch.documents == []
        assert str(seen[0].url) == PRODUCTION_URL
        assert seen[0].headers["Content-Type"] == "application/soap+xml; charset=utf-8"
        assert b"<ultNSU>000000000000005</ultNSU>" in seen[0].content

    def test_homologation_url(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=_answer("137"))

        _client(handler, production=False).fetch_since("0")

        assert str(seen[0].url) == HOMOLOGATION_URL

    def test_forbidden(self) -> None:
        with pytest.raises(ProviderAuthError):
            _client(lambda request: httpx.Response(403)).fetch_since("0")

    def test_server_error(self) -> None:
        with pytest.raises(ProviderResponseError):
            _client(lambda request: httpx.Response(500, text="fault")).fetch_since("0")

    def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(ProviderNetworkError):
            _client(handler).fetch_since("0")


class TestCertificate:
    def test_missing_certificate_files(self, tmp_path: Path) -> None:
        with pytest.raises(ProviderAuthError):
            SefazDistributionClient(
                tax_id="12345678000190",
                cert_path=str(tmp_path / "missing.pem"),
                key_path=str(tmp_path / "missing.key"),
                state_code="35",
            )
