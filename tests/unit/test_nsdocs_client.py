from collections.abc import Callable
from datetime import datetime, timezone

import httpx
import pytest

from fiscal_sync.providers.exceptions import (
    ProviderAuthError,
    ProviderNetworkError,
    ProviderResponseError,
)
from fiscal_sync.providers.nsdocs_client import NsdocsClient
from fiscal_sync.sync.window import SyncWindow

WINDOW = SyncWindow(
    start=datetime(2024, 5, 1, tzinfo=timezone.utc),
    end=datetime(2024, 5, 31, tzinfo=timezone.utc),
    synced_at=datetime(2024, 5, 31, tzinfo=timezone.utc),
)


def _client(
    handler: Callable[[httpx.Request], httpx.Response], **overrides: int
) -> NsdocsClient:
    return NsdocsClient(
        api_token="secret-token",
        base_url="https://api.nsdocs.test/v2",
        timeout_seconds=5,
        transport=httpx.MockTransport(handler),
        **overrides,
    )


def _doc(doc_id: int, status: str = "Autorizada") -> dict[str, object]:
    return {"id": doc_id, "chave_acesso": "x" * 44, "situacao": status, "tipo": "NFE"}


class TestListDocuments:
    def test_paginates_until_short_page(self) -> None:
        requests: list[httpx.Request] = []
        pages = {"0": [_doc(1), _doc(2)], "2": [_doc(3, "Operação confirmada")]}

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=pages[request.url.params["deslocamento"]])

        documents = _client(handler, page_size=2).list_documents("12345678000190", WINDOW)

        assert [d.id for d in documents] == ["1", "2", "3"]
        assert documents[2].provider_status == "Operação confirmada"
        assert documents[0].raw_xml == b""
        assert len(requests) == 2
        first = requests[0]
        assert first.url.path == "/v2/documentos"
        assert first.headers["Authorization"] == "Bearer secret-token"
        assert first.url.params["dtInicial"] == "2024-05-01"
        assert first.url.params["dtFinal"] == "2024-05-31"
        assert first.url.params["ordenacao_campo"] == "dataemissao"
        assert first.url.params["ordenacao_tipo"] == "asc"
        assert first.url.params["quantidade"] == "2"

    def test_stops_on_empty_page(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            offset = request.url.params["deslocamento"]
            return httpx.Response(200, json=[_doc(1), _doc(2)] if offset == "0" else [])

        documents = _client(handler, page_size=2).list_documents("1", WINDOW)

        assert len(documents) == 2
        assert len(calls) == 2

    def test_page_limit(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=[_doc(len(calls))])

        documents = _client(handler, page_size=1, max_pages=3).list_documents("1", WINDOW)

        assert len(documents) == 3
        assert len(calls) == 3

    def test_missing_status_is_blank(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"id": "abc", "situacao": None}])

        [document] = _client(handler).list_documents("1", WINDOW)

        assert document.provider_status == ""

    def test_non_array_listing(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"erro": "x"})

        with pytest.raises(ProviderResponseError):
            _client(handler).list_documents("1", WINDOW)

    def test_invalid_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        with pytest.raises(ProviderResponseError):
            _client(handler).list_documents("1", WINDOW)

    def test_document_without_id(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"situacao": "Autorizada"}])

        with pytest.raises(ProviderResponseError):
            _client(handler).list_documents("1", WINDOW)


class TestErrors:
    @pytest.mark.parametrize("status_code", [401, 403])
    def test_rejected_token(self, status_code: int) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code)

        with pytest.raises(ProviderAuthError):
            _client(handler).list_documents("1", WINDOW)

    def test_server_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="internal error")

        with pytest.raises(ProviderResponseError, match="500"):
            _client(handler).list_documents("1", WINDOW)

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderNetworkError):
            _client(handler).list_documents("1", WINDOW)

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ProviderNetworkError):
            _client(handler).fetch_raw_xml("1")


class TestFetchRawXml:
    def test_downloads_document_xml(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"<nfeProc/>")

        assert _client(handler).fetch_raw_xml("abc") == b"<nfeProc/>"
        assert seen[0].url.path == "/v2/documentos/abc/xml"
        assert seen[0].headers["Accept"] == "application/xml"

    def test_missing_document(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        with pytest.raises(ProviderResponseError):
            _client(handler).fetch_raw_xml("gone")
