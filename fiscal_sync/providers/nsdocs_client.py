from typing import Any

import httpx

from fiscal_sync.logging.logger import Log
from fiscal_sync.providers.base import BaseWindowProviderClient
from fiscal_sync.providers.exceptions import (
    ProviderAuthError,
    ProviderNetworkError,
    ProviderResponseError,
)
from fiscal_sync.providers.models import ProviderDocument
from fiscal_sync.sync.window import SyncWindow


class NsdocsClient(BaseWindowProviderClient):
    """Window provider client for the NSDocs REST API.

    Listing is paginated with quantidade/deslocamento (limit/offset) and
    carries metadata only; XML is downloaded per document.
    """

    def __init__(
        self,
        *,
        api_token: str,
        base_url: str,
        timeout_seconds: int,
        page_size: int = 100,
        max_pages: int = 50,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._page_size = page_size
        self._max_pages = max_pages
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_token}"},
            transport=transport,
        )

    def list_documents(self, tax_id: str, window: SyncWindow) -> list[ProviderDocument]:
        _ = tax_id  # the API token is already scoped to one company
        start, end = window.as_date_range()
        filters = {
            "dtInicial": start,
            "dtFinal": end,
            "ordenacao_campo": "dataemissao",
            "ordenacao_tipo": "asc",
        }

        documents: list[ProviderDocument] = []
        offset = 0
        for _page in range(self._max_pages):
            params = {
                **filters,
                "quantidade": str(self._page_size),
                "deslocamento": str(offset),
            }
            items = self._get_json("/documentos", params)
            if not isinstance(items, list):
                raise ProviderResponseError("NSDocs listing is not a JSON array")
            documents.extend(self._to_document(item) for item in items)
            offset += len(items)
            if len(items) < self._page_size:
                break
        else:
            Log.warning(
                f"NSDocs listing {start}..{end} stopped at the {self._max_pages}-page limit"
            )

        Log.info(f"NSDocs listed {len(documents)} documents for {start}..{end}")
        return documents

    def fetch_raw_xml(self, document_id: str) -> bytes:
        response = self._send(
            "GET",
            f"/documentos/{document_id}/xml",
            headers={"Accept": "application/xml"},
        )
        return response.content

    def close(self) -> None:
        self._client.close()

    def _get_json(self, path: str, params: dict[str, str]) -> Any:
        response = self._send("GET", path, params=params, headers={"Accept": "application/json"})
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderResponseError(f"NSDocs returned invalid JSON: {exc}") from exc

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            response = self._client.request(method, path, params=params, headers=headers)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderNetworkError(f"NSDocs network error: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ProviderNetworkError(f"NSDocs transport error: {exc}") from exc

        if response.status_code in (401, 403):
            raise ProviderAuthError(f"NSDocs rejected the API token ({response.status_code})")
        if response.is_error:
            raise ProviderResponseError(
                f"NSDocs API error ({response.status_code}): {response.text[:200]}"
            )
        return response

    @staticmethod
    def _to_document(item: Any) -> ProviderDocument:
        if not isinstance(item, dict) or item.get("id") in (None, ""):
            raise ProviderResponseError(f"NSDocs document without id: {item!r}")
        return ProviderDocument(
            id=str(item["id"]),
            provider_status=str(item.get("situacao") or ""),
        )
