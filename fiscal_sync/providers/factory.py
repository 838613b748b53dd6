from collections.abc import Callable

from fiscal_sync.config.settings import Settings
from fiscal_sync.database.models import ProviderKind, TenantRecord
from fiscal_sync.providers.base import BaseNsuProviderClient, BaseWindowProviderClient
from fiscal_sync.providers.exceptions import ProviderAuthError
from fiscal_sync.providers.nsdocs_client import NsdocsClient
from fiscal_sync.providers.sefaz_client import SefazDistributionClient

Decrypt = Callable[[str], str]


def _identity(value: str) -> str:
    return value


class ProviderClientFactory:
    """Creates provider clients from a tenant's stored credentials.

    Stored secrets go through decrypt before use; encryption at rest is
    owned by whoever writes the tenant row.
    """

    def __init__(self, settings: Settings, decrypt: Decrypt | None = None) -> None:
        self._settings = settings
        self._decrypt = decrypt or _identity

    def create_window_client(self, tenant: TenantRecord) -> BaseWindowProviderClient:
        if not tenant.window_api_token:
            raise ProviderAuthError(f"Tenant {tenant.id} has no {ProviderKind.WINDOW.value} credentials")
        return NsdocsClient(
            api_token=self._decrypt(tenant.window_api_token),
            base_url=self._settings.nsdocs_base_url,
            timeout_seconds=self._settings.nsdocs_timeout_seconds,
            page_size=self._settings.nsdocs_page_size,
            max_pages=self._settings.nsdocs_max_pages,
        )

    def create_nsu_client(self, tenant: TenantRecord) -> BaseNsuProviderClient:
        if not (tenant.nsu_cert_path and tenant.nsu_key_path):
            raise ProviderAuthError(f"Tenant {tenant.id} has no {ProviderKind.NSU.value} credentials")
        return SefazDistributionClient(
            tax_id=tenant.tax_id,
            cert_path=tenant.nsu_cert_path,
            key_path=tenant.nsu_key_path,
            state_code=tenant.nsu_state_code or self._settings.sefaz_default_state_code,
            production=self._settings.sefaz_production,
            timeout_seconds=self._settings.sefaz_timeout_seconds,
            verify_ssl=self._settings.sefaz_verify_ssl,
        )
