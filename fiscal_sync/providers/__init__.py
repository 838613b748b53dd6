from fiscal_sync.providers.base import BaseNsuProviderClient, BaseWindowProviderClient
from fiscal_sync.providers.factory import ProviderClientFactory
from fiscal_sync.providers.models import NsuBatch, ProviderDocument

__all__ = [
    "BaseNsuProviderClient",
    "BaseWindowProviderClient",
    "NsuBatch",
    "ProviderClientFactory",
    "ProviderDocument",
]
