class ProviderError(Exception):
    """Raised when a document provider call fails."""


class ProviderNetworkError(ProviderError):
    """Raised when the provider cannot be reached or times out."""


class ProviderAuthError(ProviderError):
    """Raised when the provider rejects the tenant's credentials."""


class ProviderResponseError(ProviderError):
    """Raised when the provider answers with an error or an unreadable payload."""
