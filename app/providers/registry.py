"""
Bank-link provider registry.

Providers are created once at import time and looked up by name. Tests
swap in fakes with register_provider().
"""

from app.exceptions import ProviderNotFoundError
from app.providers.base import BankLinkProvider
from app.providers.crypto_provider import CryptoProvider
from app.providers.plaid_provider import PlaidProvider


_providers: dict[str, BankLinkProvider] = {}


def register_provider(provider: BankLinkProvider) -> None:
    _providers[provider.name] = provider


def get_provider(provider_name: str) -> BankLinkProvider:
    """
    Raises:
        ProviderNotFoundError: If no provider is registered under that name.
    """
    provider = _providers.get(provider_name)
    if provider is None:
        raise ProviderNotFoundError(provider_name, get_provider_names())
    return provider


def get_provider_names() -> list[str]:
    return list(_providers)


register_provider(PlaidProvider())
register_provider(CryptoProvider())
