"""
Provider registry: maps Integration.provider values to provider classes.
"""

from typing import Dict, Type

from .base import BaseIntegrationProvider, ConfigurationError
from .intercom import IntercomProvider
from .quickbooks import QuickBooksProvider
from .salesforce import SalesforceProvider
from .slack import SlackProvider
from .teams import TeamsProvider
from .trello import TrelloProvider

PROVIDERS: Dict[str, Type[BaseIntegrationProvider]] = {
    provider.provider_name: provider
    for provider in (
        SlackProvider,
        TeamsProvider,
        SalesforceProvider,
        QuickBooksProvider,
        TrelloProvider,
        IntercomProvider,
    )
}


def is_supported(provider_name: str) -> bool:
    return provider_name in PROVIDERS


def get_provider_class(provider_name: str) -> Type[BaseIntegrationProvider]:
    try:
        return PROVIDERS[provider_name]
    except KeyError:
        raise ConfigurationError(f"No connector available for provider '{provider_name}'")


def get_provider(integration) -> BaseIntegrationProvider:
    return get_provider_class(integration.provider)(integration)
