# Integration Providers Package
# Contains connector implementations for the supported third-party services

from .base import (
    AuthenticationError,
    BaseIntegrationProvider,
    ConfigurationError,
    IntegrationError,
    RateLimitError,
    SyncError,
)
from .registry import PROVIDERS, get_provider, get_provider_class, is_supported

__all__ = [
    'AuthenticationError',
    'BaseIntegrationProvider',
    'ConfigurationError',
    'IntegrationError',
    'PROVIDERS',
    'RateLimitError',
    'SyncError',
    'get_provider',
    'get_provider_class',
    'is_supported',
]
