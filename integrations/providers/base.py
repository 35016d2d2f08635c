"""
Base Integration Provider

Abstract base class for all integration providers.
A provider turns an integration's stored credentials into a dictionary of
numeric metrics (`collect_metrics()`); the integration service records them
and the Fusion engine scores them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Tuple

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class IntegrationError(Exception):
    """Base exception for integration errors."""
    pass


class AuthenticationError(IntegrationError):
    """Raised when authentication fails."""
    pass


class RateLimitError(IntegrationError):
    """Raised when rate limit is exceeded."""
    def __init__(self, message, retry_after=None):
        super().__init__(message)
        self.retry_after = retry_after


class ConfigurationError(IntegrationError):
    """Raised when integration is misconfigured."""
    pass


class SyncError(IntegrationError):
    """Raised when sync operation fails."""
    pass


class BaseIntegrationProvider(ABC):
    """
    Abstract base class for all integration providers.

    Subclasses must implement:
    - provider_name: Unique provider identifier (Integration.Provider value)
    - display_name: Human-readable provider name
    - collect_metrics(): Fetch metric values from the provider API
    """

    # Provider identification - override in subclasses
    provider_name: str = ''
    display_name: str = ''

    # API configuration
    api_base_url: str = ''

    # Metric names collect_metrics() returns
    metric_names: Tuple[str, ...] = ()

    def __init__(self, integration=None):
        """
        Initialize provider with optional integration instance.

        Args:
            integration: Integration model instance
        """
        self.integration = integration
        self._session = None

    @property
    def request_timeout(self) -> int:
        return getattr(settings, 'CORE314_PROVIDER_REQUEST_TIMEOUT', 30)

    @property
    def config(self) -> Dict[str, Any]:
        return (self.integration.config or {}) if self.integration else {}

    @property
    def session(self) -> requests.Session:
        """Get or create requests session with default configuration."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({
                'User-Agent': f'Core314/{getattr(settings, "VERSION", "1.0")}',
                'Accept': 'application/json',
            })
        return self._session

    def get_credentials(self) -> Dict[str, Any]:
        """
        Get credentials from integration instance.

        Returns:
            Dictionary with access_token, refresh_token and api_key
        """
        if not self.integration or not hasattr(self.integration, 'credentials'):
            raise ConfigurationError("No integration credentials available")

        creds = self.integration.credentials
        return {
            'access_token': creds.access_token,
            'refresh_token': creds.refresh_token,
            'api_key': creds.api_key,
        }

    def get_headers(self) -> Dict[str, str]:
        """
        Get HTTP headers for API requests.
        Override to customize headers.
        """
        creds = self.get_credentials()
        headers = {}

        if creds.get('access_token'):
            headers['Authorization'] = f"Bearer {creds['access_token']}"
        elif creds.get('api_key'):
            headers['Authorization'] = f"Bearer {creds['api_key']}"

        return headers

    def get_url(self, endpoint: str) -> str:
        if endpoint.startswith('http'):
            return endpoint
        return f"{self.api_base_url}/{endpoint.lstrip('/')}"

    def make_request(
        self,
        method: str,
        endpoint: str,
        data: Dict = None,
        params: Dict = None,
        headers: Dict = None,
    ) -> requests.Response:
        """
        Make authenticated API request with error handling.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (without base URL) or absolute URL
            data: Request body data
            params: URL query parameters
            headers: Additional headers

        Raises:
            RateLimitError: HTTP 429
            AuthenticationError: HTTP 401
            SyncError: any other HTTP error status
            IntegrationError: transport failure
        """
        url = self.get_url(endpoint)

        request_headers = self.get_headers()
        if headers:
            request_headers.update(headers)

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=data,
                params=params,
                headers=request_headers,
                timeout=self.request_timeout
            )
        except requests.RequestException as e:
            logger.error(f"API request failed: {e}")
            raise IntegrationError(f"Request failed: {e}")

        # Handle rate limiting
        if response.status_code == 429:
            retry_after = response.headers.get('Retry-After', 60)
            try:
                retry_after = int(retry_after)
            except (TypeError, ValueError):
                retry_after = 60
            raise RateLimitError("Rate limit exceeded", retry_after=retry_after)

        # Handle authentication errors
        if response.status_code == 401:
            raise AuthenticationError("Authentication failed")

        if response.status_code >= 400:
            raise SyncError(f"{self.display_name} API returned {response.status_code}")

        return response

    def get_json(self, endpoint: str, params: Dict = None, **kwargs) -> Dict[str, Any]:
        response = self.make_request('GET', endpoint, params=params, **kwargs)
        try:
            return response.json()
        except ValueError:
            raise SyncError(f"{self.display_name} API returned invalid JSON")

    def test_connection(self) -> Tuple[bool, str]:
        """
        Test if the integration connection is working.

        Returns:
            Tuple of (success: bool, message: str)
        """
        try:
            self.collect_metrics()
            return True, "Connection successful"
        except IntegrationError as e:
            return False, str(e)

    @abstractmethod
    def collect_metrics(self) -> Dict[str, float]:
        """
        Fetch current metric values.

        Returns:
            Mapping of metric name to numeric value
        """
        pass
