"""
Organization-aware cache keys.

Usage:
    from core.cache import OrganizationCache

    cache = OrganizationCache(organization.id)
    cache.set('dashboard:overview', data, timeout=300)
    data = cache.get('dashboard:overview')
"""

import logging
from typing import Any, Optional

from django.core.cache import cache

logger = logging.getLogger(__name__)


class OrganizationCache:
    """
    Organization-scoped cache wrapper.

    Prefixes every key with the organization id so that cached data never
    crosses organization boundaries. Without an id keys are global.
    """

    def __init__(self, organization_id: Optional[int] = None):
        self.organization_id = organization_id
        self.prefix = f"org_{organization_id}:" if organization_id else "global:"

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str, default: Any = None) -> Any:
        return cache.get(self._make_key(key), default)

    def set(self, key: str, value: Any, timeout: int = 300) -> None:
        cache.set(self._make_key(key), value, timeout)

    def delete(self, key: str) -> None:
        cache.delete(self._make_key(key))
        logger.debug(f"Invalidated cache key {self._make_key(key)}")
