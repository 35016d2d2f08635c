"""
Organizations Logging - Organization-aware logging filters and formatters.

This module provides logging components that include organization context:
- OrganizationContextFilter: Adds organization info to log records
- OrganizationFormatter: Formatter with an organization prefix

Usage in settings.py:
    LOGGING = {
        'filters': {
            'organization_context': {
                '()': 'organizations.logging.OrganizationContextFilter',
            },
        },
        'handlers': {
            'console': {
                'filters': ['organization_context'],
                ...
            },
        },
    }
"""

import logging
from typing import Optional

from .context import get_current_organization


class OrganizationContextFilter(logging.Filter):
    """
    Logging filter that adds organization context to log records.

    Adds the following attributes to log records:
    - organization: Organization slug or '-'
    - organization_id: Organization primary key or None
    """

    def filter(self, record: logging.LogRecord) -> bool:
        organization = get_current_organization()

        if organization is not None:
            record.organization = organization.slug
            record.organization_id = organization.pk
        else:
            record.organization = '-'
            record.organization_id = None

        return True


class OrganizationFormatter(logging.Formatter):
    """
    Formatter that includes organization context.

    Default format:
        [{asctime}] [{levelname}] [org:{organization}] {name}: {message}
    """

    default_format = '[{asctime}] [{levelname}] [org:{organization}] {name}: {message}'

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, style: str = '{'):
        if fmt is None:
            fmt = self.default_format
        super().__init__(fmt, datefmt, style)

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, 'organization'):
            organization = get_current_organization()
            record.organization = organization.slug if organization is not None else '-'

        return super().format(record)
