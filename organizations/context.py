"""
Organizations Context - Current organization propagation.

The current organization is stored in a ContextVar so that it follows the
request through services, signals, logging and Celery tasks.

Usage:
    from organizations.context import organization_context, get_current_organization

    with organization_context(organization):
        do_something()

    organization = get_current_organization()
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from organizations.models import Organization

logger = logging.getLogger(__name__)


_current_organization: ContextVar[Optional['Organization']] = ContextVar(
    'current_organization', default=None
)


def get_current_organization() -> Optional['Organization']:
    """Return the organization bound to the current context, if any."""
    return _current_organization.get()


def set_current_organization(organization: Optional['Organization']):
    """
    Bind an organization to the current context.

    Returns the ContextVar token; pass it to reset_current_organization().
    Prefer organization_context() for scoped switches.
    """
    return _current_organization.set(organization)


def reset_current_organization(token) -> None:
    _current_organization.reset(token)


@contextmanager
def organization_context(organization: Optional['Organization']):
    """
    Execute a block with `organization` as the current organization.
    Nested usage restores the outer organization on exit.
    """
    token = _current_organization.set(organization)
    try:
        if organization is not None:
            logger.debug(f"Entered organization context: {organization.slug}")
        yield organization
    finally:
        _current_organization.reset(token)
