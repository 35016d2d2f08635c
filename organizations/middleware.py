"""
Organizations Middleware - Resolve request.organization

Resolution order for an authenticated user:
1. X-Organization-ID header (organization UUID or slug); the user must be an
   active member unless they are a platform admin
2. The user's default organization, when still an active member
3. The user's earliest active membership

Bearer tokens are decoded here as well as by DRF, because Django middleware
runs before DRF authentication.
"""

import logging
import uuid
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.utils import timezone

from core.permissions import is_platform_admin

from .context import reset_current_organization, set_current_organization
from .models import Organization, OrganizationMember

logger = logging.getLogger(__name__)

ORGANIZATION_HEADER = 'HTTP_X_ORGANIZATION_ID'
LAST_SEEN_RESOLUTION = timedelta(minutes=5)


def _authenticate_bearer(request):
    from rest_framework.exceptions import AuthenticationFailed
    from rest_framework_simplejwt.authentication import JWTAuthentication
    from rest_framework_simplejwt.exceptions import TokenError

    try:
        result = JWTAuthentication().authenticate(request)
    except (AuthenticationFailed, TokenError):
        return None
    return result[0] if result else None


def _lookup_organization(identifier: str):
    try:
        return Organization.objects.filter(uuid=uuid.UUID(identifier)).first()
    except ValueError:
        return Organization.objects.filter(slug=identifier).first()


def resolve_organization(request, user):
    """Return the organization the request acts on, or None."""
    if user is None or not user.is_authenticated:
        return None

    memberships = OrganizationMember.objects.filter(
        user=user,
        is_active=True,
        organization__status=Organization.Status.ACTIVE,
    ).select_related('organization')

    identifier = request.META.get(ORGANIZATION_HEADER, '').strip()
    if identifier:
        organization = _lookup_organization(identifier)
        if organization is None:
            return None
        if is_platform_admin(user):
            return organization
        if memberships.filter(organization=organization).exists():
            return organization
        logger.warning(f"User {user.pk} requested organization {identifier} without membership")
        return None

    if user.default_organization_id:
        membership = memberships.filter(organization_id=user.default_organization_id).first()
        if membership is not None:
            return membership.organization

    membership = memberships.order_by('joined_at').first()
    return membership.organization if membership else None


class OrganizationMiddleware:
    """Attach request.organization and bind it to the organization context."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, 'user', None)
        if user is None or not user.is_authenticated:
            user = _authenticate_bearer(request)

        organization = resolve_organization(request, user)
        request.organization = organization

        if user is not None and user.is_authenticated:
            self._touch_last_seen(user)

        token = set_current_organization(organization)
        try:
            return self.get_response(request)
        finally:
            reset_current_organization(token)

    @staticmethod
    def _touch_last_seen(user):
        now = timezone.now()
        if user.last_seen_at is None or now - user.last_seen_at > LAST_SEEN_RESOLUTION:
            get_user_model().objects.filter(pk=user.pk).update(last_seen_at=now)
