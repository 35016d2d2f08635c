"""
Core Permissions - Platform roles and organization RBAC for Core314

Two layers of access control live here:

1. PLATFORM ROLES (accounts.User.role):
   - has_role(): hierarchical role check used by services and viewsets
   - IsPlatformAdmin: admin console access
   - IsOperator: may trigger engine runs

2. ORGANIZATION ROLES (organizations.OrganizationMember.role):
   - IsOrganizationMember: any active member of request.organization
   - IsOrganizationAdmin: owner or admin
   - IsOrganizationOwner: owner only
   - IsOrganizationAdminOrReadOnly: members read, admins write

Platform admins pass every check.
"""

import logging
from typing import Optional

from rest_framework import permissions

logger = logging.getLogger('security.permissions')


# =============================================================================
# PLATFORM ROLES
# =============================================================================

PLATFORM_ADMIN = 'platform_admin'

# Required role -> roles that satisfy it
ROLE_HIERARCHY = {
    'operator': {'operator', 'admin', 'manager', PLATFORM_ADMIN},
    'end_user': {'end_user', 'user', 'operator', 'admin', 'manager', PLATFORM_ADMIN},
}


def is_platform_admin(user) -> bool:
    """True for authenticated platform administrators."""
    if not user or not user.is_authenticated:
        return False
    return bool(getattr(user, 'is_platform_admin', False)) or getattr(user, 'role', None) == PLATFORM_ADMIN


def has_role(user, required_role: str) -> bool:
    """
    Check a platform role requirement.

    Platform admins satisfy every requirement. `operator` and `end_user`
    accept the roles listed in ROLE_HIERARCHY; any other role must match
    exactly.
    """
    if not user or not user.is_authenticated:
        return False
    if is_platform_admin(user):
        return True

    role = getattr(user, 'role', None)
    allowed = ROLE_HIERARCHY.get(required_role)
    if allowed is None:
        return role == required_role
    return role in allowed


# =============================================================================
# ORGANIZATION ROLES
# =============================================================================

ORGANIZATION_ADMIN_ROLES = ('owner', 'admin')


def get_request_membership(request) -> Optional[object]:
    """
    Return the active OrganizationMember for request.user in
    request.organization, caching it on the request.
    """
    if hasattr(request, '_organization_membership'):
        return request._organization_membership

    membership = None
    organization = getattr(request, 'organization', None)
    user = getattr(request, 'user', None)
    if organization is not None and user is not None and user.is_authenticated:
        from organizations.models import OrganizationMember

        membership = OrganizationMember.objects.filter(
            organization=organization,
            user=user,
            is_active=True,
        ).first()

    request._organization_membership = membership
    return membership


class IsPlatformAdmin(permissions.BasePermission):
    """Allow access only to platform administrators."""

    message = 'Platform administrator access required.'

    def has_permission(self, request, view):
        allowed = is_platform_admin(request.user)
        if not allowed and request.user and request.user.is_authenticated:
            logger.warning(
                f"Admin console access denied for user {request.user.pk} on {view.__class__.__name__}"
            )
        return allowed


class IsOperator(permissions.BasePermission):
    """Allow operators, admins, managers and platform admins."""

    message = 'Operator role required.'

    def has_permission(self, request, view):
        return has_role(request.user, 'operator')


class IsOrganizationMember(permissions.BasePermission):
    """Require an active membership in the request organization."""

    message = 'You are not a member of this organization.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if getattr(request, 'organization', None) is None:
            return False
        if is_platform_admin(request.user):
            return True
        return get_request_membership(request) is not None


class IsOrganizationAdmin(permissions.BasePermission):
    """Require the owner or admin role in the request organization."""

    message = 'Organization admin role required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if getattr(request, 'organization', None) is None:
            return False
        if is_platform_admin(request.user):
            return True
        membership = get_request_membership(request)
        return membership is not None and membership.role in ORGANIZATION_ADMIN_ROLES


class IsOrganizationOwner(permissions.BasePermission):
    """Require the owner role in the request organization."""

    message = 'Organization owner role required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if is_platform_admin(request.user):
            return getattr(request, 'organization', None) is not None
        membership = get_request_membership(request)
        return membership is not None and membership.role == 'owner'


class IsOrganizationAdminOrReadOnly(permissions.BasePermission):
    """Members may read; owners and admins may write."""

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return IsOrganizationMember().has_permission(request, view)
        return IsOrganizationAdmin().has_permission(request, view)
