"""
Fusion API Permissions
"""

from rest_framework import permissions

from api.exceptions import FeatureNotAvailableError, PolicyRestrictionError
from billing.entitlements import get_entitlements

from ..engines.policy import is_user_restricted


class NotRestrictedByPolicy(permissions.BasePermission):
    """Deny users targeted by an active restrict policy in the request organization."""

    def has_permission(self, request, view):
        if is_user_restricted(request.user, getattr(request, 'organization', None)):
            raise PolicyRestrictionError()
        return True


class HasIntelligenceEntitlement(permissions.BasePermission):
    """Require a plan that enables the intelligence engines."""

    def has_permission(self, request, view):
        organization = getattr(request, 'organization', None)
        if organization is None:
            return False
        if not get_entitlements(organization).intelligence_enabled:
            raise FeatureNotAvailableError(feature_name='intelligence')
        return True
