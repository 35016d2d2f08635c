"""
Plan limit enforcement.

Called by services before they create seat- or integration-consuming rows.
"""

from api.exceptions import raise_for_limit

from .entitlements import get_entitlements


def current_member_usage(organization) -> int:
    """Seats in use: active members plus pending invitations."""
    from organizations.models import OrganizationInvitation

    members = organization.members.filter(is_active=True).count()
    pending = organization.invitations.filter(
        status=OrganizationInvitation.Status.PENDING
    ).count()
    return members + pending


def current_integration_usage(organization) -> int:
    from integrations.models import Integration

    return Integration.objects.filter(organization=organization).exclude(
        status=Integration.Status.DISCONNECTED
    ).count()


def ensure_can_add_member(organization) -> None:
    entitlements = get_entitlements(organization)
    raise_for_limit('users', current_member_usage(organization), entitlements.max_users)


def ensure_can_add_integration(organization) -> None:
    entitlements = get_entitlements(organization)
    raise_for_limit(
        'integrations', current_integration_usage(organization), entitlements.max_integrations
    )
