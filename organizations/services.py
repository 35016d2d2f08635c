"""
Organizations Services - Organization lifecycle and membership

This module provides:
- OrganizationService: create organizations, invite and accept members,
  change roles, remove members and expire stale invitations.

Every membership change keeps at least one active owner per organization.
"""

import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone
from django.utils.text import slugify

from api.exceptions import (
    BusinessRuleViolationError,
    InsufficientRoleError,
    InvalidInputError,
    PermissionDeniedError,
    ResourceAlreadyExistsError,
    ResourceStateError,
)
from billing.enforcement import ensure_can_add_member
from billing.services import BillingService
from core.permissions import is_platform_admin
from fusion.audit import log_audit_event

from .models import Organization, OrganizationInvitation, OrganizationMember

logger = logging.getLogger(__name__)


def get_membership(organization, user) -> Optional[OrganizationMember]:
    """Active membership of `user` in `organization`, or None."""
    if user is None or not user.is_authenticated:
        return None
    return OrganizationMember.objects.filter(
        organization=organization, user=user, is_active=True
    ).first()


def _unique_slug(name: str) -> str:
    base = slugify(name)[:90] or 'organization'
    slug = base
    suffix = 2
    while Organization.objects.filter(slug=slug).exists():
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


class OrganizationService:
    """
    Service for organization management.

    Handles:
    - Creating an organization with its owner and trial subscription
    - Invitations (create, revoke, accept, expire)
    - Role changes and member removal
    """

    @staticmethod
    def _require_admin(organization, actor) -> Optional[OrganizationMember]:
        if is_platform_admin(actor):
            return get_membership(organization, actor)
        membership = get_membership(organization, actor)
        if membership is None or not membership.is_admin:
            raise InsufficientRoleError(required_role='admin')
        return membership

    @staticmethod
    def _active_owner_count(organization) -> int:
        return organization.members.filter(
            role=OrganizationMember.Role.OWNER, is_active=True
        ).count()

    @staticmethod
    @transaction.atomic
    def create_organization(name: str, owner, plan=None, slug: str = None) -> Organization:
        """
        Create an organization owned by `owner` and start its trial.

        Args:
            name: Display name
            owner: User who becomes the owner member
            plan: billing.Plan for the trial (defaults to the starter plan)
            slug: Optional explicit slug; derived from name when omitted
        """
        if slug:
            if Organization.objects.filter(slug=slug).exists():
                raise ResourceAlreadyExistsError(resource_type='organization')
        else:
            slug = _unique_slug(name)

        organization = Organization.objects.create(name=name, slug=slug, owner=owner)
        OrganizationMember.objects.create(
            organization=organization,
            user=owner,
            role=OrganizationMember.Role.OWNER,
        )
        BillingService.start_trial(organization, plan=plan)

        if owner.default_organization_id is None:
            owner.default_organization = organization
            owner.save(update_fields=['default_organization', 'updated_at'])

        log_audit_event(
            action_type='organization_created',
            decision_summary=f"Organization {organization.slug} created",
            organization=organization,
            user=owner,
            triggered_by='organizations',
        )
        logger.info(f"Organization {organization.slug} created by user {owner.pk}")
        return organization

    @classmethod
    @transaction.atomic
    def invite(cls, organization, email: str, role: str, invited_by) -> OrganizationInvitation:
        """
        Invite an email address; replaces any pending invitation for it.

        Raises:
            InsufficientRoleError: inviter is not owner/admin
            InvalidInputError: unknown role
            ResourceAlreadyExistsError: email already belongs to an active member
            PlanLimitExceededError: seat limit reached
        """
        cls._require_admin(organization, invited_by)

        if role not in OrganizationInvitation.Role.values:
            raise InvalidInputError(detail=f"Role '{role}' cannot be granted by invitation.")

        email = email.strip().lower()
        if organization.members.filter(user__email__iexact=email, is_active=True).exists():
            raise ResourceAlreadyExistsError(
                resource_type='member',
                detail=f"{email} is already a member of this organization."
            )

        organization.invitations.filter(
            email__iexact=email,
            status=OrganizationInvitation.Status.PENDING,
        ).update(status=OrganizationInvitation.Status.REVOKED)

        ensure_can_add_member(organization)

        invitation = OrganizationInvitation.objects.create(
            organization=organization,
            email=email,
            role=role,
            invited_by=invited_by,
        )
        logger.info(f"Invitation {invitation.uuid} sent to {email} for {organization.slug}")
        return invitation

    @classmethod
    def revoke_invitation(cls, invitation: OrganizationInvitation, actor) -> OrganizationInvitation:
        cls._require_admin(invitation.organization, actor)
        if invitation.status != OrganizationInvitation.Status.PENDING:
            raise ResourceStateError(
                current_state=invitation.status,
                allowed_states=[OrganizationInvitation.Status.PENDING],
            )
        invitation.status = OrganizationInvitation.Status.REVOKED
        invitation.save(update_fields=['status'])
        return invitation

    @staticmethod
    def accept_invitation(token: str, user, now=None) -> OrganizationMember:
        """
        Accept a pending, unexpired invitation addressed to `user`.

        An expired invitation is marked expired outside the acceptance
        transaction, before the error is raised.

        Raises:
            ResourceStateError: invitation unknown, not pending or expired
            PermissionDeniedError: invitation addressed to another email
        """
        now = now or timezone.now()
        expired = OrganizationInvitation.objects.filter(
            token=token,
            status=OrganizationInvitation.Status.PENDING,
            expires_at__lte=now,
        ).update(status=OrganizationInvitation.Status.EXPIRED)
        if expired:
            raise ResourceStateError(detail='Invitation has expired.', current_state='expired')

        with transaction.atomic():
            invitation = (
                OrganizationInvitation.objects
                .select_for_update()
                .select_related('organization')
                .filter(token=token)
                .first()
            )
            if invitation is None:
                raise ResourceStateError(detail='Invitation not found or no longer valid.')

            if invitation.status != OrganizationInvitation.Status.PENDING:
                raise ResourceStateError(
                    detail='Invitation is no longer valid.',
                    current_state=invitation.status,
                )

            if invitation.email.lower() != user.email.lower():
                raise PermissionDeniedError(detail='This invitation was sent to a different email address.')

            organization = invitation.organization
            membership = OrganizationMember.objects.filter(organization=organization, user=user).first()
            if membership is None:
                membership = OrganizationMember.objects.create(
                    organization=organization,
                    user=user,
                    role=invitation.role,
                    invited_by=invitation.invited_by,
                    joined_at=now,
                )
            elif not membership.is_active:
                membership.is_active = True
                membership.role = invitation.role
                membership.joined_at = now
                membership.save(update_fields=['is_active', 'role', 'joined_at'])

            invitation.status = OrganizationInvitation.Status.ACCEPTED
            invitation.accepted_by = user
            invitation.accepted_at = now
            invitation.save(update_fields=['status', 'accepted_by', 'accepted_at'])

            if user.default_organization_id is None:
                user.default_organization = organization
                user.save(update_fields=['default_organization', 'updated_at'])

        logger.info(f"User {user.pk} joined {organization.slug} as {membership.role}")
        return membership

    @classmethod
    @transaction.atomic
    def change_role(cls, member: OrganizationMember, role: str, actor) -> OrganizationMember:
        """
        Change a member's role.

        Only owners may grant or revoke the owner role; the last owner
        cannot be demoted.
        """
        if role not in OrganizationMember.Role.values:
            raise InvalidInputError(detail=f"Unknown role '{role}'.")

        actor_membership = cls._require_admin(member.organization, actor)
        touches_owner = role == OrganizationMember.Role.OWNER or member.role == OrganizationMember.Role.OWNER
        actor_is_owner = actor_membership is not None and actor_membership.role == OrganizationMember.Role.OWNER
        if touches_owner and not (actor_is_owner or is_platform_admin(actor)):
            raise InsufficientRoleError(required_role='owner')

        if (
            member.role == OrganizationMember.Role.OWNER
            and role != OrganizationMember.Role.OWNER
            and cls._active_owner_count(member.organization) <= 1
        ):
            raise BusinessRuleViolationError(
                rule_name='last_owner',
                rule_description='An organization must keep at least one owner.'
            )

        previous = member.role
        member.role = role
        member.save(update_fields=['role'])

        log_audit_event(
            action_type='member_role_changed',
            decision_summary=f"{member.user.email}: {previous} -> {role}",
            organization=member.organization,
            user=actor,
            triggered_by='organizations',
            system_context={'member': str(member.uuid), 'previous_role': previous, 'new_role': role},
        )
        return member

    @classmethod
    @transaction.atomic
    def remove_member(cls, member: OrganizationMember, actor) -> None:
        """Deactivate a membership; the last owner cannot be removed."""
        actor_membership = cls._require_admin(member.organization, actor)

        if member.role == OrganizationMember.Role.OWNER:
            actor_is_owner = actor_membership is not None and actor_membership.role == OrganizationMember.Role.OWNER
            if not (actor_is_owner or is_platform_admin(actor)):
                raise InsufficientRoleError(required_role='owner')
            if cls._active_owner_count(member.organization) <= 1:
                raise BusinessRuleViolationError(
                    rule_name='last_owner',
                    rule_description='An organization must keep at least one owner.'
                )

        member.is_active = False
        member.save(update_fields=['is_active'])

        user = member.user
        if user.default_organization_id == member.organization_id:
            user.default_organization = None
            user.save(update_fields=['default_organization', 'updated_at'])

        log_audit_event(
            action_type='member_removed',
            decision_summary=f"{user.email} removed from {member.organization.slug}",
            organization=member.organization,
            user=actor,
            triggered_by='organizations',
            system_context={'member': str(member.uuid)},
        )

    @staticmethod
    def expire_invitations(now=None) -> int:
        """Mark pending invitations past expiry as expired."""
        now = now or timezone.now()
        count = OrganizationInvitation.objects.filter(
            status=OrganizationInvitation.Status.PENDING,
            expires_at__lte=now,
        ).update(status=OrganizationInvitation.Status.EXPIRED)
        if count:
            logger.info(f"Expired {count} invitations")
        return count
