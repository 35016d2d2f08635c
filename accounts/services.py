"""
Accounts Services - Admin console user management

This module provides:
- UserManagementService: list, update, deactivate and delete platform users
  with guards that keep at least one active platform admin.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Q, QuerySet
from django.utils import timezone

from api.exceptions import BusinessRuleViolationError, InvalidInputError
from fusion.audit import log_audit_event

logger = logging.getLogger(__name__)

User = get_user_model()

UPDATABLE_FIELDS = ('full_name', 'role', 'is_active', 'is_platform_admin')


class UserManagementService:
    """
    Service for the admin console user management screen.

    Handles:
    - Filtering users by search term, role, organization and status
    - Role and status changes with audit rows
    - Deletion with self and last-admin protection
    - User statistics
    """

    @staticmethod
    def list_users(
        search: str = None,
        role: str = None,
        organization=None,
        is_active: Optional[bool] = None,
    ) -> QuerySet:
        queryset = User.objects.all().order_by('-created_at')

        if search:
            queryset = queryset.filter(
                Q(email__icontains=search) | Q(full_name__icontains=search)
            )
        if role:
            queryset = queryset.filter(role=role)
        if organization is not None:
            queryset = queryset.filter(
                organization_memberships__organization=organization,
                organization_memberships__is_active=True,
            ).distinct()
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active)

        return queryset

    @staticmethod
    def _active_platform_admins() -> QuerySet:
        return User.objects.filter(is_active=True).filter(
            Q(is_platform_admin=True) | Q(role=User.Role.PLATFORM_ADMIN)
        )

    @classmethod
    def _is_last_platform_admin(cls, user) -> bool:
        if not (user.is_platform_admin or user.role == User.Role.PLATFORM_ADMIN):
            return False
        return not cls._active_platform_admins().exclude(pk=user.pk).exists()

    @classmethod
    @transaction.atomic
    def update_user(cls, user, actor, **fields) -> Any:
        """
        Update role, name, status or platform admin flag.

        Raises:
            InvalidInputError: unknown field or role
            BusinessRuleViolationError: the change would leave no active
                platform admin, or the actor deactivates themselves
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise InvalidInputError(detail=f"Cannot update fields: {', '.join(sorted(unknown))}")

        if 'role' in fields and fields['role'] not in User.Role.values:
            raise InvalidInputError(detail=f"Unknown role '{fields['role']}'.")

        if fields.get('is_active') is False and actor.pk == user.pk:
            raise BusinessRuleViolationError(
                rule_name='self_deactivation',
                rule_description='You cannot deactivate your own account.'
            )

        stays_active = fields.get('is_active', user.is_active)
        stays_admin = (
            fields.get('is_platform_admin', user.is_platform_admin)
            or fields.get('role', user.role) == User.Role.PLATFORM_ADMIN
        )
        if not (stays_active and stays_admin) and cls._is_last_platform_admin(user):
            raise BusinessRuleViolationError(
                rule_name='last_platform_admin',
                rule_description='At least one active platform admin must remain.'
            )

        previous = {name: getattr(user, name) for name in fields}
        for name, value in fields.items():
            setattr(user, name, value)
        user.save(update_fields=list(fields) + ['updated_at'])

        log_audit_event(
            action_type='user_updated',
            decision_summary=f"User {user.email} updated by {actor.email}",
            user=actor,
            triggered_by='admin-console',
            system_context={
                'target_user': str(user.uuid),
                'previous': previous,
                'changes': fields,
            },
        )
        logger.info(f"User {user.pk} updated by {actor.pk}: {sorted(fields)}")
        return user

    @classmethod
    def deactivate_user(cls, user, actor):
        return cls.update_user(user, actor, is_active=False)

    @classmethod
    @transaction.atomic
    def delete_user(cls, user, actor) -> None:
        """
        Delete a user account.

        Raises:
            BusinessRuleViolationError: self-deletion or last platform admin
        """
        if actor.pk == user.pk:
            raise BusinessRuleViolationError(
                rule_name='self_deletion',
                rule_description='You cannot delete your own account.'
            )
        if cls._is_last_platform_admin(user):
            raise BusinessRuleViolationError(
                rule_name='last_platform_admin',
                rule_description='At least one active platform admin must remain.'
            )

        email = user.email
        user_uuid = str(user.uuid)
        user.delete()

        log_audit_event(
            action_type='user_deleted',
            decision_summary=f"User {email} deleted by {actor.email}",
            user=actor,
            triggered_by='admin-console',
            decision_impact='HIGH',
            system_context={'target_user': user_uuid},
        )
        logger.warning(f"User {user_uuid} deleted by {actor.pk}")

    @staticmethod
    def user_statistics(now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        users = User.objects.all()

        by_role = {role: 0 for role in User.Role.values}
        for row in users.values('role').annotate(count=Count('id')):
            by_role[row['role']] = row['count']

        return {
            'total_users': users.count(),
            'active_users': users.filter(is_active=True).count(),
            'inactive_users': users.filter(is_active=False).count(),
            'platform_admins': users.filter(
                Q(is_platform_admin=True) | Q(role=User.Role.PLATFORM_ADMIN)
            ).count(),
            'new_last_30_days': users.filter(created_at__gte=now - timedelta(days=30)).count(),
            'by_role': by_role,
        }
