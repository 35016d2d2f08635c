"""
Accounts Models - Platform user accounts

This module implements:
- User: email-login account with a platform role and platform admin flag
- UserManager: creation helpers keyed on email
"""

import uuid

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.utils.translation import gettext_lazy as _


class UserManager(BaseUserManager):
    """Manager creating users from an email address."""

    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError('The email address must be set')
        email = self.normalize_email(email)
        extra_fields.setdefault('username', f"{email.split('@')[0]}-{uuid.uuid4().hex[:8]}")
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_platform_admin', True)
        extra_fields.setdefault('role', User.Role.PLATFORM_ADMIN)
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """
    Core314 user account.

    A user can belong to several organizations (organizations.OrganizationMember);
    `role` is the platform-wide role used by the admin console and engine
    endpoints, independent of organization roles.
    """

    class Role(models.TextChoices):
        USER = 'user', _('User')
        OPERATOR = 'operator', _('Operator')
        ADMIN = 'admin', _('Admin')
        MANAGER = 'manager', _('Manager')
        PLATFORM_ADMIN = 'platform_admin', _('Platform Admin')

    uuid = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
        db_index=True,
        help_text=_('Global unique identifier for this user')
    )

    # Email is the username
    email = models.EmailField(
        unique=True,
        db_index=True,
        help_text=_('Email address (used for login)')
    )

    full_name = models.CharField(max_length=255, blank=True)

    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.USER,
        db_index=True
    )
    is_platform_admin = models.BooleanField(
        default=False,
        db_index=True,
        help_text=_('Grants access to the admin console across all organizations')
    )

    default_organization = models.ForeignKey(
        'organizations.Organization',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text=_('Organization used when a request does not name one')
    )

    last_seen_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = _('User')
        verbose_name_plural = _('Users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['role', 'is_active']),
        ]

    def __str__(self):
        return self.email

    @property
    def display_name(self):
        return self.full_name or self.get_full_name() or self.email

    def has_role(self, required_role: str) -> bool:
        """Check a platform role requirement (see core.permissions.has_role)."""
        from core.permissions import has_role

        return has_role(self, required_role)
