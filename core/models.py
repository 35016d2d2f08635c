"""
Core Models - Base classes for all apps

This module provides reusable base model classes used across the application:
- TimestampedModel: Adds created_at/updated_at timestamps
- OrganizationScopedModel: Adds the owning organization and fills it from
  the current organization context
"""

from django.db import models


class TimestampedModel(models.Model):
    """
    Abstract base class that adds timestamp fields.

    Provides:
    - created_at: Automatically set on creation
    - updated_at: Automatically updated on save
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text='Timestamp when record was created'
    )

    updated_at = models.DateTimeField(
        auto_now=True,
        help_text='Timestamp when record was last updated'
    )

    class Meta:
        abstract = True
        get_latest_by = 'created_at'
        ordering = ['-created_at']


class OrganizationScopedModel(models.Model):
    """
    Abstract base class for organization-owned rows.

    Every query made on behalf of a user must filter on `organization`;
    API viewsets do this through OrganizationScopedViewSet.
    """

    organization = models.ForeignKey(
        'organizations.Organization',
        on_delete=models.CASCADE,
        related_name='%(class)s_set',
        db_index=True,
        help_text='Organization that owns this record'
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """Fill organization from the current context when not given."""
        if not self.organization_id:
            from organizations.context import get_current_organization

            current = get_current_organization()
            if current:
                self.organization = current

        super().save(*args, **kwargs)
