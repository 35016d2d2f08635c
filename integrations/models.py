"""
Integrations Models - Connected third-party services

This module implements:
- Integration: a provider connected by an organization
- IntegrationCredential: Encrypted OAuth tokens and API keys
- IntegrationMetric: metric values collected by polling (history)
- IntegrationEvent: poll, connect and error history
"""

import base64
import uuid
from datetime import timedelta

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from core.models import OrganizationScopedModel, TimestampedModel


def get_encryption_key():
    """
    Generate encryption key from Django SECRET_KEY.
    Uses PBKDF2 to derive a Fernet-compatible key.
    """
    password = settings.SECRET_KEY.encode()
    salt = b'core314_integrations_salt_v1'
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    key = base64.urlsafe_b64encode(kdf.derive(password))
    return key


class EncryptedTextField(models.TextField):
    """
    Custom field that encrypts data at rest using Fernet symmetric encryption.
    """
    description = "Encrypted text field"

    def __init__(self, *args, **kwargs):
        kwargs['blank'] = kwargs.get('blank', True)
        super().__init__(*args, **kwargs)

    def get_fernet(self):
        return Fernet(get_encryption_key())

    def from_db_value(self, value, expression, connection):
        if not value:
            return value
        try:
            return self.get_fernet().decrypt(value.encode()).decode()
        except InvalidToken:
            # Rows written before encryption was enabled
            return value

    def get_prep_value(self, value):
        if not value:
            return value
        return self.get_fernet().encrypt(value.encode()).decode()


class Integration(OrganizationScopedModel, TimestampedModel):
    """
    A third-party service connected by an organization.
    Polled on `poll_interval_minutes`; collected metrics feed the Fusion Score.
    """

    class Provider(models.TextChoices):
        SLACK = 'slack', _('Slack')
        MICROSOFT_TEAMS = 'microsoft_teams', _('Microsoft Teams')
        SALESFORCE = 'salesforce', _('Salesforce')
        QUICKBOOKS = 'quickbooks', _('QuickBooks')
        TRELLO = 'trello', _('Trello')
        INTERCOM = 'intercom', _('Intercom')
        ZOOM = 'zoom', _('Zoom')
        GOOGLE_CALENDAR = 'google_calendar', _('Google Calendar')
        XERO = 'xero', _('Xero')

    class Status(models.TextChoices):
        PENDING = 'pending', _('Pending')
        ACTIVE = 'active', _('Active')
        ERROR = 'error', _('Error')
        EXPIRED = 'expired', _('Expired')
        DISCONNECTED = 'disconnected', _('Disconnected')

    uuid = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    provider = models.CharField(max_length=50, choices=Provider.choices, db_index=True)
    name = models.CharField(max_length=255, blank=True, help_text=_('Display name'))
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    config = models.JSONField(default=dict, blank=True)

    # Polling
    poll_interval_minutes = models.PositiveIntegerField(
        default=60,
        validators=[MinValueValidator(5), MaxValueValidator(1440)]
    )
    last_polled_at = models.DateTimeField(null=True, blank=True)
    next_poll_at = models.DateTimeField(null=True, blank=True, db_index=True)
    consecutive_failures = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)

    connected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='connected_integrations'
    )
    connected_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = _('Integration')
        verbose_name_plural = _('Integrations')
        ordering = ['provider']
        unique_together = ['organization', 'provider']
        indexes = [
            models.Index(fields=['status', 'next_poll_at']),
        ]

    def __str__(self):
        return f"{self.get_provider_display()} ({self.organization})"

    @property
    def display_name(self):
        return self.name or self.get_provider_display()

    @property
    def is_active(self):
        return self.status == self.Status.ACTIVE

    def is_stale(self, now=None):
        """Not polled within twice its interval."""
        if self.last_polled_at is None:
            return True
        now = now or timezone.now()
        return now - self.last_polled_at > timedelta(minutes=2 * self.poll_interval_minutes)

    def schedule_next_poll(self, now=None):
        now = now or timezone.now()
        self.next_poll_at = now + timedelta(minutes=self.poll_interval_minutes)


class IntegrationCredential(models.Model):
    """Encrypted credentials of an integration."""

    integration = models.OneToOneField(
        Integration,
        on_delete=models.CASCADE,
        related_name='credentials'
    )
    access_token = EncryptedTextField()
    refresh_token = EncryptedTextField()
    api_key = EncryptedTextField()
    expires_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Integration Credential')
        verbose_name_plural = _('Integration Credentials')

    def __str__(self):
        return f"Credentials for {self.integration}"

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at <= timezone.now()

    def wipe(self):
        self.access_token = ''
        self.refresh_token = ''
        self.api_key = ''
        self.expires_at = None
        self.save()


class IntegrationMetric(models.Model):
    """
    One collected metric value.
    Rows are history; the latest row per metric name is authoritative.
    """

    integration = models.ForeignKey(
        Integration,
        on_delete=models.CASCADE,
        related_name='metrics'
    )
    metric_name = models.CharField(max_length=100)
    value = models.FloatField()
    calculated_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = _('Integration Metric')
        verbose_name_plural = _('Integration Metrics')
        ordering = ['-calculated_at']
        indexes = [
            models.Index(fields=['integration', 'metric_name', '-calculated_at']),
        ]

    def __str__(self):
        return f"{self.metric_name}={self.value}"


class IntegrationEvent(models.Model):
    """Lifecycle and polling history of an integration."""

    class EventType(models.TextChoices):
        CONNECTED = 'connected', _('Connected')
        DISCONNECTED = 'disconnected', _('Disconnected')
        POLL_SUCCESS = 'poll_success', _('Poll succeeded')
        POLL_FAILED = 'poll_failed', _('Poll failed')
        AUTH_EXPIRED = 'auth_expired', _('Authorization expired')
        RATE_LIMITED = 'rate_limited', _('Rate limited')

    integration = models.ForeignKey(
        Integration,
        on_delete=models.CASCADE,
        related_name='events'
    )
    event_type = models.CharField(max_length=30, choices=EventType.choices, db_index=True)
    message = models.TextField(blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = _('Integration Event')
        verbose_name_plural = _('Integration Events')
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.integration}: {self.event_type}"
